from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

MODEL_VERSION = 1
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(s: Any) -> datetime:
    """Parse an ISO-8601 string; anything unreadable is treated as the epoch."""
    if isinstance(s, datetime):
        return s if s.tzinfo is not None else s.replace(tzinfo=timezone.utc)
    if not isinstance(s, str) or not s:
        return EPOCH
    raw = s.strip()
    if raw.endswith("Z") or raw.endswith("z"):
        raw = raw[:-1] + "+00:00"
    try:
        ts = datetime.fromisoformat(raw)
    except ValueError:
        return EPOCH
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass
class PersistedModel:
    """History-mixer snapshot stored per profile.

    ``state`` is the serialised HedgeMixer (``{"eta", "weights", "experts"}``).
    """

    profile_id: str
    model_version: int = MODEL_VERSION
    updated_at: str = field(default_factory=lambda: format_timestamp(utcnow()))
    rounds_seen: int = 0
    state: Dict[str, Any] = field(default_factory=dict)

    @property
    def updated_at_dt(self) -> datetime:
        return parse_timestamp(self.updated_at)

    def has_history(self) -> bool:
        experts = self.state.get("experts") if isinstance(self.state, dict) else None
        return self.rounds_seen > 0 and isinstance(experts, list) and len(experts) > 0

    def copy(self) -> "PersistedModel":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "profileId": self.profile_id,
            "modelVersion": self.model_version,
            "updatedAt": self.updated_at,
            "roundsSeen": self.rounds_seen,
            "state": copy.deepcopy(self.state),
        }

    @staticmethod
    def from_dict(d: Any) -> Optional["PersistedModel"]:
        """Parse a stored record; returns None when it cannot be used at all."""
        if not isinstance(d, dict):
            return None
        profile_id = d.get("profileId")
        state = d.get("state")
        if not isinstance(profile_id, str) or not profile_id or not isinstance(state, dict):
            logger.warning("Dropping persisted model without profileId/state")
            return None
        version = d.get("modelVersion")
        if (
            isinstance(version, bool)
            or not isinstance(version, (int, float))
            or version != MODEL_VERSION
        ):
            logger.warning("Ignoring persisted model for %s with version %r", profile_id, version)
            return None
        rounds = d.get("roundsSeen", 0)
        try:
            rounds_f = float(rounds)
        except (TypeError, ValueError, OverflowError):
            rounds_f = 0.0
        rounds_seen = int(rounds_f) if math.isfinite(rounds_f) and rounds_f > 0 else 0
        updated = d.get("updatedAt")
        return PersistedModel(
            profile_id=profile_id,
            model_version=MODEL_VERSION,
            updated_at=updated if isinstance(updated, str) else format_timestamp(EPOCH),
            rounds_seen=rounds_seen,
            state=copy.deepcopy(state),
        )
