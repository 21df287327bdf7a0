from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional

import numpy as np

from .config import DEFAULT_CONFIG, EngineConfig
from .context import Context
from .mixer import HedgeMixer
from .model import PersistedModel, format_timestamp, parse_timestamp, utcnow
from .utils import normalize


class BlendWeights(NamedTuple):
    realtime: float
    history: float


REALTIME_ONLY = BlendWeights(1.0, 0.0)


def _history_weight(
    rounds_this_session: float,
    updated_at: Optional[datetime],
    now: datetime,
    config: EngineConfig,
) -> BlendWeights:
    switch = config.switch_rounds if config.switch_rounds > 0 else 1.0
    progress = min(1.0, max(0.0, float(rounds_this_session) / switch))
    # trust history early in a session, then lean on the fresher realtime signal
    start, end = config.history_weight_start, config.history_weight_end
    history = start + (end - start) * progress
    if updated_at is not None:
        now, updated_at = parse_timestamp(now), parse_timestamp(updated_at)
        age_ms = max(0.0, (now - updated_at).total_seconds() * 1000.0)
        tau = config.staleness_ms
        history *= math.exp(-age_ms / tau) if tau > 0 else 0.0
    if not math.isfinite(history):
        return REALTIME_ONLY
    history = min(config.history_weight_max, max(0.0, history))
    realtime = 1.0 - history
    total = realtime + history
    if total <= 0:
        return REALTIME_ONLY
    return BlendWeights(realtime / total, history / total)


def compute_blend_weights(
    rounds_this_session: float,
    persisted: Optional[PersistedModel],
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> BlendWeights:
    """Realtime/history weights for the current round.

    Without usable persisted history the realtime mixer gets everything.
    """
    if persisted is None or not persisted.has_history():
        return REALTIME_ONLY
    return _history_weight(rounds_this_session, persisted.updated_at_dt, now or utcnow(), config)


def blend_distributions(realtime: np.ndarray, history: np.ndarray, weights: BlendWeights) -> np.ndarray:
    mix = weights.realtime * np.asarray(realtime, dtype=np.float64) + weights.history * np.asarray(history, dtype=np.float64)
    return normalize(mix)


@dataclass
class BlendResult:
    distribution: np.ndarray
    realtime: np.ndarray
    history: np.ndarray
    weights: BlendWeights
    realtime_snapshot: Dict[str, Any]
    history_snapshot: Dict[str, Any]


class DualHorizonBlender:
    """Owns the session (realtime) mixer and the per-profile (history) mixer.

    Both mixers see the same context every round; they are blended only at
    the distribution level and never share weights or expert tables.
    """

    def __init__(
        self,
        profile_id: Optional[str] = None,
        persisted: Optional[PersistedModel] = None,
        config: EngineConfig = DEFAULT_CONFIG,
    ):
        self.config = config
        self.profile_id = profile_id
        self.realtime = self._fresh_mixer()
        self.session_rounds = 0
        if persisted is not None:
            self.history = HedgeMixer.from_dict(persisted.state, loss_floor=config.loss_floor)
            self.rounds_seen = persisted.rounds_seen
            self.updated_at: Optional[datetime] = persisted.updated_at_dt
            self._has_experts = persisted.has_history()
        else:
            self.history = self._fresh_mixer()
            self.rounds_seen = 0
            self.updated_at = None
            self._has_experts = False

    def _fresh_mixer(self) -> HedgeMixer:
        return HedgeMixer(eta=self.config.eta, loss_floor=self.config.loss_floor)

    @property
    def has_history(self) -> bool:
        return self.rounds_seen > 0 and self._has_experts

    def blend_weights(self, now: Optional[datetime] = None) -> BlendWeights:
        if not self.has_history:
            return REALTIME_ONLY
        return _history_weight(self.session_rounds, self.updated_at, now or utcnow(), self.config)

    def predict(self, ctx: Context, now: Optional[datetime] = None) -> BlendResult:
        rt = self.realtime.predict(ctx)
        hist = self.history.predict(ctx)
        weights = self.blend_weights(now)
        return BlendResult(
            distribution=blend_distributions(rt, hist, weights),
            realtime=rt,
            history=hist,
            weights=weights,
            realtime_snapshot=self.realtime.snapshot(),
            history_snapshot=self.history.snapshot(),
        )

    def update(
        self,
        ctx: Context,
        actual: int,
        update_realtime: bool = True,
        update_history: bool = False,
        now: Optional[datetime] = None,
    ) -> None:
        if update_realtime:
            self.realtime.update(ctx, actual)
        if update_history:
            self.history.update(ctx, actual)
            self.rounds_seen += 1
            self.updated_at = now or utcnow()
            self._has_experts = True
        self.session_rounds += 1

    def reset_realtime(self) -> None:
        self.realtime = self._fresh_mixer()
        self.session_rounds = 0

    def export_model(self) -> PersistedModel:
        """Independent copy of the history mixer, safe to hand to a deferred save."""
        if self.profile_id is None:
            raise ValueError("no profile selected")
        return PersistedModel(
            profile_id=self.profile_id,
            updated_at=format_timestamp(self.updated_at or utcnow()),
            rounds_seen=self.rounds_seen,
            state=self.history.to_dict(),
        )
