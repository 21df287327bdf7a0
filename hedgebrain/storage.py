from __future__ import annotations

import copy
import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import redis

from .model import PersistedModel

logger = logging.getLogger(__name__)


class ModelStore(ABC):
    """Gateway for per-profile history-mixer snapshots.

    Implementations must never raise out of these methods: a failed load is
    ``None`` and a failed save or clear is logged and dropped.
    """

    @abstractmethod
    def load(self, profile_id: str) -> Optional[PersistedModel]:
        """Stored model for the profile, or None."""

    @abstractmethod
    def save(self, profile_id: str, model: PersistedModel) -> None:
        """Persist the model for the profile."""

    @abstractmethod
    def clear(self, profile_id: str) -> None:
        """Forget the profile's model."""


class MemoryStore(ModelStore):
    """Process-local store; keeps serialised copies so callers cannot alias state."""

    def __init__(self) -> None:
        self.records: Dict[str, Dict[str, Any]] = {}

    def load(self, profile_id: str) -> Optional[PersistedModel]:
        d = self.records.get(profile_id)
        return PersistedModel.from_dict(copy.deepcopy(d)) if d is not None else None

    def save(self, profile_id: str, model: PersistedModel) -> None:
        self.records[profile_id] = model.to_dict()

    def clear(self, profile_id: str) -> None:
        self.records.pop(profile_id, None)


class StateStorage(ModelStore):
    """
    Storage with optional Redis backend.
    - If a Redis URL is given (or REDIS_URL is set), models live in Redis.
    - Otherwise they are JSON files under state_dir.
    Keys:
      rps:models (set) -> profile ids
      rps:model:<profile_id> -> JSON string
    """

    def __init__(self, state_dir: str, redis_url: Optional[str] = None):
        self.state_dir = state_dir
        self._redis = None
        url = redis_url if redis_url is not None else os.getenv("REDIS_URL")
        if url:
            try:
                self._redis = redis.from_url(url, decode_responses=True)  # str <-> str
            except (redis.RedisError, ValueError) as e:
                logger.warning("Redis unavailable (%s), using files in %s", e, state_dir)
                self._redis = None
        if self._redis is None:
            os.makedirs(self.state_dir, exist_ok=True)

    @property
    def backend(self) -> str:
        return "redis" if self._redis is not None else "file"

    # ---------------- Filesystem helpers ----------------
    def _model_path(self, profile_id: str) -> str:
        safe = "".join(c if c.isalnum() or c in ("-", "_") else "_" for c in profile_id)
        return os.path.join(self.state_dir, f"model_{safe}.json")

    # ---------------- Redis helpers ----------------
    def _k_model(self, profile_id: str) -> str:
        return f"rps:model:{profile_id}"

    def _k_models_set(self) -> str:
        return "rps:models"

    # ---------------- Public API ----------------
    def load(self, profile_id: str) -> Optional[PersistedModel]:
        try:
            if self._redis is not None:
                s = self._redis.get(self._k_model(profile_id))
                if s is None:
                    return None
                d = json.loads(s)
            else:
                p = self._model_path(profile_id)
                if not os.path.exists(p):
                    return None
                with open(p, "r", encoding="utf-8") as f:
                    d = json.load(f)
            model = PersistedModel.from_dict(d)
        except (OSError, ValueError, OverflowError, redis.RedisError) as e:
            logger.warning("Failed to load model for %s: %s", profile_id, e)
            return None
        if model is not None and model.profile_id != profile_id:
            logger.warning("Stored model for %s names profile %s; ignoring", profile_id, model.profile_id)
            return None
        return model

    def save(self, profile_id: str, model: PersistedModel) -> None:
        try:
            payload = json.dumps(model.to_dict())
            if self._redis is not None:
                self._redis.set(self._k_model(profile_id), payload)
                self._redis.sadd(self._k_models_set(), profile_id)
                return
            p = self._model_path(profile_id)
            tmp = p + ".tmp"
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp, p)
        except (OSError, TypeError, ValueError, redis.RedisError) as e:
            logger.warning("Failed to save model for %s: %s", profile_id, e)

    def clear(self, profile_id: str) -> None:
        try:
            if self._redis is not None:
                self._redis.delete(self._k_model(profile_id))
                self._redis.srem(self._k_models_set(), profile_id)
                return
            p = self._model_path(profile_id)
            if os.path.exists(p):
                os.remove(p)
        except (OSError, redis.RedisError) as e:
            logger.warning("Failed to clear model for %s: %s", profile_id, e)

    def list_profiles(self) -> list:
        try:
            if self._redis is not None:
                return sorted(self._redis.smembers(self._k_models_set()) or [])
            out = []
            for name in os.listdir(self.state_dir):
                if name.startswith("model_") and name.endswith(".json"):
                    p = os.path.join(self.state_dir, name)
                    model = None
                    try:
                        with open(p, "r", encoding="utf-8") as f:
                            model = PersistedModel.from_dict(json.load(f))
                    except (OSError, ValueError, OverflowError) as e:
                        logger.debug("Skipping unreadable %s: %s", name, e)
                    if model is not None:
                        out.append(model.profile_id)
            return sorted(out)
        except (OSError, redis.RedisError) as e:
            logger.warning("Failed to list profiles: %s", e)
            return []
