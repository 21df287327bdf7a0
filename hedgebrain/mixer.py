from __future__ import annotations

import copy
import logging
import math
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .context import Context
from .experts import EXPERT_LABELS, Expert, default_experts, expert_from_dict
from .utils import normalize

logger = logging.getLogger(__name__)

# Weights are floored here so a long losing streak never underflows to zero.
MIN_WEIGHT = 1e-300


class HedgeMixer:
    """Multiplicative-weights (Hedge) ensemble over a fixed expert lineup.

    ``predict`` caches each expert's distribution; ``update`` scores the
    experts on exactly those cached predictions, so the learning signal matches
    what the caller acted on.
    """

    def __init__(
        self,
        experts: Optional[List[Expert]] = None,
        eta: float = 1.6,
        names: Optional[Sequence[str]] = None,
        loss_floor: float = 1e-6,
    ):
        self.experts: List[Expert] = experts if experts is not None else default_experts()
        if names is None:
            names = EXPERT_LABELS if len(self.experts) == len(EXPERT_LABELS) else [e.kind for e in self.experts]
        self.names = list(names)
        self.eta = float(eta)
        self.loss_floor = float(loss_floor)
        self.w = np.ones(len(self.experts), dtype=np.float64)
        self._last_preds: Optional[List[np.ndarray]] = None
        # set once update has scored the cached predictions
        self._consumed = True

    def __len__(self) -> int:
        return len(self.experts)

    def predict(self, ctx: Context) -> np.ndarray:
        preds = [normalize(e.predict(ctx)) for e in self.experts]
        self._last_preds = preds
        self._consumed = False
        return self._combine(preds)

    def _combine(self, preds: List[np.ndarray]) -> np.ndarray:
        if not preds:
            return normalize(np.zeros(3))
        wn = self.normalized_weights()
        return normalize(wn @ np.vstack(preds))

    def update(self, ctx: Context, actual: int) -> np.ndarray:
        """Reweight experts on the cached predictions, then let them learn.

        Returns the per-expert losses.
        """
        preds = self._last_preds
        if self._consumed or preds is None or len(preds) != len(self.experts):
            logger.debug("update without a cached predict; recomputing expert predictions")
            preds = [normalize(e.predict(ctx)) for e in self.experts]
        self._last_preds = preds
        self._consumed = True
        a = int(actual)
        losses = np.array([1.0 - max(self.loss_floor, float(p[a])) for p in preds], dtype=np.float64)
        self.w = np.maximum(self.w * np.exp(-self.eta * losses), MIN_WEIGHT)
        for e in self.experts:
            e.update(ctx, a)
        return losses

    def normalized_weights(self) -> np.ndarray:
        s = float(np.sum(self.w))
        if s <= 0 or not math.isfinite(s):
            return np.ones(len(self.w), dtype=np.float64) / max(1, len(self.w))
        return self.w / s

    def get_weights(self) -> List[float]:
        return [float(x) for x in self.w]

    def set_weights(self, weights: Any) -> None:
        """Install weights; a wrong-length or unreadable vector resets to 1.0 each."""
        n = len(self.experts)
        try:
            arr = np.asarray(weights, dtype=np.float64)
        except (TypeError, ValueError):
            arr = None
        if arr is None or arr.shape != (n,):
            self.w = np.ones(n, dtype=np.float64)
            return
        bad = ~np.isfinite(arr) | (arr <= 0)
        arr[bad] = 1.0
        self.w = arr

    def snapshot(self) -> Dict[str, Any]:
        """Normalised weights and each expert's last distribution (None before any prediction)."""
        wn = self.normalized_weights()
        preds = self._last_preds
        return {
            "names": list(self.names),
            "weights": [float(x) for x in wn],
            "predictions": [p.copy() for p in preds] if preds is not None else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        # deep copy so a deferred save never sees later mutation
        return copy.deepcopy({
            "eta": self.eta,
            "weights": self.get_weights(),
            "experts": [e.to_dict() for e in self.experts],
        })

    @staticmethod
    def from_dict(d: Any, loss_floor: float = 1e-6) -> "HedgeMixer":
        """Rebuild a mixer over the default lineup, tolerating corrupt entries."""
        d = d if isinstance(d, dict) else {}
        eta = d.get("eta", 1.6)
        try:
            eta = float(eta)
        except (TypeError, ValueError):
            eta = 1.6
        if not math.isfinite(eta) or eta <= 0:
            eta = 1.6
        defaults = default_experts()
        raw = d.get("experts")
        raw = raw if isinstance(raw, list) else []
        experts: List[Expert] = []
        for i, fallback in enumerate(defaults):
            entry = raw[i] if i < len(raw) else None
            if entry is None:
                experts.append(fallback)
            else:
                experts.append(expert_from_dict(entry, fallback=fallback))
        obj = HedgeMixer(experts=experts, eta=eta, loss_floor=loss_floor)
        obj.set_weights(d.get("weights"))
        return obj
