from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Tuple, Type

import numpy as np

from .context import Context
from .utils import (
    MOVE_NAMES,
    OUTCOMES,
    counts_from_dict,
    counts_to_dict,
    from_counts,
    normalize,
    uniform,
)

logger = logging.getLogger(__name__)

# Move encoding: 0=Rock, 1=Paper, 2=Scissors

# upper bounds for lengths read back from stored state
MAX_ORDER = 8
MAX_PERIOD = 32
MAX_WINDOW = 1000


def _num(v: Any, default: float, lo: Optional[float] = None, hi: Optional[float] = None) -> float:
    """Coerce a persisted number, falling back to ``default`` and clamping."""
    if isinstance(v, bool):
        v = default
    try:
        f = float(v)
    except (TypeError, ValueError):
        f = default
    if not math.isfinite(f):
        f = default
    if lo is not None:
        f = max(lo, f)
    if hi is not None:
        f = min(hi, f)
    return f


def _int(v: Any, default: int, lo: int = 1, hi: Optional[int] = None) -> int:
    return int(_num(v, float(default), lo=lo, hi=hi))


def _seq_key(moves) -> str:
    return "|".join(MOVE_NAMES[int(m)] for m in moves)


def _rows_from_pairs(raw: Any, valid_key) -> Dict[str, np.ndarray]:
    """Parse ``[[key, counts], ...]`` rows, dropping anything invalid."""
    table: Dict[str, np.ndarray] = {}
    if isinstance(raw, dict):
        raw = list(raw.items())
    if not isinstance(raw, (list, tuple)):
        return table
    for row in raw:
        if not isinstance(row, (list, tuple)) or len(row) != 2:
            continue
        key, counts = row
        if not isinstance(key, str) or not valid_key(key):
            continue
        parsed = counts_from_dict(counts)
        if parsed is None:
            continue
        table[key] = parsed
    return table


def _named_rows(raw: Any, names) -> Dict[str, np.ndarray]:
    """Parse a fixed-key ``{name: counts}`` mapping; missing or bad rows are zero."""
    out = {n: np.zeros(3, dtype=np.float64) for n in names}
    if not isinstance(raw, dict):
        return out
    for n in names:
        parsed = counts_from_dict(raw.get(n))
        if parsed is not None:
            out[n] = parsed
    return out


class Expert:
    """Base class: a sub-model mapping round history to a move distribution."""

    kind: str = ""

    def predict(self, ctx: Context) -> np.ndarray:
        raise NotImplementedError

    def update(self, ctx: Context, actual: int) -> None:
        """Learn from the move played after ``ctx``. Stateless experts ignore it."""

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Expert":
        raise NotImplementedError


class FrequencyExpert(Expert):
    """Laplace-smoothed frequency over a sliding window of player moves."""

    kind = "FrequencyExpert"

    def __init__(self, window: int = 20, alpha: float = 1.0):
        self.window = max(1, int(window))
        self.alpha = max(0.0, float(alpha))

    def predict(self, ctx: Context) -> np.ndarray:
        recent = list(ctx.player_moves)[-self.window:]
        counts = np.bincount(np.asarray(recent, dtype=np.int64), minlength=3).astype(np.float64)
        return from_counts(counts, self.alpha)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "window": self.window, "alpha": self.alpha}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FrequencyExpert":
        return cls(window=_int(d.get("window"), 20, hi=MAX_WINDOW), alpha=_num(d.get("alpha"), 1.0, lo=0.0))


class RecencyExpert(Expert):
    """Exponentially time-weighted frequency; lower gamma means more recency."""

    kind = "RecencyExpert"

    def __init__(self, gamma: float = 0.85, alpha: float = 1.0):
        self.gamma = min(0.995, max(0.01, float(gamma)))
        self.alpha = max(0.0, float(alpha))

    def predict(self, ctx: Context) -> np.ndarray:
        n = len(ctx.player_moves)
        w = np.zeros(3, dtype=np.float64)
        for i, m in enumerate(ctx.player_moves):
            w[int(m)] += self.gamma ** (n - 1 - i)
        return from_counts(w, self.alpha)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "gamma": self.gamma, "alpha": self.alpha}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RecencyExpert":
        return cls(
            gamma=_num(d.get("gamma"), 0.85, lo=0.01, hi=0.995),
            alpha=_num(d.get("alpha"), 1.0, lo=0.0),
        )


class MarkovExpert(Expert):
    """Order-k n-gram over player moves with back-off to shorter keys."""

    kind = "MarkovExpert"

    def __init__(self, order: int = 1, alpha: float = 1.0, table: Optional[Dict[str, np.ndarray]] = None):
        self.order = max(1, int(order))
        self.alpha = max(0.0, float(alpha))
        self.table: Dict[str, np.ndarray] = table if table is not None else {}

    def predict(self, ctx: Context) -> np.ndarray:
        n = len(ctx.player_moves)
        for k in range(min(self.order, n), 0, -1):
            counts = self.table.get(_seq_key(ctx.player_moves[n - k:]))
            if counts is not None:
                return from_counts(counts, self.alpha)
        return uniform()

    def update(self, ctx: Context, actual: int) -> None:
        n = len(ctx.player_moves)
        # every order is recorded so the back-off in predict has something to find
        for k in range(1, min(self.order, n) + 1):
            key = _seq_key(ctx.player_moves[n - k:])
            row = self.table.setdefault(key, np.zeros(3, dtype=np.float64))
            row[int(actual)] += 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "order": self.order,
            "alpha": self.alpha,
            "table": [[k, counts_to_dict(v)] for k, v in self.table.items()],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MarkovExpert":
        order = _int(d.get("order"), 1, hi=MAX_ORDER)

        def valid(key: str) -> bool:
            parts = key.split("|")
            return 1 <= len(parts) <= order and all(p in MOVE_NAMES for p in parts)

        return cls(order=order, alpha=_num(d.get("alpha"), 1.0, lo=0.0), table=_rows_from_pairs(d.get("table"), valid))


class OutcomeExpert(Expert):
    """Next-move counts conditioned on the previous round's outcome."""

    kind = "OutcomeExpert"

    def __init__(self, alpha: float = 1.0, by_outcome: Optional[Dict[str, np.ndarray]] = None):
        self.alpha = max(0.0, float(alpha))
        self.by_outcome = by_outcome if by_outcome is not None else _named_rows(None, OUTCOMES)

    def predict(self, ctx: Context) -> np.ndarray:
        last = ctx.last_outcome
        if last not in self.by_outcome:
            return uniform()
        return from_counts(self.by_outcome[last], self.alpha)

    def update(self, ctx: Context, actual: int) -> None:
        last = ctx.last_outcome
        if last not in self.by_outcome:
            return
        self.by_outcome[last][int(actual)] += 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "alpha": self.alpha,
            "byOutcome": {o: counts_to_dict(self.by_outcome[o]) for o in OUTCOMES},
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "OutcomeExpert":
        return cls(alpha=_num(d.get("alpha"), 1.0, lo=0.0), by_outcome=_named_rows(d.get("byOutcome"), OUTCOMES))


class WinStayLoseShiftExpert(Expert):
    """Counts keyed by (previous outcome, previous player move)."""

    kind = "WinStayLoseShiftExpert"

    def __init__(self, alpha: float = 1.0, table: Optional[Dict[str, np.ndarray]] = None):
        self.alpha = max(0.0, float(alpha))
        self.table: Dict[str, np.ndarray] = table if table is not None else {}

    @staticmethod
    def _key(ctx: Context) -> Optional[str]:
        last_m, last_o = ctx.last_player_move, ctx.last_outcome
        if last_m is None or last_o is None:
            return None
        return f"{last_o}|{MOVE_NAMES[int(last_m)]}"

    def predict(self, ctx: Context) -> np.ndarray:
        key = self._key(ctx)
        counts = self.table.get(key) if key else None
        if counts is None:
            return uniform()
        return from_counts(counts, self.alpha)

    def update(self, ctx: Context, actual: int) -> None:
        key = self._key(ctx)
        if key is None:
            return
        row = self.table.setdefault(key, np.zeros(3, dtype=np.float64))
        row[int(actual)] += 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "alpha": self.alpha,
            "table": [[k, counts_to_dict(v)] for k, v in self.table.items()],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "WinStayLoseShiftExpert":
        def valid(key: str) -> bool:
            parts = key.split("|")
            return len(parts) == 2 and parts[0] in OUTCOMES and parts[1] in MOVE_NAMES

        return cls(alpha=_num(d.get("alpha"), 1.0, lo=0.0), table=_rows_from_pairs(d.get("table"), valid))


class PeriodicExpert(Expert):
    """Detect short cycles (min_period..max_period) via autocorrelation match rate."""

    kind = "PeriodicExpert"

    def __init__(self, max_period: int = 5, min_period: int = 2, window: int = 18, confident: float = 0.65):
        self.min_period = max(1, int(min_period))
        self.max_period = max(self.min_period, int(max_period))
        self.window = max(1, int(window))
        self.confident = min(1.0, max(0.0, float(confident)))

    def best_period(self, moves) -> Tuple[int, float]:
        """Return (period, match rate); period is -1 if nothing matched."""
        n = len(moves)
        best_p, best_score = -1, 0.0
        for p in range(self.min_period, min(self.max_period, n - 1) + 1):
            total = n - p
            if total <= 0:
                continue
            matches = sum(1 for i in range(p, n) if moves[i] == moves[i - p])
            score = matches / total
            if score > best_score:
                best_p, best_score = p, score
        return best_p, best_score

    def predict(self, ctx: Context) -> np.ndarray:
        arr = list(ctx.player_moves)[-self.window:]
        n = len(arr)
        if n < self.min_period + 1:
            return uniform()
        best_p, best_score = self.best_period(arr)
        if best_p < 0 or best_score < self.confident:
            return uniform()
        p = np.full(3, 0.05, dtype=np.float64)
        p[int(arr[n - best_p])] += 0.9
        return normalize(p)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "maxPeriod": self.max_period,
            "minPeriod": self.min_period,
            "window": self.window,
            "confident": self.confident,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PeriodicExpert":
        return cls(
            max_period=_int(d.get("maxPeriod"), 5, hi=MAX_PERIOD),
            min_period=_int(d.get("minPeriod"), 2, hi=MAX_PERIOD),
            window=_int(d.get("window"), 18, hi=MAX_WINDOW),
            confident=_num(d.get("confident"), 0.65, lo=0.0, hi=1.0),
        )


class BaitResponseExpert(Expert):
    """How the player answers our previous move."""

    kind = "BaitResponseExpert"

    def __init__(self, alpha: float = 1.0, table: Optional[Dict[str, np.ndarray]] = None):
        self.alpha = max(0.0, float(alpha))
        self.table = table if table is not None else _named_rows(None, MOVE_NAMES)

    def predict(self, ctx: Context) -> np.ndarray:
        last_ai = ctx.last_ai_move
        if last_ai is None:
            return uniform()
        return from_counts(self.table[MOVE_NAMES[int(last_ai)]], self.alpha)

    def update(self, ctx: Context, actual: int) -> None:
        last_ai = ctx.last_ai_move
        if last_ai is None:
            return
        self.table[MOVE_NAMES[int(last_ai)]][int(actual)] += 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "alpha": self.alpha,
            "table": {m: counts_to_dict(self.table[m]) for m in MOVE_NAMES},
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BaitResponseExpert":
        return cls(alpha=_num(d.get("alpha"), 1.0, lo=0.0), table=_named_rows(d.get("table"), MOVE_NAMES))


EXPERT_KINDS: Dict[str, Type[Expert]] = {
    cls.kind: cls
    for cls in (
        FrequencyExpert,
        RecencyExpert,
        MarkovExpert,
        OutcomeExpert,
        WinStayLoseShiftExpert,
        PeriodicExpert,
        BaitResponseExpert,
    )
}


EXPERT_LABELS = (
    "Frequency",
    "Recency",
    "Markov1",
    "Markov2",
    "Outcome",
    "WSLS",
    "Periodic",
    "BaitResponse",
)


def default_experts() -> List[Expert]:
    """Fresh expert lineup, one instance per entry of EXPERT_LABELS."""
    return [
        FrequencyExpert(20, 1.0),
        RecencyExpert(0.85, 1.0),
        MarkovExpert(1, 1.0),
        MarkovExpert(2, 1.0),
        OutcomeExpert(1.0),
        WinStayLoseShiftExpert(1.0),
        PeriodicExpert(5, 2, 18, 0.65),
        BaitResponseExpert(1.0),
    ]


def expert_from_dict(d: Any, fallback: Optional[Expert] = None) -> Expert:
    """Rebuild an expert from its tagged dict.

    A malformed entry of a known kind becomes a default expert of that kind.
    An unknown kind becomes ``fallback`` (or a FrequencyExpert).
    """
    kind = d.get("type") if isinstance(d, dict) else None
    cls = EXPERT_KINDS.get(kind) if isinstance(kind, str) else None
    if cls is None:
        logger.warning("Unknown expert entry %r, using default", kind)
        return fallback if fallback is not None else FrequencyExpert()
    try:
        return cls.from_dict(d)
    except (TypeError, ValueError, KeyError, AttributeError) as e:
        logger.warning("Corrupt %s state, resetting: %s", kind, e)
        if fallback is not None and isinstance(fallback, cls):
            return fallback
        return cls()
