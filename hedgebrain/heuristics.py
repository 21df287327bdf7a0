"""Light rule-based predictor used until the expert mixture is trusted."""
from __future__ import annotations

from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np


def markov_next(moves: Sequence[int]) -> Tuple[Optional[int], float]:
    """Most likely follow-up of the last move under first-order transitions."""
    if len(moves) < 2:
        return None, 0.0
    trans = np.zeros((3, 3), dtype=np.float64)
    for prev, nxt in zip(moves[:-1], moves[1:]):
        trans[int(prev), int(nxt)] += 1.0
    row = trans[int(moves[-1])]
    total = float(np.sum(row))
    if total <= 0:
        return None, 0.0
    best = int(np.argmax(row))
    return best, float(row[best]) / total


def detect_pattern_next(moves: Sequence[int]) -> Optional[int]:
    """Triple repeat, repeated block of three, or ABAB alternation."""
    m: List[int] = [int(x) for x in moves]
    n = len(m)
    if n >= 3 and m[-1] == m[-2] == m[-3]:
        return m[-1]
    if n >= 6 and m[n - 6:n - 3] == m[n - 3:]:
        return m[n - 3]
    if n >= 4:
        a, b, c, d = m[-4:]
        if a == c and b == d and a != b:
            return a
    return None


def predict_next(moves: Sequence[int], rng: Callable[[], float]) -> Tuple[Optional[int], float, str]:
    """Return (move, confidence, reason)."""
    mk, conf = markov_next(moves)
    pat = detect_pattern_next(moves)
    if mk is not None and pat is not None and mk == pat:
        return mk, max(0.8, conf), "markov and pattern agree"
    if pat is not None and (mk is None or conf < 0.6):
        return pat, 0.75, "pattern"
    if mk is not None and pat is not None:
        return (pat if rng() < 0.6 else mk), 0.7, "pattern vs markov"
    if mk is not None:
        return mk, conf * 0.65, "markov"
    return None, 0.0, "no signal"
