from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional, Union

import numpy as np

MOVES = [0, 1, 2]  # 0=Rock,1=Paper,2=Scissors
MOVE_NAMES = ("rock", "paper", "scissors")
OUTCOMES = ("win", "lose", "tie")  # predicted player's perspective

MoveLike = Union[int, str]


def parse_move(m: MoveLike) -> int:
    """Accept a move index or name and return the index."""
    if isinstance(m, str):
        key = m.strip().lower()
        if key in MOVE_NAMES:
            return MOVE_NAMES.index(key)
        raise ValueError(f"unknown move: {m!r}")
    if isinstance(m, (int, np.integer)) and not isinstance(m, bool) and 0 <= int(m) < 3:
        return int(m)
    raise ValueError(f"unknown move: {m!r}")


def move_name(m: int) -> str:
    return MOVE_NAMES[int(m)]


def counter_move(m: int) -> int:
    # Paper beats Rock, Scissors beats Paper, Rock beats Scissors
    return (int(m) + 1) % 3


def resolve_outcome(player: int, ai: int) -> str:
    """Outcome of a round from the player's side."""
    if player == ai:
        return "tie"
    if counter_move(ai) == player:
        return "win"
    return "lose"


def uniform() -> np.ndarray:
    return np.ones(3, dtype=np.float64) / 3.0


def normalize(p: Iterable[float]) -> np.ndarray:
    p = np.asarray(p, dtype=np.float64)
    if p.shape != (3,) or not np.all(np.isfinite(p)):
        return uniform()
    p = np.clip(p, 0.0, None)
    s = float(np.sum(p))
    if s <= 0:
        return uniform()
    return p / s


def from_counts(counts: Iterable[float], alpha: float = 1.0) -> np.ndarray:
    """Laplace-smoothed distribution from raw counts."""
    return normalize(np.asarray(counts, dtype=np.float64) + float(alpha))


def is_valid_distribution(p: np.ndarray, tol: float = 1e-6) -> bool:
    p = np.asarray(p, dtype=np.float64)
    if p.shape != (3,) or not np.all(np.isfinite(p)):
        return False
    return bool(np.all(p >= 0.0) and abs(float(np.sum(p)) - 1.0) <= tol)


def top_move(p: np.ndarray) -> int:
    # np.argmax returns the first maximum, so ties resolve rock > paper > scissors
    return int(np.argmax(np.asarray(p, dtype=np.float64)))


def softmax(x: np.ndarray, temperature: float = 1.0) -> np.ndarray:
    x = np.asarray(x, dtype=np.float64) / max(1e-6, temperature)
    x = x - np.max(x)
    ex = np.exp(x)
    return ex / np.sum(ex)


def dist_to_dict(p: np.ndarray) -> Dict[str, float]:
    return {name: float(v) for name, v in zip(MOVE_NAMES, p)}


def counts_to_dict(c: np.ndarray) -> Dict[str, float]:
    return {name: float(v) for name, v in zip(MOVE_NAMES, c)}


def counts_from_dict(d: Mapping) -> Optional[np.ndarray]:
    """Parse a ``{rock, paper, scissors}`` count row; None if it is unusable."""
    if not isinstance(d, Mapping):
        return None
    out = np.zeros(3, dtype=np.float64)
    for i, name in enumerate(MOVE_NAMES):
        v = d.get(name, 0)
        if isinstance(v, bool):
            return None
        try:
            f = float(v)
        except (TypeError, ValueError):
            return None
        if not np.isfinite(f) or f < 0:
            return None
        out[i] = f
    return out


def most_frequent_move(moves: Iterable[int]) -> Optional[int]:
    moves = list(moves)
    if not moves:
        return None
    counts = np.bincount(np.asarray(moves, dtype=np.int64), minlength=3)
    return int(np.argmax(counts))
