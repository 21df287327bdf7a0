from __future__ import annotations

import enum
import logging
from typing import Callable, Union

import numpy as np

from .config import DEFAULT_CONFIG, EngineConfig
from .utils import MOVES, counter_move, softmax, top_move

logger = logging.getLogger(__name__)


class Difficulty(str, enum.Enum):
    FAIR = "fair"
    NORMAL = "normal"
    RUTHLESS = "ruthless"

    @classmethod
    def parse(cls, v: Union[str, "Difficulty"]) -> "Difficulty":
        if isinstance(v, cls):
            return v
        try:
            return cls(str(v).strip().lower())
        except ValueError as e:
            raise ValueError(f"unknown difficulty: {v!r}") from e


def random_move(rng: Callable[[], float]) -> int:
    return MOVES[min(2, int(rng() * 3))]


def temperature_for(difficulty: Difficulty, config: EngineConfig = DEFAULT_CONFIG) -> float:
    if difficulty is Difficulty.RUTHLESS:
        return config.ruthless_temperature
    return config.normal_temperature


def soften(dist: np.ndarray, temperature: float, floor: float = 1e-6) -> np.ndarray:
    """softmax(temperature * log(max(floor, p))); larger temperature is sharper."""
    logits = np.log(np.maximum(floor, np.asarray(dist, dtype=np.float64))) * temperature
    return softmax(logits)


def _usable(dist) -> bool:
    p = np.asarray(dist, dtype=np.float64)
    return p.shape == (3,) and bool(np.all(np.isfinite(p))) and bool(np.all(p >= 0)) and float(np.sum(p)) > 0


def choose_move(
    dist: np.ndarray,
    difficulty: Union[str, Difficulty],
    rng: Callable[[], float],
    config: EngineConfig = DEFAULT_CONFIG,
) -> int:
    """Turn a predicted player distribution into the AI's move."""
    difficulty = Difficulty.parse(difficulty)
    if difficulty is Difficulty.FAIR:
        return random_move(rng)
    if not _usable(dist):
        logger.debug("degenerate distribution %r, playing random", dist)
        return random_move(rng)
    p = np.asarray(dist, dtype=np.float64)
    probs = soften(p / float(np.sum(p)), temperature_for(difficulty, config), config.prob_floor)
    move = counter_move(top_move(probs))
    # normal tier occasionally plays random so it does not feel infallible
    if difficulty is Difficulty.NORMAL and rng() < config.normal_noise:
        move = random_move(rng)
    return move
