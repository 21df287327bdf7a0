from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from .utils import parse_move


@dataclass(frozen=True)
class Context:
    """Round history handed to every expert.

    ``player_moves``, ``ai_moves`` and ``outcomes`` are aligned: index ``i`` is
    round ``i``. Outcomes are from the player's side. ``rng`` returns floats in
    [0, 1).
    """

    player_moves: Sequence[int] = ()
    ai_moves: Sequence[int] = ()
    outcomes: Sequence[str] = ()
    rng: Callable[[], float] = field(default=random.random, compare=False)

    def __len__(self) -> int:
        return len(self.player_moves)

    @property
    def last_outcome(self) -> Optional[str]:
        return self.outcomes[-1] if self.outcomes else None

    @property
    def last_player_move(self) -> Optional[int]:
        return self.player_moves[-1] if self.player_moves else None

    @property
    def last_ai_move(self) -> Optional[int]:
        return self.ai_moves[-1] if self.ai_moves else None

    @staticmethod
    def build(player_moves, ai_moves=(), outcomes=(), rng: Optional[Callable[[], float]] = None) -> "Context":
        """Build a context from move names or indices."""
        p: List[int] = [parse_move(m) for m in player_moves]
        a: List[int] = [parse_move(m) for m in ai_moves]
        return Context(tuple(p), tuple(a), tuple(outcomes), rng or random.random)
