from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Dict, Optional


@dataclass(frozen=True)
class EngineConfig:
    """Tuned constants of the engine.

    The defaults were picked by play-testing; none of them is an invariant.
    """

    # Hedge
    eta: float = 1.6
    loss_floor: float = 1e-6
    # Difficulty policy
    prob_floor: float = 1e-6
    normal_temperature: float = 2.0
    ruthless_temperature: float = 4.0
    normal_noise: float = 0.05
    # Dual-horizon blend
    switch_rounds: float = 4.0
    history_weight_start: float = 0.6
    history_weight_end: float = 0.3
    history_weight_max: float = 0.8
    staleness_minutes: float = 45.0
    # Session
    save_debounce_s: float = 0.25
    train_rounds: int = 15
    heuristic_min_conf: float = 0.34

    @property
    def staleness_ms(self) -> float:
        return self.staleness_minutes * 60.0 * 1000.0

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None, prefix: str = "HEDGEBRAIN_") -> "EngineConfig":
        """Override defaults from ``HEDGEBRAIN_<FIELD>`` variables, e.g. ``HEDGEBRAIN_ETA=1.2``."""
        env = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = env.get(prefix + f.name.upper())
            if raw is None or raw.strip() == "":
                continue
            caster = int if f.type in (int, "int") else float
            try:
                values[f.name] = caster(raw)
            except ValueError as e:
                raise ValueError(f"invalid {prefix + f.name.upper()}={raw!r}") from e
        return cls(**values)


DEFAULT_CONFIG = EngineConfig()
