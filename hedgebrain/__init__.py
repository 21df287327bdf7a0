from .blend import BlendWeights, DualHorizonBlender, blend_distributions, compute_blend_weights
from .config import EngineConfig
from .context import Context
from .core import GameBrain
from .experts import (
    EXPERT_LABELS,
    BaitResponseExpert,
    FrequencyExpert,
    MarkovExpert,
    OutcomeExpert,
    PeriodicExpert,
    RecencyExpert,
    WinStayLoseShiftExpert,
    default_experts,
)
from .mixer import HedgeMixer
from .model import MODEL_VERSION, PersistedModel
from .policy import Difficulty, choose_move
from .scheduler import DebouncedSaver
from .storage import MemoryStore, ModelStore, StateStorage

__all__ = [
    "BaitResponseExpert",
    "BlendWeights",
    "Context",
    "DebouncedSaver",
    "Difficulty",
    "DualHorizonBlender",
    "EXPERT_LABELS",
    "EngineConfig",
    "FrequencyExpert",
    "GameBrain",
    "HedgeMixer",
    "MODEL_VERSION",
    "MarkovExpert",
    "MemoryStore",
    "ModelStore",
    "OutcomeExpert",
    "PeriodicExpert",
    "PersistedModel",
    "RecencyExpert",
    "StateStorage",
    "WinStayLoseShiftExpert",
    "blend_distributions",
    "choose_move",
    "compute_blend_weights",
    "default_experts",
]
