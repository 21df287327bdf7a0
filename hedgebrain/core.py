from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import numpy as np

from .blend import BlendResult, DualHorizonBlender
from .config import DEFAULT_CONFIG, EngineConfig
from .context import Context
from .heuristics import predict_next
from .model import format_timestamp, utcnow
from .policy import Difficulty, choose_move, random_move
from .scheduler import DebouncedSaver
from .storage import MemoryStore, ModelStore
from .utils import (
    MoveLike,
    counter_move,
    dist_to_dict,
    move_name,
    normalize,
    parse_move,
    resolve_outcome,
    top_move,
)

logger = logging.getLogger(__name__)


def _expert_rows(snapshot: Dict[str, Any]) -> List[Dict[str, Any]]:
    rows = []
    preds = snapshot.get("predictions")
    for i, (name, w) in enumerate(zip(snapshot["names"], snapshot["weights"])):
        p = preds[i] if preds is not None else None
        top = top_move(p) if p is not None else None
        rows.append({
            "name": name,
            "weight": float(w),
            "topMove": move_name(top) if top is not None else None,
            "probability": float(p[top]) if p is not None else 0.0,
        })
    return rows


def _blended_expert_rows(blend: BlendResult) -> List[Dict[str, Any]]:
    """Per-expert view across both horizons, weighted like the distributions."""
    rw, hw = blend.weights
    rt, hist = blend.realtime_snapshot, blend.history_snapshot
    rows = []
    for i, name in enumerate(rt["names"]):
        w = rw * rt["weights"][i] + hw * hist["weights"][i]
        p = normalize(rw * rt["predictions"][i] + hw * hist["predictions"][i])
        top = top_move(p)
        rows.append({"name": name, "weight": float(w), "topMove": move_name(top), "probability": float(p[top])})
    return rows


def _top_experts(rows: List[Dict[str, Any]], k: int = 3) -> List[Dict[str, Any]]:
    return sorted(rows, key=lambda r: r["weight"], reverse=True)[:k]


def build_trace(blend: BlendResult, blender: DualHorizonBlender) -> Dict[str, Any]:
    """Inspection trace of one prediction, in the shape the UI reads."""
    dist = blend.distribution
    predicted = top_move(dist)
    rt_top, hist_top = top_move(blend.realtime), top_move(blend.history)
    conflict = None
    if blend.weights.history > 0 and rt_top != hist_top:
        conflict = {"realtime": move_name(rt_top), "history": move_name(hist_top)}
    experts = _blended_expert_rows(blend)
    return {
        "distribution": dist_to_dict(dist),
        "experts": experts,
        "topExperts": _top_experts(experts),
        "confidence": float(np.max(dist)),
        "predictedMove": move_name(predicted),
        "counterMove": move_name(counter_move(predicted)),
        "realtimeWeight": blend.weights.realtime,
        "historyWeight": blend.weights.history,
        "realtimeDistribution": dist_to_dict(blend.realtime),
        "historyDistribution": dist_to_dict(blend.history),
        "realtimeExperts": _expert_rows(blend.realtime_snapshot),
        "historyExperts": _expert_rows(blend.history_snapshot),
        "realtimeRounds": blender.session_rounds,
        "historyRounds": blender.rounds_seen,
        "historyUpdatedAt": format_timestamp(blender.updated_at) if blender.updated_at else None,
        "conflict": conflict,
        "realtimeMove": move_name(rt_top),
        "historyMove": move_name(hist_top),
    }


class GameBrain:
    """
    Opponent-prediction engine for Rock-Paper-Scissors.

    - Predicts the player's next move with two Hedge mixtures over the same
      behavioural experts: a realtime one for this session and a history one
      persisted per profile
    - Blends them by session progress and history staleness
    - Picks the AI move with the difficulty policy; falls back to light
      heuristics until the profile is trained and the predictor is on
    - Saves the history mixture through a debounced store
    """

    def __init__(
        self,
        store: Optional[ModelStore] = None,
        config: Optional[EngineConfig] = None,
        difficulty: Union[str, Difficulty] = Difficulty.NORMAL,
        predictor_enabled: bool = False,
        trained: bool = False,
        random_seed: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
        saver: Optional[DebouncedSaver] = None,
    ):
        self.config = config or DEFAULT_CONFIG
        self.store = store if store is not None else MemoryStore()
        self.difficulty = Difficulty.parse(difficulty)
        self.predictor_enabled = bool(predictor_enabled)
        self.is_trained = bool(trained)
        self.training_active = False
        self.training_count = 0
        self._random = random.Random(random_seed)
        self.clock = clock or utcnow
        self.saver = saver or DebouncedSaver(self.store.save, delay=self.config.save_debounce_s)

        self.profile_id: Optional[str] = None
        self.blender = DualHorizonBlender(config=self.config)
        self.player_moves: List[int] = []
        self.ai_moves: List[int] = []
        self.outcomes: List[str] = []
        self._pending_ai: Optional[int] = None
        self._predicted = False

    # ---------------------- Session lifecycle ----------------------
    def rng(self) -> float:
        return self._random.random()

    def select_profile(self, profile_id: str) -> None:
        """Switch profile: flush the previous one, load this one's history mixer."""
        self.saver.flush()
        try:
            persisted = self.store.load(profile_id)
        except Exception as e:
            logger.warning("Loading model for %s failed, starting fresh: %s", profile_id, e)
            persisted = None
        if persisted is None:
            logger.info("No stored model for %s, starting fresh", profile_id)
        self.profile_id = profile_id
        self.blender = DualHorizonBlender(profile_id=profile_id, persisted=persisted, config=self.config)
        self.start_session()

    def start_session(self) -> None:
        """Discard the realtime mixer and the round history."""
        self.blender.reset_realtime()
        self.player_moves, self.ai_moves, self.outcomes = [], [], []
        self._pending_ai = None
        self._predicted = False

    def close(self) -> None:
        """End the session; pending learning is written synchronously."""
        self.saver.flush()
        self.start_session()

    def save(self) -> bool:
        return self.saver.flush()

    def set_difficulty(self, difficulty: Union[str, Difficulty]) -> None:
        self.difficulty = Difficulty.parse(difficulty)

    def set_predictor(self, enabled: bool) -> None:
        self.predictor_enabled = bool(enabled)

    def begin_training(self) -> None:
        self.training_active = True
        self.training_count = 0
        self.start_session()

    def reset_training(self) -> None:
        """Forget everything learned for the current profile."""
        self.saver.cancel()
        if self.profile_id is not None:
            try:
                self.store.clear(self.profile_id)
            except Exception as e:
                logger.warning("Clearing model for %s failed: %s", self.profile_id, e)
        self.blender = DualHorizonBlender(profile_id=self.profile_id, config=self.config)
        self.is_trained = False
        self.predictor_enabled = False
        self.difficulty = Difficulty.FAIR
        self.training_active = False
        self.training_count = 0
        self.start_session()

    # ---------------------- Policy gates ----------------------
    @property
    def predicting(self) -> bool:
        return self.predictor_enabled or self.training_active

    @property
    def trainable(self) -> bool:
        return self.training_active or (self.predictor_enabled and self.difficulty is not Difficulty.FAIR)

    @property
    def uses_mixer(self) -> bool:
        return (
            self.is_trained
            and not self.training_active
            and self.predictor_enabled
            and self.difficulty is not Difficulty.FAIR
            and len(self.player_moves) > 0
        )

    def context(self) -> Context:
        return Context(tuple(self.player_moves), tuple(self.ai_moves), tuple(self.outcomes), self.rng)

    # ---------------------- Round cycle ----------------------
    def predict(self, now: Optional[datetime] = None) -> Tuple[int, Dict[str, Any]]:
        """Pick the AI move for the coming round. Returns (ai_move, trace)."""
        ctx = self.context()
        blend = self.blender.predict(ctx, now or self.clock())
        self._predicted = True
        trace = build_trace(blend, self.blender)
        if self.uses_mixer:
            move = choose_move(blend.distribution, self.difficulty, self.rng, self.config)
            trace["policy"] = "mixer"
            trace["reason"] = "expert mixture"
        else:
            move, reason = self._heuristic_move(ctx)
            trace["policy"] = "heuristic"
            trace["reason"] = reason
        trace["difficulty"] = self.difficulty.value
        trace["aiMove"] = move_name(move)
        self._pending_ai = move
        return move, trace

    def _heuristic_move(self, ctx: Context) -> Tuple[int, str]:
        predicted, conf, reason = predict_next(ctx.player_moves, self.rng)
        if predicted is None or conf < self.config.heuristic_min_conf:
            return random_move(self.rng), reason
        one_hot = np.zeros(3, dtype=np.float64)
        one_hot[predicted] = 1.0
        return choose_move(one_hot, self.difficulty, self.rng, self.config), reason

    def feedback(self, player_move: MoveLike, ai_move: Optional[MoveLike] = None, now: Optional[datetime] = None) -> str:
        """Record the revealed round and learn from it. Returns the player's outcome."""
        player = parse_move(player_move)
        if ai_move is not None:
            ai = parse_move(ai_move)
        elif self._pending_ai is not None:
            ai = self._pending_ai
        else:
            raise ValueError("no AI move for this round; call predict() first or pass ai_move")
        now = now or self.clock()
        outcome = resolve_outcome(player, ai)

        # learn from the context as it stood before this round
        ctx = self.context()
        if not self._predicted:
            self.blender.predict(ctx, now)
        update_history = self.trainable
        self.blender.update(ctx, player, update_realtime=self.predicting, update_history=update_history, now=now)
        if update_history and self.profile_id is not None:
            self.saver.schedule(self.profile_id, self.blender.export_model())

        self.player_moves.append(player)
        self.ai_moves.append(ai)
        self.outcomes.append(outcome)
        self._pending_ai = None
        self._predicted = False

        if self.training_active:
            self.training_count = min(self.config.train_rounds, self.training_count + 1)
            if self.training_count >= self.config.train_rounds:
                self.training_active = False
                self.is_trained = True
                logger.info("Training complete for %s", self.profile_id)
        return outcome

    def status(self) -> Dict[str, Any]:
        return {
            "profileId": self.profile_id,
            "difficulty": self.difficulty.value,
            "predictorEnabled": self.predictor_enabled,
            "trained": self.is_trained,
            "trainingActive": self.training_active,
            "trainingCount": self.training_count,
            "rounds": len(self.player_moves),
            "historyRounds": self.blender.rounds_seen,
            "pendingSave": self.saver.pending,
        }
