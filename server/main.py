from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Union

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from hedgebrain import EngineConfig, GameBrain, StateStorage
from hedgebrain.utils import move_name

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

# Allow configuring state directory; default to ephemeral path suitable for free tier
STATE_DIR = os.getenv("STATE_DIR", "/var/tmp/rps_state")
brain = GameBrain(
    store=StateStorage(STATE_DIR, redis_url=os.getenv("REDIS_URL")),
    config=EngineConfig.from_env(),
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    # pending learning must reach the store before the process goes away
    brain.close()


app = FastAPI(title="hedgebrain RPS API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("ALLOW_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ProfileReq(BaseModel):
    profile_id: str


class SettingsReq(BaseModel):
    difficulty: Optional[str] = None
    predictor_enabled: Optional[bool] = None


class PredictRes(BaseModel):
    ai_move: str
    meta: Dict[str, Any]


class FeedbackReq(BaseModel):
    user_move: Union[int, str]
    ai_move: Optional[Union[int, str]] = None


@app.post("/profile")
def select_profile(req: ProfileReq):
    brain.select_profile(req.profile_id)
    return brain.status()


@app.post("/settings")
def settings(req: SettingsReq):
    try:
        if req.difficulty is not None:
            brain.set_difficulty(req.difficulty)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if req.predictor_enabled is not None:
        brain.set_predictor(req.predictor_enabled)
    return brain.status()


@app.post("/predict", response_model=PredictRes)
def predict():
    ai_move, meta = brain.predict()
    return PredictRes(ai_move=move_name(ai_move), meta=meta)


@app.post("/feedback")
def feedback(req: FeedbackReq):
    try:
        outcome = brain.feedback(req.user_move, req.ai_move)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "outcome": outcome, "status": brain.status()}


@app.post("/training/begin")
def begin_training():
    brain.begin_training()
    return brain.status()


@app.post("/training/reset")
def reset_training():
    brain.reset_training()
    return brain.status()


@app.post("/save")
def save():
    return {"ok": True, "saved": brain.save()}


@app.get("/")
def root():
    return {"ok": True, "service": "hedgebrain"}


@app.get("/healthz")
def healthz():
    return {"status": "healthy"}
