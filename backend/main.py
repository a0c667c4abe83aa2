"""Planning Poker backend server"""

from fastapi import FastAPI, WebSocket, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import Dict, Optional
from collections import defaultdict
from datetime import datetime, timezone
import time
from contextlib import asynccontextmanager
import uvicorn
import logging

import config
config.setup_logging()

import voting
from errors import SessionNotFound
from socket_manager import socket_manager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Planning Poker backend")
    yield
    socket_manager.sessions.lifecycle.shutdown()
    logger.info("Shutting down Planning Poker backend")


app = FastAPI(title="Planning Poker API", lifespan=lifespan)


# Rate limiter
_rate_limit_store: Dict[str, list] = defaultdict(list)


def _check_rate_limit(client_ip: str) -> bool:
    now = time.time()
    window = config.RATE_LIMIT_WINDOW
    _rate_limit_store[client_ip] = [
        t for t in _rate_limit_store[client_ip] if now - t < window
    ]
    if len(_rate_limit_store[client_ip]) >= config.RATE_LIMIT_MAX_REQUESTS:
        return False
    _rate_limit_store[client_ip].append(now)
    return True


# --- Response Models ---

class PlayerView(BaseModel):
    hasVoted: bool
    vote: Optional[int]
    isSpectator: bool


class SessionStateView(BaseModel):
    players: Dict[str, PlayerView]
    votesRevealed: bool
    hasConsensus: bool


class SessionCreatedResponse(BaseModel):
    sessionCode: str
    shareUrl: str


class SessionResponse(BaseModel):
    sessionCode: str
    state: SessionStateView
    shareUrl: str


# --- Endpoints ---

@app.post("/api/sessions", response_model=SessionCreatedResponse)
async def create_session(req: Request):
    client_ip = req.client.host if req.client else "unknown"
    if not _check_rate_limit(client_ip):
        raise HTTPException(status_code=429, detail="Too many requests. Please wait.")

    manager = socket_manager.sessions
    if await manager.store.count() >= config.MAX_SESSIONS:
        raise HTTPException(status_code=429, detail="Too many active sessions. Try again later.")

    session = await manager.create_session()
    logger.info("Session created via API: %s", session.code)
    return {
        "sessionCode": session.code,
        "shareUrl": voting.share_url(session.code),
    }


@app.get("/api/sessions/{session_code}", response_model=SessionResponse)
async def get_session(session_code: str):
    try:
        return await socket_manager.sessions.get_state(session_code)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")


@app.get("/api/health")
async def api_health():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": config.API_VERSION,
    }


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await socket_manager.connect(websocket)


# --- CORS ---

if config.ALLOWED_ORIGINS.strip():
    origins = [o.strip() for o in config.ALLOWED_ORIGINS.split(",")]
else:
    origins = [config.FRONTEND_URL]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)


@app.get("/")
async def root():
    return {"message": "Planning Poker API is running"}


@app.get("/health")
async def health():
    return {"status": "ok", "service": "planning-poker"}


if __name__ == "__main__":
    uvicorn.run("main:app", host=config.HOST, port=config.PORT, reload=True)
