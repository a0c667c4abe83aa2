"""Centralized configuration. All env vars in one place."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:8080")
API_VERSION = "2.0"

# --- Rate Limiting ---
RATE_LIMIT_WINDOW = 60  # seconds
RATE_LIMIT_MAX_REQUESTS = 10  # max session creations per window per IP

# --- WebSocket Security ---
WS_RATE_LIMIT_PER_SEC = 10
MAX_WS_MESSAGE_SIZE = 4096  # bytes
WS_SEND_TIMEOUT_SECONDS = float(os.getenv("WS_SEND_TIMEOUT_SECONDS", "5"))

# --- Storage Limits ---
MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", "500"))
STORE_MAX_RETRIES = 3
STORE_RETRY_BACKOFF = 0.05  # seconds, multiplied by attempt number

# --- Sessions ---
SESSION_CODE_LENGTH = 8
MAX_SESSION_CODE_ATTEMPTS = 10
MAX_PLAYER_NAME_LENGTH = 20
SESSION_IDLE_TIMEOUT_SECONDS = int(os.getenv("SESSION_IDLE_TIMEOUT_SECONDS", "7200"))
EMPTY_SESSION_GRACE_SECONDS = int(os.getenv("EMPTY_SESSION_GRACE_SECONDS", "600"))

# --- Voting ---
VOTE_SCALE = (1, 2, 3, 5, 8, 13)

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")


def setup_logging():
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
