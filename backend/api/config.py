"""
Application settings read from the environment (.env is loaded on import).
"""
import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DB_PATH = Path(__file__).parent.parent / "hexgame.db"

DEFAULT_CORS_ORIGINS = [
    "http://localhost",
    "http://localhost:80",
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1",
    "http://127.0.0.1:80",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]


def environment() -> str:
    return os.getenv("ENVIRONMENT", "development")


def db_path() -> Path:
    """Database file; read on every call so tests can point it elsewhere."""
    value = os.getenv("HEXGAME_DB_PATH")
    return Path(value) if value else DEFAULT_DB_PATH


def cors_origins() -> List[str]:
    # Comma-separated list, falling back to localhost ports for development
    value = os.getenv("CORS_ORIGINS", "")
    if value:
        return [origin.strip() for origin in value.split(",") if origin.strip()]
    return list(DEFAULT_CORS_ORIGINS)


def sse_keepalive_seconds() -> float:
    return float(os.getenv("SSE_KEEPALIVE_SECONDS", "15"))
