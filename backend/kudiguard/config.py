from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# config.py is at backend/kudiguard/config.py -> backend/.env is parents[1]/.env
ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
# Read .env as UTF-8 with BOM support to avoid a malformed first key.
load_dotenv(ENV_PATH, override=True, encoding="utf-8-sig")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


API_VERSION = os.getenv("API_VERSION", "v1.0")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

STORE_BACKEND = os.getenv("STORE_BACKEND", "memory").strip().lower()
if STORE_BACKEND not in {"memory", "supabase"}:
    STORE_BACKEND = "memory"
SUPABASE_TIMEOUT_SEC = max(1, _env_int("SUPABASE_TIMEOUT_SEC", 20))

# Store failures during evaluation are retried this many times, never looped.
PERSIST_RETRY_ATTEMPTS = min(1, max(0, _env_int("PERSIST_RETRY_ATTEMPTS", 1)))

# Intents that only run against a saved financial baseline.
BASELINE_REQUIRED_INTENTS = set(_env_list("BASELINE_REQUIRED_INTENTS", "general_advice"))

CORS_ORIGINS = _env_list("CORS_ORIGINS", "*")
