"""
Configuration constants for the application.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
env_path = Path(__file__).resolve().parent.parent.parent / '.env'
load_dotenv(dotenv_path=env_path)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Storage backend: "sql" (SQLAlchemy, default) or "memory" (process-local, dev/tests)
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "sql").strip().lower()

# Upload / input limits
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
MAX_TEXT_CHARS = int(os.getenv("MAX_TEXT_CHARS", "50000"))

# Per-provider timeout for detection / verification calls (seconds)
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "15"))

# Consecutive days with at least one analysis needed for the streak badge
STREAK_THRESHOLD = int(os.getenv("STREAK_THRESHOLD", "3"))

# Reject progress writes against modules that are still locked
ENFORCE_MODULE_LOCK = _env_bool("ENFORCE_MODULE_LOCK", True)

# Provider credentials
# IMPORTANT: Do NOT hardcode keys in code or commit them to git.
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_DETECTION_MODEL = os.getenv("OPENAI_DETECTION_MODEL", "gpt-4o-mini")
GPTZERO_API_KEY = os.getenv("GPTZERO_API_KEY", "").strip()
AIORNOT_API_KEY = os.getenv("AIORNOT_API_KEY", "").strip()
GOOGLE_FACTCHECK_API_KEY = os.getenv("GOOGLE_FACTCHECK_API_KEY", "").strip()

# Comma separated list of origins allowed by CORS ("*" for any)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

ENABLE_DEBUG_ROUTES = _env_bool("ENABLE_DEBUG_ROUTES", False)

# Auth tokens
# SECRET_KEY is read in milguard.core.security so the dev fallback warning prints once
TOKEN_TTL_MINUTES = int(os.getenv("TOKEN_TTL_MINUTES", str(60 * 24)))
PASSWORD_HASH_ITERATIONS = int(os.getenv("PASSWORD_HASH_ITERATIONS", "200000"))
