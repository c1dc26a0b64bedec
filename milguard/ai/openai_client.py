"""
Shared OpenAI client for the text detector.

The key is read once from config; the async client is built on first use
and reused for every request. Failures are recorded so /api/debug/providers
can show the most recent one without digging through logs.
"""
import openai

from milguard.core.config import OPENAI_API_KEY, OPENAI_DETECTION_MODEL, PROVIDER_TIMEOUT_SECONDS

_api_key = OPENAI_API_KEY.strip()
_client: openai.AsyncOpenAI | None = None
_recent_failure: str | None = None


def configured() -> bool:
    return bool(_api_key)


def masked_key() -> str:
    """sk-abc...wxyz style, safe for logs."""
    if not _api_key:
        return "(not set)"
    if len(_api_key) <= 10:
        return _api_key[:2] + "***"
    return f"{_api_key[:6]}...{_api_key[-4:]}"


def get_async_client() -> openai.AsyncOpenAI | None:
    global _client
    if not _api_key:
        return None
    if _client is None:
        _client = openai.AsyncOpenAI(api_key=_api_key, timeout=PROVIDER_TIMEOUT_SECONDS)
    return _client


def record_failure(message: str):
    global _recent_failure
    _recent_failure = message


def status() -> dict:
    return {
        "keyPresent": configured(),
        "keyFingerprint": masked_key(),
        "model": OPENAI_DETECTION_MODEL,
        "lastError": _recent_failure,
        "libraryVersion": openai.__version__,
    }


def log_status():
    print(f"[AI] openai configured={configured()} key={masked_key()} "
          f"model={OPENAI_DETECTION_MODEL} openai=={openai.__version__}", flush=True)
