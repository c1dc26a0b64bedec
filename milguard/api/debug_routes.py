"""
Operator-only diagnostics, mounted when ENABLE_DEBUG_ROUTES=1.
Nothing here returns secrets: keys and passwords are masked.
"""
from fastapi import APIRouter, Request

from milguard.ai import openai_client
from milguard.db.base import describe_database, engine
from milguard.storage.sql import SqlStorage

router = APIRouter(prefix="/api/debug", tags=["debug"])


@router.get("/providers")
def debug_providers(request: Request):
    detector = request.app.state.detector
    return {
        "providers": [
            {"name": p.name, "contentTypes": list(p.content_types)}
            for p in detector.providers
        ],
        "timeoutSeconds": detector.timeout,
        "openai": openai_client.status(),
    }


@router.get("/diagnostics/db")
def db_diagnostics(request: Request):
    if not isinstance(request.app.state.storage, SqlStorage):
        return {"backend": "memory"}
    return describe_database(engine)
