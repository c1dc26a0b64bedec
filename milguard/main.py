from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from milguard.ai.openai_client import log_status as log_openai_status
from milguard.core import config
from milguard.core.errors import MilGuardError, StorageError
from milguard.analysis.providers import DetectionService, build_default_detector
from milguard.analysis.service import AnalysisService
from milguard.auth.achievements import AchievementEvaluator
from milguard.learning.content import seed_default_modules
from milguard.storage.base import Storage

from milguard.auth.routes import router as auth_router
from milguard.analysis.routes import router as analysis_router
from milguard.learning.routes import router as learning_router
from milguard.api.routes import router as user_router
from milguard.verification.routes import router as verification_router
from milguard.api.debug_routes import router as debug_router


def build_sql_storage() -> Storage:
    from milguard.db.base import Base, SessionLocal, engine, log_db_diagnostics
    from milguard.storage.sql import SqlStorage
    # Import models so create_all picks them up
    from milguard.auth import models as _auth_models  # noqa: F401
    from milguard.analysis import models as _analysis_models  # noqa: F401
    from milguard.learning import models as _learning_models  # noqa: F401

    log_db_diagnostics(engine)
    # Create database tables (still useful in dev; in production prefer Alembic)
    Base.metadata.create_all(bind=engine)
    return SqlStorage(SessionLocal)


def build_storage() -> Storage:
    if config.STORAGE_BACKEND == "memory":
        from milguard.storage.memory import MemoryStorage
        print("[DB] Using in-memory storage (data is lost on restart)", flush=True)
        return MemoryStorage()
    return build_sql_storage()


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def register_error_handlers(app: FastAPI):

    @app.exception_handler(MilGuardError)
    async def milguard_error_handler(request: Request, exc: MilGuardError):
        if isinstance(exc, StorageError):
            print(f"[ERROR] storage failure path={request.url.path}: {exc.message}", flush=True)
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        parts = []
        for err in exc.errors():
            field = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
            parts.append(f"{field}: {err.get('msg')}" if field else err.get("msg", "invalid input"))
        return _error_response(400, "; ".join(parts) or "Invalid request")


def create_app(
    storage: Optional[Storage] = None,
    detector: Optional[DetectionService] = None,
    streak_threshold: int = config.STREAK_THRESHOLD,
    seed_modules: bool = True,
) -> FastAPI:
    app = FastAPI(title="MIL Guard", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    storage = storage if storage is not None else build_storage()
    detector = detector if detector is not None else build_default_detector()
    evaluator = AchievementEvaluator(storage, streak_threshold=streak_threshold)

    if seed_modules:
        seed_default_modules(storage)

    app.state.storage = storage
    app.state.detector = detector
    app.state.evaluator = evaluator
    app.state.analysis_service = AnalysisService(storage, detector, evaluator)

    register_error_handlers(app)

    # Only expose debug routes when explicitly enabled.
    if config.ENABLE_DEBUG_ROUTES:
        app.include_router(debug_router)

    # Include routers
    app.include_router(auth_router)
    app.include_router(analysis_router)
    app.include_router(learning_router)
    app.include_router(user_router)
    app.include_router(verification_router)

    @app.get("/api/health", include_in_schema=False)
    def health():
        return {
            "status": "OK",
            "service": "MIL Guard API",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


# One-time OpenAI diagnostics at import
log_openai_status()

app = create_app()
