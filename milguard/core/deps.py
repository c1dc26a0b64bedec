from typing import Optional

from fastapi import Depends, Request

from milguard.analysis.service import AnalysisService
from milguard.auth.achievements import AchievementEvaluator
from milguard.core.errors import AuthRequiredError
from milguard.core.security import token_subject
from milguard.schemas import User
from milguard.storage.base import Storage


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_evaluator(request: Request) -> AchievementEvaluator:
    return request.app.state.evaluator


def get_analysis_service(request: Request) -> AnalysisService:
    return request.app.state.analysis_service


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization")
    if not header:
        return None
    # Support both "Bearer <token>" and raw token values
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return header.strip() or None


def get_optional_user(
    request: Request,
    storage: Storage = Depends(get_storage),
) -> Optional[User]:
    token = _bearer_token(request)
    if not token:
        return None

    user_id = token_subject(token)
    if not user_id:
        print(f"[AUTH] reject reason=invalid_token path={request.url.path}", flush=True)
        raise AuthRequiredError("Invalid token")

    user = storage.get_user(user_id)
    if not user:
        print(f"[AUTH] reject reason=user_not_found path={request.url.path}", flush=True)
        raise AuthRequiredError("User not found")
    return user


def get_current_user(
    request: Request,
    user: Optional[User] = Depends(get_optional_user),
) -> User:
    if user is None:
        print(f"[AUTH] reject reason=missing_token path={request.url.path}", flush=True)
        raise AuthRequiredError("Authentication required")
    return user
