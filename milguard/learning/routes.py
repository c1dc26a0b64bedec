from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from milguard.auth.achievements import AchievementEvaluator
from milguard.core.deps import get_current_user, get_evaluator, get_storage
from milguard.learning import progress as tracker
from milguard.schemas import User
from milguard.storage.base import Storage

router = APIRouter(prefix="/api/learning", tags=["learning"])


class ProgressUpdateRequest(BaseModel):
    moduleId: str
    progress: Optional[float] = None
    completed: Optional[bool] = None


class AdvanceRequest(BaseModel):
    sectionIndex: int


@router.get("/modules")
def list_modules(storage: Storage = Depends(get_storage)):
    """Active modules ordered by `order`."""
    return [m.to_json() for m in storage.get_learning_modules()]


@router.get("/path")
def get_learning_path(
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return {
        "modules": tracker.learning_path(storage, user.id),
        "overall": tracker.overall_completion(storage, user.id),
    }


@router.get("/progress")
def get_progress(
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    return [p.to_json() for p in storage.get_user_progress(user.id)]


@router.post("/progress")
def post_progress(
    body: ProgressUpdateRequest,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    evaluator: AchievementEvaluator = Depends(get_evaluator),
):
    row, earned = tracker.update_progress(
        storage, evaluator, user.id, body.moduleId, body.progress, body.completed
    )
    data = row.to_json()
    data["achievements"] = [a.to_json() for a in earned]
    return data


@router.post("/modules/{module_id}/advance")
def advance_module_section(
    module_id: str,
    body: AdvanceRequest,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    evaluator: AchievementEvaluator = Depends(get_evaluator),
):
    row, earned = tracker.advance_section(storage, evaluator, user.id, module_id, body.sectionIndex)
    data = row.to_json()
    data["achievements"] = [a.to_json() for a in earned]
    return data
