"""
API routes for the user dashboard, achievements and profile.
"""
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from milguard.analysis.routes import analysis_summary
from milguard.auth.achievements import AchievementEvaluator, achievement_catalog, analysis_days, current_streak
from milguard.core.deps import get_current_user, get_evaluator, get_storage
from milguard.learning.progress import overall_completion
from milguard.schemas import User
from milguard.storage.base import Storage

router = APIRouter(prefix="/api/user", tags=["user"])

RECENT_ANALYSES = 5


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    learningProgress: Optional[dict[str, Any]] = None


@router.get("/dashboard")
def get_dashboard(
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    """
    Aggregate stats for the dashboard: analysis counts, learning completion,
    current streak, recent analyses and earned achievements.
    """
    history = storage.get_analyses_by_user(user.id, limit=None)
    completion = overall_completion(storage, user.id)
    return {
        "totalAnalyses": len(history),
        "aiDetected": sum(1 for a in history if a.is_ai_generated),
        "modulesCompleted": completion["completedModules"],
        "totalModules": completion["totalModules"],
        "overallProgress": completion["percentage"],
        "streakDays": current_streak(analysis_days(storage, user.id)),
        "recentAnalyses": [analysis_summary(a) for a in history[:RECENT_ANALYSES]],
        "achievements": [a.to_json() for a in storage.get_user_achievements(user.id)],
    }


@router.get("/achievements")
def get_achievements(
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    evaluator: AchievementEvaluator = Depends(get_evaluator),
):
    return {"achievements": achievement_catalog(storage, user.id, evaluator.streak_threshold)}


@router.patch("/profile")
def update_profile(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    updates = {}
    if body.name is not None:
        updates["name"] = body.name.strip() or None
    if body.learningProgress is not None:
        updates["learning_progress"] = body.learningProgress
    if updates:
        user = storage.update_user(user.id, **updates)
    return {"user": user.to_json()}
