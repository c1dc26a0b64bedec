"""
In-memory storage. Dicts keyed by id keep insertion order, which keeps
iteration deterministic in tests. One re-entrant lock guards every read and
write, so threadpool requests never iterate a dict that is being resized.
"""
import threading
from datetime import datetime
import uuid
from typing import Any, Optional

from milguard.core.errors import NotFoundError, ValidationError
from milguard.schemas import (
    Achievement,
    Analysis,
    LearningModule,
    ModuleContent,
    NewAnalysis,
    ProgressPatch,
    User,
    UserProgress,
    merge_progress,
    utcnow,
)
from milguard.storage.base import Storage

_USER_FIELDS = {"name", "password_hash", "learning_progress"}


def _new_id() -> str:
    return str(uuid.uuid4())


class MemoryStorage(Storage):

    def __init__(self):
        self._lock = threading.RLock()
        self._users: dict[str, User] = {}
        self._analyses: dict[str, Analysis] = {}
        self._modules: dict[str, LearningModule] = {}
        self._progress: dict[tuple[str, str], UserProgress] = {}
        self._achievements: dict[str, Achievement] = {}

    # ---------------------------------------------------------------
    # Users
    # ---------------------------------------------------------------
    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        with self._lock:
            return next((u for u in self._users.values() if u.email == email), None)

    def create_user(self, email: str, password_hash: str, name: Optional[str] = None) -> User:
        with self._lock:
            if self.get_user_by_email(email):
                raise ValidationError("Email already registered")
            user = User(
                id=_new_id(),
                email=email.strip().lower(),
                password_hash=password_hash,
                name=name,
                learning_progress={},
                created_at=utcnow(),
            )
            self._users[user.id] = user
            return user

    def update_user(self, user_id: str, **updates: Any) -> Optional[User]:
        unknown = set(updates) - _USER_FIELDS
        if unknown:
            raise ValueError(f"Cannot update user fields: {sorted(unknown)}")
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            user = user.model_copy(update=updates)
            self._users[user_id] = user
            return user

    # ---------------------------------------------------------------
    # Analyses
    # ---------------------------------------------------------------
    def create_analysis(self, analysis: NewAnalysis) -> Analysis:
        record = Analysis(id=_new_id(), created_at=utcnow(), **analysis.model_dump())
        with self._lock:
            self._analyses[record.id] = record
        return record

    def get_analysis(self, analysis_id: str) -> Optional[Analysis]:
        with self._lock:
            return self._analyses.get(analysis_id)

    def get_analyses_by_user(self, user_id: str, limit: Optional[int] = 10) -> list[Analysis]:
        # Reverse insertion order breaks created_at ties newest-first
        with self._lock:
            rows = [a for a in reversed(list(self._analyses.values())) if a.user_id == user_id]
        rows.sort(key=lambda a: a.created_at, reverse=True)
        return rows if limit is None else rows[:limit]

    def count_analyses(self, user_id: str) -> int:
        with self._lock:
            return sum(1 for a in self._analyses.values() if a.user_id == user_id)

    def get_analysis_times(self, user_id: str, since: Optional[datetime] = None) -> list[datetime]:
        with self._lock:
            return [
                a.created_at for a in self._analyses.values()
                if a.user_id == user_id and (since is None or a.created_at >= since)
            ]

    # ---------------------------------------------------------------
    # Learning modules
    # ---------------------------------------------------------------
    def get_learning_modules(self, include_inactive: bool = False) -> list[LearningModule]:
        with self._lock:
            modules = [m for m in self._modules.values() if include_inactive or m.is_active]
        return sorted(modules, key=lambda m: m.order)

    def get_learning_module(self, module_id: str) -> Optional[LearningModule]:
        with self._lock:
            return self._modules.get(module_id)

    def create_learning_module(
        self,
        title: str,
        description: str,
        content: ModuleContent,
        order: int,
        is_active: bool = True,
    ) -> LearningModule:
        with self._lock:
            if any(m.order == order for m in self._modules.values()):
                raise ValidationError(f"Module order {order} is already taken")
            module = LearningModule(
                id=_new_id(),
                title=title,
                description=description,
                content=content,
                order=order,
                is_active=is_active,
            )
            self._modules[module.id] = module
            return module

    # ---------------------------------------------------------------
    # User progress
    # ---------------------------------------------------------------
    def get_user_progress(self, user_id: str) -> list[UserProgress]:
        with self._lock:
            return [p for (uid, _), p in self._progress.items() if uid == user_id]

    def get_progress(self, user_id: str, module_id: str) -> Optional[UserProgress]:
        with self._lock:
            return self._progress.get((user_id, module_id))

    def upsert_progress(
        self, user_id: str, module_id: str, patch: ProgressPatch
    ) -> tuple[UserProgress, bool]:
        with self._lock:
            if module_id not in self._modules:
                raise NotFoundError("Learning module not found")
            existing = self._progress.get((user_id, module_id))
            was_completed = bool(existing and existing.completed)
            completed, progress = merge_progress(existing, patch)
            row = UserProgress(
                id=existing.id if existing else _new_id(),
                user_id=user_id,
                module_id=module_id,
                completed=completed,
                progress=progress,
                last_accessed=utcnow(),
            )
            self._progress[(user_id, module_id)] = row
            return row, was_completed

    # ---------------------------------------------------------------
    # Achievements
    # ---------------------------------------------------------------
    def get_user_achievements(self, user_id: str) -> list[Achievement]:
        with self._lock:
            rows = [a for a in reversed(list(self._achievements.values())) if a.user_id == user_id]
        rows.sort(key=lambda a: a.earned_at, reverse=True)
        return rows

    def create_achievement_if_absent(
        self,
        user_id: str,
        type: str,
        title: str,
        description: str,
        subject_id: str = "",
    ) -> Optional[Achievement]:
        with self._lock:
            for a in self._achievements.values():
                if a.user_id == user_id and a.type == type and a.subject_id == subject_id:
                    return None
            achievement = Achievement(
                id=_new_id(),
                user_id=user_id,
                type=type,
                subject_id=subject_id,
                title=title,
                description=description,
                earned_at=utcnow(),
            )
            self._achievements[achievement.id] = achievement
            return achievement
