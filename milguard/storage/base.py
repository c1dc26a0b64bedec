"""
Storage interface used by every core component.

Implementations: ``MemoryStorage`` (process-local dicts behind a lock) and
``SqlStorage`` (SQLAlchemy). Both return the pydantic records from
``milguard.schemas``; nothing outside ``milguard.storage`` sees ORM objects.

Atomicity contract:
  - ``upsert_progress`` reads, merges and writes the (user, module) row as
    one unit. Concurrent upserts for the same pair never produce two rows
    and never lose a completion.
  - ``create_achievement_if_absent`` checks and inserts as one unit and
    returns ``None`` when the (user, type, subject) badge already exists.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from milguard.schemas import (
    Achievement,
    Analysis,
    LearningModule,
    ModuleContent,
    NewAnalysis,
    ProgressPatch,
    User,
    UserProgress,
)


class Storage(ABC):

    # ---------------------------------------------------------------
    # Users
    # ---------------------------------------------------------------
    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]: ...

    @abstractmethod
    def create_user(self, email: str, password_hash: str, name: Optional[str] = None) -> User:
        """Raises ValidationError when the email is already registered."""

    @abstractmethod
    def update_user(self, user_id: str, **updates: Any) -> Optional[User]:
        """Apply ``name`` / ``password_hash`` / ``learning_progress`` updates."""

    # ---------------------------------------------------------------
    # Analyses (append-only)
    # ---------------------------------------------------------------
    @abstractmethod
    def create_analysis(self, analysis: NewAnalysis) -> Analysis: ...

    @abstractmethod
    def get_analysis(self, analysis_id: str) -> Optional[Analysis]: ...

    @abstractmethod
    def get_analyses_by_user(self, user_id: str, limit: Optional[int] = 10) -> list[Analysis]:
        """Newest first. ``limit=None`` returns the full history."""

    @abstractmethod
    def count_analyses(self, user_id: str) -> int: ...

    @abstractmethod
    def get_analysis_times(self, user_id: str, since: Optional[datetime] = None) -> list[datetime]:
        """created_at of the user's analyses at or after *since* (all of them when None)."""

    # ---------------------------------------------------------------
    # Learning modules
    # ---------------------------------------------------------------
    @abstractmethod
    def get_learning_modules(self, include_inactive: bool = False) -> list[LearningModule]:
        """Ordered by ``order``."""

    @abstractmethod
    def get_learning_module(self, module_id: str) -> Optional[LearningModule]: ...

    @abstractmethod
    def create_learning_module(
        self,
        title: str,
        description: str,
        content: ModuleContent,
        order: int,
        is_active: bool = True,
    ) -> LearningModule:
        """Raises ValidationError when ``order`` is already taken."""

    # ---------------------------------------------------------------
    # User progress
    # ---------------------------------------------------------------
    @abstractmethod
    def get_user_progress(self, user_id: str) -> list[UserProgress]: ...

    @abstractmethod
    def get_progress(self, user_id: str, module_id: str) -> Optional[UserProgress]: ...

    @abstractmethod
    def upsert_progress(
        self, user_id: str, module_id: str, patch: ProgressPatch
    ) -> tuple[UserProgress, bool]:
        """
        Create or merge the (user, module) row via ``merge_progress``.
        Returns ``(row, was_completed_before)``.
        """

    # ---------------------------------------------------------------
    # Achievements (append-only)
    # ---------------------------------------------------------------
    @abstractmethod
    def get_user_achievements(self, user_id: str) -> list[Achievement]:
        """Newest first."""

    @abstractmethod
    def create_achievement_if_absent(
        self,
        user_id: str,
        type: str,
        title: str,
        description: str,
        subject_id: str = "",
    ) -> Optional[Achievement]: ...
