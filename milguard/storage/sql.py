"""
SQLAlchemy-backed storage.

Each operation runs in its own session/transaction. Uniqueness of
(user, module) progress rows and (user, type, subject) achievements is
enforced by table constraints; a lost insert race is retried as an update.
"""
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from milguard.analysis import models as analysis_models
from milguard.auth import models as auth_models
from milguard.core.errors import NotFoundError, StorageError, ValidationError
from milguard.learning import models as learning_models
from milguard.schemas import (
    Achievement,
    Analysis,
    LearningModule,
    ModuleContent,
    NewAnalysis,
    ProgressPatch,
    User,
    UserProgress,
    as_utc,
    merge_progress,
    utcnow,
)
from milguard.storage.base import Storage

_USER_FIELDS = {"name", "password_hash", "learning_progress"}


class SqlStorage(Storage):

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            print(f"[DB] storage error: {type(e).__name__}: {e}", flush=True)
            raise StorageError("Storage unavailable") from e
        finally:
            db.close()

    # ---------------------------------------------------------------
    # Users
    # ---------------------------------------------------------------
    def get_user(self, user_id: str) -> Optional[User]:
        with self._session() as db:
            row = db.get(auth_models.User, user_id)
            return User.model_validate(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._session() as db:
            row = db.scalars(
                select(auth_models.User).where(auth_models.User.email == email.strip().lower())
            ).first()
            return User.model_validate(row) if row else None

    def create_user(self, email: str, password_hash: str, name: Optional[str] = None) -> User:
        with self._session() as db:
            row = auth_models.User(
                email=email.strip().lower(),
                password_hash=password_hash,
                name=name,
                learning_progress={},
                created_at=utcnow(),
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise ValidationError("Email already registered")
            db.refresh(row)
            return User.model_validate(row)

    def update_user(self, user_id: str, **updates: Any) -> Optional[User]:
        unknown = set(updates) - _USER_FIELDS
        if unknown:
            raise ValueError(f"Cannot update user fields: {sorted(unknown)}")
        with self._session() as db:
            row = db.get(auth_models.User, user_id)
            if row is None:
                return None
            for key, value in updates.items():
                setattr(row, key, value)
            db.commit()
            db.refresh(row)
            return User.model_validate(row)

    # ---------------------------------------------------------------
    # Analyses
    # ---------------------------------------------------------------
    def create_analysis(self, analysis: NewAnalysis) -> Analysis:
        with self._session() as db:
            values = analysis.model_dump()
            row = analysis_models.Analysis(created_at=utcnow(), **values)
            db.add(row)
            db.commit()
            db.refresh(row)
            return Analysis.model_validate(row)

    def get_analysis(self, analysis_id: str) -> Optional[Analysis]:
        with self._session() as db:
            row = db.get(analysis_models.Analysis, analysis_id)
            return Analysis.model_validate(row) if row else None

    def get_analyses_by_user(self, user_id: str, limit: Optional[int] = 10) -> list[Analysis]:
        with self._session() as db:
            stmt = (
                select(analysis_models.Analysis)
                .where(analysis_models.Analysis.user_id == user_id)
                .order_by(analysis_models.Analysis.created_at.desc())
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            return [Analysis.model_validate(r) for r in db.scalars(stmt).all()]

    def count_analyses(self, user_id: str) -> int:
        with self._session() as db:
            return db.scalar(
                select(func.count(analysis_models.Analysis.id))
                .where(analysis_models.Analysis.user_id == user_id)
            ) or 0

    def get_analysis_times(self, user_id: str, since: Optional[datetime] = None) -> list[datetime]:
        with self._session() as db:
            stmt = select(analysis_models.Analysis.created_at).where(analysis_models.Analysis.user_id == user_id)
            if since is not None:
                stmt = stmt.where(analysis_models.Analysis.created_at >= since)
            return [as_utc(t) for t in db.scalars(stmt).all()]

    # ---------------------------------------------------------------
    # Learning modules
    # ---------------------------------------------------------------
    def get_learning_modules(self, include_inactive: bool = False) -> list[LearningModule]:
        with self._session() as db:
            stmt = select(learning_models.LearningModule).order_by(learning_models.LearningModule.order)
            if not include_inactive:
                stmt = stmt.where(learning_models.LearningModule.is_active.is_(True))
            return [LearningModule.model_validate(r) for r in db.scalars(stmt).all()]

    def get_learning_module(self, module_id: str) -> Optional[LearningModule]:
        with self._session() as db:
            row = db.get(learning_models.LearningModule, module_id)
            return LearningModule.model_validate(row) if row else None

    def create_learning_module(
        self,
        title: str,
        description: str,
        content: ModuleContent,
        order: int,
        is_active: bool = True,
    ) -> LearningModule:
        with self._session() as db:
            row = learning_models.LearningModule(
                title=title,
                description=description,
                content=content.to_json(),
                order=order,
                is_active=is_active,
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise ValidationError(f"Module order {order} is already taken")
            db.refresh(row)
            return LearningModule.model_validate(row)

    # ---------------------------------------------------------------
    # User progress
    # ---------------------------------------------------------------
    def get_user_progress(self, user_id: str) -> list[UserProgress]:
        with self._session() as db:
            rows = db.scalars(
                select(learning_models.UserProgress)
                .where(learning_models.UserProgress.user_id == user_id)
            ).all()
            return [UserProgress.model_validate(r) for r in rows]

    def get_progress(self, user_id: str, module_id: str) -> Optional[UserProgress]:
        with self._session() as db:
            row = self._progress_row(db, user_id, module_id)
            return UserProgress.model_validate(row) if row else None

    @staticmethod
    def _progress_row(db: Session, user_id: str, module_id: str, for_update: bool = False):
        stmt = select(learning_models.UserProgress).where(
            learning_models.UserProgress.user_id == user_id,
            learning_models.UserProgress.module_id == module_id,
        )
        if for_update:
            # Row lock on PostgreSQL; SQLite serialises writers anyway
            stmt = stmt.with_for_update()
        return db.scalars(stmt).first()

    def upsert_progress(
        self, user_id: str, module_id: str, patch: ProgressPatch
    ) -> tuple[UserProgress, bool]:
        with self._session() as db:
            if db.get(learning_models.LearningModule, module_id) is None:
                raise NotFoundError("Learning module not found")

            # Second attempt covers a concurrent insert of the same pair
            for attempt in range(2):
                row = self._progress_row(db, user_id, module_id, for_update=True)
                existing = UserProgress.model_validate(row) if row else None
                was_completed = bool(existing and existing.completed)
                completed, progress = merge_progress(existing, patch)

                if row is None:
                    row = learning_models.UserProgress(user_id=user_id, module_id=module_id)
                    db.add(row)
                row.completed = completed
                row.progress = progress
                row.last_accessed = utcnow()
                try:
                    db.commit()
                except IntegrityError:
                    db.rollback()
                    if attempt == 0:
                        print(f"[PROGRESS] upsert race user={user_id} module={module_id}, retrying", flush=True)
                        continue
                    raise StorageError("Could not save progress")
                db.refresh(row)
                return UserProgress.model_validate(row), was_completed

        raise StorageError("Could not save progress")

    # ---------------------------------------------------------------
    # Achievements
    # ---------------------------------------------------------------
    def get_user_achievements(self, user_id: str) -> list[Achievement]:
        with self._session() as db:
            rows = db.scalars(
                select(auth_models.Achievement)
                .where(auth_models.Achievement.user_id == user_id)
                .order_by(auth_models.Achievement.earned_at.desc())
            ).all()
            return [Achievement.model_validate(r) for r in rows]

    @staticmethod
    def _achievement_row(db: Session, user_id: str, type: str, subject_id: str):
        return db.scalars(
            select(auth_models.Achievement).where(
                auth_models.Achievement.user_id == user_id,
                auth_models.Achievement.type == type,
                auth_models.Achievement.subject_id == subject_id,
            )
        ).first()

    def create_achievement_if_absent(
        self,
        user_id: str,
        type: str,
        title: str,
        description: str,
        subject_id: str = "",
    ) -> Optional[Achievement]:
        with self._session() as db:
            if self._achievement_row(db, user_id, type, subject_id) is not None:
                return None
            row = auth_models.Achievement(
                user_id=user_id,
                type=type,
                subject_id=subject_id,
                title=title,
                description=description,
                earned_at=utcnow(),
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError:
                # Another request awarded it between our check and insert
                db.rollback()
                return None
            db.refresh(row)
            return Achievement.model_validate(row)
