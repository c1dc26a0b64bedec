"""
Learning module + per-user module progress models.
"""
import uuid

from sqlalchemy import Column, Integer, String, Text, Float, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint, true
from sqlalchemy.sql import func

from milguard.db.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class LearningModule(Base):
    __tablename__ = "learning_modules"

    id = Column(String(36), primary_key=True, default=_uuid)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)

    # {"sections": [{"title": ..., "type": "text|video|quiz|interactive", "content": ...}]}
    content = Column(JSON, nullable=False)

    # 1-based position; defines display order and unlock dependency
    order = Column("order", Integer, nullable=False, unique=True)

    # Soft-delete / draft marker
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())


class UserProgress(Base):
    """
    One row per (user, module). Created lazily on first interaction,
    updated on every advance / completion, never deleted.
    """
    __tablename__ = "user_progress"

    id = Column(String(36), primary_key=True, default=_uuid)

    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    module_id = Column(String(36), ForeignKey("learning_modules.id"), nullable=False)

    completed = Column(Boolean, nullable=False, default=False)
    progress = Column(Float, nullable=False, default=0.0)

    last_accessed = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "module_id", name="uq_user_module_progress"),
    )
