import uuid

from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from milguard.db.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)

    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    name = Column(String(255), nullable=True)

    # Legacy free-form map kept for older clients; module progress lives in user_progress
    learning_progress = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ======================================================
# ACHIEVEMENTS
# ======================================================
class Achievement(Base):
    __tablename__ = "achievements"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    # e.g. "first_analysis", "streak", "module_complete", "curriculum_complete"
    type = Column(String(64), nullable=False)
    # Qualifying instance (module id, streak length); "" when not tied to one.
    # Never NULL: NULLs are distinct in unique constraints.
    subject_id = Column(String(64), nullable=False, default="")

    title = Column(String(255), nullable=False)
    description = Column(String, nullable=False)
    earned_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "type", "subject_id", name="uq_user_achievement"),
    )
