import uuid

from sqlalchemy import Column, Integer, String, Text, Float, Boolean, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func

from milguard.db.base import Base


class Analysis(Base):
    __tablename__ = "analyses"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Nullable for legacy anonymous rows; new analyses always carry an owner
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)

    # "text" | "image" | "audio"
    content_type = Column(String(16), nullable=False)
    content_text = Column(Text, nullable=True)

    # Original upload metadata for binary content
    file_name = Column(String(255), nullable=True)
    file_type = Column(String(128), nullable=True)
    file_size = Column(Integer, nullable=True)

    # {<provider>: {...}, "overall": {...}}
    results = Column(JSON, nullable=False)
    overall_confidence = Column(Float, nullable=False)
    is_ai_generated = Column(Boolean, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
