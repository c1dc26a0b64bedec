"""
Shared data shapes: storage records, detection results and learning content.

Python attributes are snake_case; the JSON wire format is camelCase, so every
model is dumped with ``by_alias=True``.
"""
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_serializer, model_validator
from pydantic.alias_generators import to_camel


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we store is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]

ContentType = Literal["text", "image", "audio"]
CONTENT_TYPES = ("text", "image", "audio")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# ======================================================
# DETECTION RESULTS
# ======================================================
class ProviderResult(CamelModel):
    """One provider's verdict. ``confidence`` is the probability of AI generation."""

    confidence: float
    is_ai_generated: bool
    reasoning: Optional[str] = None
    indicators: list[str] = Field(default_factory=list)
    # Provider-specific extras (raw scores, model names, request ids ...)
    metadata: dict[str, Any] = Field(default_factory=dict)


class OverallVerdict(ProviderResult):
    reasoning: str
    provider_count: int


class DetectionReport(BaseModel):
    """
    Per-provider results plus the combined verdict.

    On the wire (and in the ``analyses.results`` column) this is a flat object:
    ``{<provider>: {...}, ..., "overall": {...}}``.
    """

    providers: dict[str, ProviderResult]
    overall: OverallVerdict

    @model_validator(mode="before")
    @classmethod
    def _from_flat(cls, data: Any) -> Any:
        if isinstance(data, dict) and "providers" not in data:
            flat = dict(data)
            overall = flat.pop("overall", None)
            return {"providers": flat, "overall": overall}
        return data

    @model_serializer
    def _to_flat(self) -> dict[str, Any]:
        out = {name: result.to_json() for name, result in self.providers.items()}
        out["overall"] = self.overall.to_json()
        return out


# ======================================================
# LEARNING CONTENT (tagged section variants)
# ======================================================
class QuizQuestion(CamelModel):
    question: str
    options: list[str]
    answer_index: int


class _SectionBase(CamelModel):
    title: str
    content: str


class TextSection(_SectionBase):
    type: Literal["text"] = "text"


class VideoSection(_SectionBase):
    type: Literal["video"] = "video"
    video_url: Optional[str] = None


class QuizSection(_SectionBase):
    type: Literal["quiz"] = "quiz"
    questions: list[QuizQuestion] = Field(default_factory=list)


class InteractiveSection(_SectionBase):
    type: Literal["interactive"] = "interactive"


Section = Annotated[
    Union[TextSection, VideoSection, QuizSection, InteractiveSection],
    Field(discriminator="type"),
]


class ModuleContent(CamelModel):
    sections: list[Section] = Field(default_factory=list)


# ======================================================
# STORAGE RECORDS
# ======================================================
class User(CamelModel):
    id: str
    email: str
    password_hash: str = Field(exclude=True)
    name: Optional[str] = None
    learning_progress: dict[str, Any] = Field(default_factory=dict)
    created_at: UtcDatetime


class Analysis(CamelModel):
    id: str
    user_id: Optional[str] = None
    content_type: ContentType
    content_text: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    results: DetectionReport
    overall_confidence: float
    is_ai_generated: bool
    created_at: UtcDatetime


class NewAnalysis(CamelModel):
    """Everything the caller supplies when persisting an analysis."""

    user_id: Optional[str] = None
    content_type: ContentType
    content_text: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    results: DetectionReport
    overall_confidence: float
    is_ai_generated: bool


class LearningModule(CamelModel):
    id: str
    title: str
    description: str
    content: ModuleContent
    order: int
    is_active: bool = True


class UserProgress(CamelModel):
    id: str
    user_id: str
    module_id: str
    completed: bool = False
    progress: float = 0.0
    last_accessed: UtcDatetime


class ProgressPatch(BaseModel):
    progress: Optional[float] = None
    completed: Optional[bool] = None


def merge_progress(existing: Optional[UserProgress], patch: ProgressPatch) -> tuple[bool, float]:
    """
    Resolve (completed, progress) for an upsert.

    A completed row stays completed. ``completed=True`` or progress reaching
    1.0 completes the row, which pins progress to 1.0.
    """
    if existing is not None and existing.completed:
        return True, 1.0
    if patch.progress is not None:
        progress = patch.progress
    else:
        progress = existing.progress if existing is not None else 0.0
    if patch.completed or progress >= 1.0:
        return True, 1.0
    return False, progress


class Achievement(CamelModel):
    id: str
    user_id: str
    type: str
    subject_id: str = ""
    title: str
    description: str
    earned_at: UtcDatetime
