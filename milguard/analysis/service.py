"""
Request orchestration for content analysis:
auth check -> input validation -> provider fan-out -> aggregate -> persist -> achievements.
"""
import asyncio
from typing import Optional

from milguard.analysis.aggregator import aggregate_results
from milguard.analysis.providers import ContentPayload, DetectionService
from milguard.auth.achievements import AchievementEvaluator
from milguard.core.config import MAX_TEXT_CHARS, MAX_UPLOAD_BYTES
from milguard.core.errors import AuthRequiredError, NoVerdictError, ValidationError
from milguard.schemas import CONTENT_TYPES, Achievement, Analysis, NewAnalysis, User
from milguard.storage.base import Storage


def validate_text(text: Optional[str], max_chars: int = MAX_TEXT_CHARS) -> str:
    if text is None or not text.strip():
        raise ValidationError("Please enter some text to analyze")
    text = text.strip()
    if len(text) > max_chars:
        raise ValidationError(f"Text is too long (max {max_chars} characters)")
    return text


def validate_upload(
    content_type: str,
    data: Optional[bytes],
    mime_type: Optional[str],
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> None:
    if not data:
        raise ValidationError(f"No {content_type} file uploaded")
    if len(data) > max_bytes:
        raise ValidationError(f"File is too large (max {max_bytes // (1024 * 1024)} MB)")
    if not mime_type or not mime_type.lower().startswith(f"{content_type}/"):
        raise ValidationError(f"Expected an {content_type} file, got '{mime_type or 'unknown'}'")


class AnalysisService:

    def __init__(
        self,
        storage: Storage,
        detector: DetectionService,
        evaluator: AchievementEvaluator,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        max_text_chars: int = MAX_TEXT_CHARS,
    ):
        self.storage = storage
        self.detector = detector
        self.evaluator = evaluator
        self.max_upload_bytes = max_upload_bytes
        self.max_text_chars = max_text_chars

    def build_payload(
        self,
        content_type: str,
        text: Optional[str] = None,
        data: Optional[bytes] = None,
        file_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> ContentPayload:
        if content_type not in CONTENT_TYPES:
            raise ValidationError(f"Unsupported content type '{content_type}'")
        if content_type == "text":
            return ContentPayload(content_type="text", text=validate_text(text, self.max_text_chars))
        validate_upload(content_type, data, mime_type, self.max_upload_bytes)
        return ContentPayload(
            content_type=content_type,
            data=data,
            file_name=file_name,
            mime_type=mime_type,
        )

    def _persist(self, user_id: str, record: NewAnalysis) -> tuple[Analysis, list[Achievement]]:
        analysis = self.storage.create_analysis(record)
        return analysis, self.evaluator.on_analysis_created(user_id)

    async def analyze(
        self,
        user: Optional[User],
        content_type: str,
        text: Optional[str] = None,
        data: Optional[bytes] = None,
        file_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> dict:
        # Fail fast: never spend provider quota on anonymous requests
        if user is None:
            raise AuthRequiredError("Authentication required")

        payload = self.build_payload(content_type, text, data, file_name, mime_type)

        outcome = await self.detector.detect(payload)
        if not outcome.results:
            failed = ", ".join(f"{k} ({v})" for k, v in outcome.failures.items()) or "no providers configured"
            print(f"[ANALYZE] no verdict user={user.id} type={content_type}: {failed}", flush=True)
            raise NoVerdictError("No detection service could analyze this content; please try again later")

        report = aggregate_results(outcome.results)
        record = NewAnalysis(
            user_id=user.id,
            content_type=content_type,
            content_text=payload.text,
            file_name=file_name if content_type != "text" else None,
            file_type=mime_type if content_type != "text" else None,
            file_size=len(data) if content_type != "text" and data else None,
            results=report,
            overall_confidence=report.overall.confidence,
            is_ai_generated=report.overall.is_ai_generated,
        )
        # Storage and achievement checks are blocking; keep them off the event loop
        analysis, earned = await asyncio.to_thread(self._persist, user.id, record)
        print(f"[ANALYZE] user={user.id} type={content_type} analysis={analysis.id} "
              f"providers={list(report.providers)} confidence={report.overall.confidence:.2f} "
              f"ai={report.overall.is_ai_generated}", flush=True)

        response = {
            "analysisId": analysis.id,
            "results": report.model_dump(),
            "achievements": [a.to_json() for a in earned],
        }
        if outcome.failures:
            response["note"] = (
                f"{len(outcome.results)} of {len(outcome.results) + len(outcome.failures)} "
                f"detection services responded; unavailable: {', '.join(outcome.failures)}"
            )
        return response
