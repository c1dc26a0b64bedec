"""
Combine per-provider detection results into one overall verdict.

Rules:
  - every provider confidence is clamped to [0, 1] before averaging
  - overall confidence = arithmetic mean of the clamped confidences
  - AI-generated iff overall confidence > 0.5 (0.5 itself is "human")
  - indicators = union of provider indicators, first-seen order
Pure: no I/O, no storage.
"""
from statistics import fmean
from typing import Mapping

from milguard.core.errors import NoVerdictError
from milguard.schemas import DetectionReport, OverallVerdict, ProviderResult

AI_THRESHOLD = 0.5
# Keys the flat wire format already uses for itself
RESERVED_NAMES = {"overall", "providers"}


def clamp_confidence(value: float) -> float:
    if value != value:  # NaN
        return 0.0
    return min(1.0, max(0.0, float(value)))


def severity_band(confidence: float) -> str:
    """Display banding: > 0.7 high (red), 0.4..0.7 medium (orange), < 0.4 low (green)."""
    if confidence > 0.7:
        return "high"
    if confidence >= 0.4:
        return "medium"
    return "low"


def _summarize(confidence: float, flagged: int, total: int, is_ai: bool) -> str:
    service_word = "service" if total == 1 else "services"
    verdict = "Likely AI-generated" if is_ai else "Likely human-written"
    return (
        f"{verdict}: {flagged} of {total} detection {service_word} flagged this content, "
        f"average AI likelihood {round(confidence * 100)}%."
    )


def aggregate_results(results: Mapping[str, ProviderResult]) -> DetectionReport:
    providers = {}
    for name, result in results.items():
        if name in RESERVED_NAMES:
            print(f"[ANALYZE] dropping provider with reserved name '{name}'", flush=True)
            continue
        providers[name] = result

    if not providers:
        raise NoVerdictError("No detection provider returned a result")

    confidences = [clamp_confidence(r.confidence) for r in providers.values()]
    confidence = fmean(confidences)
    is_ai = confidence > AI_THRESHOLD

    indicators: list[str] = []
    seen = set()
    for result in providers.values():
        for phrase in result.indicators:
            if phrase not in seen:
                seen.add(phrase)
                indicators.append(phrase)

    flagged = sum(1 for r in providers.values() if r.is_ai_generated)
    overall = OverallVerdict(
        confidence=confidence,
        is_ai_generated=is_ai,
        reasoning=_summarize(confidence, flagged, len(providers), is_ai),
        indicators=indicators,
        provider_count=len(providers),
    )
    return DetectionReport(providers=dict(providers), overall=overall)
