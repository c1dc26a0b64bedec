"""
External AI-content-detection providers and the concurrent fan-out over them.

Each provider is a black box returning a ProviderResult. DetectionService
queries every enabled provider that supports the content type at the same
time, each under its own timeout; a provider that times out, errors or
returns garbage is dropped and reported as a failure.
"""
import asyncio
import json
import logging
from typing import Optional

import httpx
from pydantic import BaseModel, Field

from milguard.ai.openai_client import get_async_client, record_failure
from milguard.core.config import (
    AIORNOT_API_KEY,
    GPTZERO_API_KEY,
    OPENAI_API_KEY,
    OPENAI_DETECTION_MODEL,
    PROVIDER_TIMEOUT_SECONDS,
)
from milguard.core.errors import ProviderError
from milguard.schemas import ContentType, ProviderResult

# Configure logger to output to console
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setLevel(logging.INFO)
    formatter = logging.Formatter('%(levelname)s: [PROVIDERS] %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False

# Reduce httpx logging noise (only show actual issues)
logging.getLogger("httpx").setLevel(logging.WARNING)


class ContentPayload(BaseModel):
    content_type: ContentType
    text: Optional[str] = None
    data: Optional[bytes] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None


class DetectionOutcome(BaseModel):
    results: dict[str, ProviderResult] = Field(default_factory=dict)
    # provider name -> error message
    failures: dict[str, str] = Field(default_factory=dict)


class DetectionProvider:
    name: str = ""
    content_types: tuple[str, ...] = ()

    def supports(self, content_type: str) -> bool:
        return content_type in self.content_types

    async def detect(self, payload: ContentPayload, http: httpx.AsyncClient) -> ProviderResult:
        raise NotImplementedError


def _probability(value, provider: str, field: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ProviderError(provider, f"missing or non-numeric '{field}'")


# ======================================================
# OPENAI (text)
# ======================================================
OPENAI_SYSTEM_PROMPT = (
    "You are an AI-generated text detector. Judge whether the user's text was written by "
    "an AI language model. Respond with a JSON object only: "
    '{"confidence": <probability 0..1 that the text is AI-generated>, '
    '"isAiGenerated": <true|false>, "reasoning": "<one sentence>", '
    '"indicators": ["<short phrase>", ...]}'
)


class OpenAIDetector(DetectionProvider):
    name = "openai"
    content_types = ("text",)

    def __init__(self, model: str = OPENAI_DETECTION_MODEL):
        self.model = model

    async def detect(self, payload: ContentPayload, http: httpx.AsyncClient) -> ProviderResult:
        client = get_async_client()
        if client is None:
            raise ProviderError(self.name, "OPENAI_API_KEY not set")
        try:
            resp = await client.chat.completions.create(
                model=self.model,
                temperature=0,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": OPENAI_SYSTEM_PROMPT},
                    {"role": "user", "content": payload.text or ""},
                ],
            )
        except Exception as e:
            record_failure(f"{type(e).__name__}: {e}")
            raise ProviderError(self.name, f"request failed ({type(e).__name__})") from e

        raw = resp.choices[0].message.content if resp.choices else None
        try:
            data = json.loads(raw or "")
        except json.JSONDecodeError:
            raise ProviderError(self.name, "response was not valid JSON")
        if not isinstance(data, dict):
            raise ProviderError(self.name, "response was not a JSON object")

        confidence = _probability(data.get("confidence"), self.name, "confidence")
        indicators = data.get("indicators") or []
        return ProviderResult(
            confidence=confidence,
            is_ai_generated=bool(data.get("isAiGenerated", confidence > 0.5)),
            reasoning=data.get("reasoning"),
            indicators=[str(i) for i in indicators if i],
            metadata={"model": self.model},
        )


# ======================================================
# GPTZERO (text)
# ======================================================
class GPTZeroDetector(DetectionProvider):
    name = "gptZero"
    content_types = ("text",)
    url = "https://api.gptzero.me/v2/predict/text"

    def __init__(self, api_key: str):
        self.api_key = api_key

    async def detect(self, payload: ContentPayload, http: httpx.AsyncClient) -> ProviderResult:
        resp = await http.post(
            self.url,
            headers={"x-api-key": self.api_key, "Accept": "application/json"},
            json={"document": payload.text or ""},
        )
        if resp.status_code >= 400:
            raise ProviderError(self.name, f"HTTP {resp.status_code}")

        documents = resp.json().get("documents") or []
        if not documents:
            raise ProviderError(self.name, "no documents in response")
        doc = documents[0]

        confidence = _probability(doc.get("completely_generated_prob"), self.name, "completely_generated_prob")
        predicted = doc.get("predicted_class")
        indicators = []
        if predicted == "mixed":
            indicators.append("Mix of human and AI-written passages")
        if doc.get("average_generated_prob") is not None and float(doc["average_generated_prob"]) > 0.5:
            indicators.append("High average sentence-level AI probability")

        return ProviderResult(
            confidence=confidence,
            is_ai_generated=predicted == "ai" if predicted else confidence > 0.5,
            reasoning=f"GPTZero classified the document as '{predicted or 'unknown'}'.",
            indicators=indicators,
            metadata={
                "predictedClass": predicted,
                "averageGeneratedProb": doc.get("average_generated_prob"),
            },
        )


# ======================================================
# AI OR NOT (image, audio)
# ======================================================
class AiOrNotDetector(DetectionProvider):
    name = "aiOrNot"
    content_types = ("image", "audio")
    base_url = "https://api.aiornot.com/v1/reports"

    def __init__(self, api_key: str):
        self.api_key = api_key

    async def detect(self, payload: ContentPayload, http: httpx.AsyncClient) -> ProviderResult:
        resp = await http.post(
            f"{self.base_url}/{payload.content_type}",
            headers={"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"},
            files={
                "object": (
                    payload.file_name or "upload",
                    payload.data or b"",
                    payload.mime_type or "application/octet-stream",
                )
            },
        )
        if resp.status_code >= 400:
            raise ProviderError(self.name, f"HTTP {resp.status_code}")

        report = resp.json().get("report") or {}
        ai = report.get("ai") or {}
        confidence = _probability(ai.get("confidence"), self.name, "report.ai.confidence")
        verdict = report.get("verdict")

        indicators = []
        generators = report.get("generator") or {}
        for generator, details in generators.items():
            if isinstance(details, dict) and details.get("is_detected"):
                indicators.append(f"Matches {generator} generator fingerprint")

        return ProviderResult(
            confidence=confidence,
            is_ai_generated=bool(ai.get("is_detected", verdict == "ai")),
            reasoning=f"AI or Not verdict: {verdict or 'unknown'}.",
            indicators=indicators,
            metadata={"verdict": verdict, "reportId": resp.json().get("id")},
        )


# ======================================================
# FAN-OUT
# ======================================================
class DetectionService:

    def __init__(self, providers: list[DetectionProvider], timeout: float = PROVIDER_TIMEOUT_SECONDS):
        self.providers = providers
        self.timeout = timeout

    def provider_names(self, content_type: str) -> list[str]:
        return [p.name for p in self.providers if p.supports(content_type)]

    async def _run(self, provider: DetectionProvider, payload: ContentPayload, http: httpx.AsyncClient):
        try:
            result = await asyncio.wait_for(provider.detect(payload, http), timeout=self.timeout)
            return provider.name, result, None
        except asyncio.TimeoutError:
            error = ProviderError(provider.name, f"timed out after {self.timeout:g}s")
        except ProviderError as e:
            error = e
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as e:
            error = ProviderError(provider.name, f"{type(e).__name__}: {e}")
        logger.warning(f"dropping provider: {error.message}")
        return provider.name, None, error

    async def detect(self, payload: ContentPayload) -> DetectionOutcome:
        selected = [p for p in self.providers if p.supports(payload.content_type)]
        outcome = DetectionOutcome()
        if not selected:
            logger.warning(f"no provider configured for content_type={payload.content_type}")
            return outcome

        async with httpx.AsyncClient(timeout=self.timeout) as http:
            finished = await asyncio.gather(*(self._run(p, payload, http) for p in selected))

        for name, result, error in finished:
            if result is not None:
                outcome.results[name] = result
            else:
                outcome.failures[name] = error.message
        logger.info(
            f"content_type={payload.content_type} ok={list(outcome.results)} failed={list(outcome.failures)}"
        )
        return outcome


def build_default_detector() -> DetectionService:
    """Enable every provider whose API key is configured."""
    providers: list[DetectionProvider] = []
    if OPENAI_API_KEY.strip():
        providers.append(OpenAIDetector())
    if GPTZERO_API_KEY:
        providers.append(GPTZeroDetector(GPTZERO_API_KEY))
    if AIORNOT_API_KEY:
        providers.append(AiOrNotDetector(AIORNOT_API_KEY))
    logger.info(f"enabled providers: {[p.name for p in providers] or 'none'}")
    return DetectionService(providers)
