import asyncio
import os

# Must be set before milguard modules read their configuration.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["STORAGE_BACKEND"] = "memory"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from milguard.analysis.providers import DetectionProvider, DetectionService  # noqa: E402
from milguard.auth.achievements import AchievementEvaluator  # noqa: E402
from milguard.core.errors import ProviderError  # noqa: E402
from milguard.learning.content import seed_default_modules  # noqa: E402
from milguard.main import create_app  # noqa: E402
from milguard.schemas import ProviderResult  # noqa: E402
from milguard.storage.memory import MemoryStorage  # noqa: E402


class FakeProvider(DetectionProvider):
    """Scripted provider: returns *result*, raises *error*, or sleeps past the timeout."""

    def __init__(self, name, content_types=("text",), confidence=0.5, is_ai=None,
                 indicators=(), error=None, delay=0.0):
        self.name = name
        self.content_types = tuple(content_types)
        self.confidence = confidence
        self.is_ai = confidence > 0.5 if is_ai is None else is_ai
        self.indicators = list(indicators)
        self.error = error
        self.delay = delay
        self.calls = 0

    async def detect(self, payload, http):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise ProviderError(self.name, self.error)
        return ProviderResult(
            confidence=self.confidence,
            is_ai_generated=self.is_ai,
            reasoning=f"{self.name} says {self.confidence}",
            indicators=self.indicators,
        )


@pytest.fixture
def storage():
    store = MemoryStorage()
    seed_default_modules(store)
    return store


@pytest.fixture
def modules(storage):
    return storage.get_learning_modules()


@pytest.fixture
def user(storage):
    return storage.create_user("learner@example.com", "x:y", name="Learner")


@pytest.fixture
def evaluator(storage):
    return AchievementEvaluator(storage, streak_threshold=3)


@pytest.fixture
def providers():
    return [
        FakeProvider("openai", confidence=0.9, is_ai=True, indicators=["Uniform sentence length"]),
        FakeProvider("gptZero", confidence=0.3, is_ai=False, indicators=["Uniform sentence length", "Low burstiness"]),
        FakeProvider("aiOrNot", content_types=("image", "audio"), confidence=0.8, is_ai=True),
    ]


@pytest.fixture
def detector(providers):
    return DetectionService(providers, timeout=1.0)


@pytest.fixture
def app(storage, detector):
    # Modules are already seeded by the storage fixture
    return create_app(storage=storage, detector=detector, streak_threshold=3, seed_modules=False)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def register(client):
    def _register(email="tester@example.com", password="password123", name="Tester"):
        resp = client.post("/api/auth/register", json={"email": email, "password": password, "name": name})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        return data["user"], {"Authorization": f"Bearer {data['token']}"}
    return _register


@pytest.fixture
def auth(register):
    """Register a user and return (user json, auth headers)."""
    return register()


@pytest.fixture
def fake_provider():
    return FakeProvider
