import json
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.config import settings

# Override settings for tests
settings.app_env = "test"
settings.llm_api_key = "test-api-key"
settings.llm_project_id = "test-project"
settings.llm_auth_mode = "api_key"
settings.sentry_dsn = ""

from app.core.dependencies import get_orchestrator  # noqa: E402
from app.evaluation.llm_client import BaseLlmClient  # noqa: E402
from app.evaluation.orchestrator import EvaluationOrchestrator  # noqa: E402
from app.evaluation.retry import no_backoff  # noqa: E402
from app.main import app  # noqa: E402


class FakeLlmClient(BaseLlmClient):
    """Scripted model client.

    Each call pops the next scripted item: a string is returned as model
    text, an exception instance is raised. When the script runs out the
    default reply is returned.
    """

    model_id = "fake-model"

    def __init__(self, script: list | None = None, default: str | None = None):
        self.script = list(script or [])
        self.default = default if default is not None else reply("HIGH", "Looks good")
        self.prompts: list[str] = []

    async def call(self, prompt: str) -> str:
        self.prompts.append(prompt)
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, BaseException):
            raise item
        return item


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def reply(alignment: str, reasoning: str = "Because", insights: list[str] | None = None) -> str:
    return json.dumps({"alignment": alignment, "reasoning": reasoning, "keyInsights": insights or []})


def make_payload(**overrides) -> dict:
    payload = {
        "websiteUrl": "https://example.com",
        "selectedSections": [
            {"selector": "main", "title": "Main", "content": "Welcome to our accessible website."},
        ],
        "criteria": [
            {"id": "a11y", "name": "Accessibility", "definition": "WCAG 2.1 AA"},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def fake_llm() -> FakeLlmClient:
    return FakeLlmClient()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def orchestrator(fake_llm: FakeLlmClient, sleep: RecordingSleep) -> EvaluationOrchestrator:
    return EvaluationOrchestrator(fake_llm, max_retries=2, criterion_delay=0.0, backoff=no_backoff, sleep=sleep)


@pytest.fixture
async def client(orchestrator: EvaluationOrchestrator) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
