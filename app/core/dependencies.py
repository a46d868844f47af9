from fastapi import Request

from app.core.exceptions import ConfigurationError
from app.evaluation.llm_client import BaseLlmClient
from app.evaluation.orchestrator import EvaluationOrchestrator


def get_llm_client(request: Request) -> BaseLlmClient:
    client = getattr(request.app.state, "llm_client", None)
    if client is None:
        raise ConfigurationError("LLM client is not configured (set LLM_API_KEY and LLM_PROJECT_ID)")
    return client


def get_orchestrator(request: Request) -> EvaluationOrchestrator:
    return EvaluationOrchestrator.from_settings(get_llm_client(request))
