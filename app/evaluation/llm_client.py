"""LLM Client — one prompt/response round trip to the model endpoint.

Speaks the watsonx.ai text-generation protocol:
  POST {model_id, input, parameters, project_id} → results[0].generated_text

The chat-style shape (choices[0].message.content) is accepted as well,
since some deployments of the same endpoint answer that way.

Authentication is a single explicit strategy picked by configuration:
  - ApiKeyAuth:   Authorization: Bearer <api key>
  - IamTokenAuth: exchanges the API key for an IAM access token, cached
                  until shortly before it expires

The client never retries; the orchestrator owns retry policy so attempt
counts live in one place.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from app.core.config import settings
from app.core.exceptions import ConfigurationError, TransportError
from app.core.metrics import LLM_CALL_DURATION, LLM_CALLS

logger = logging.getLogger(__name__)

IAM_GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"
# Refresh the IAM token this many seconds before the reported expiry
IAM_REFRESH_MARGIN = 60


# ---------------------------------------------------------------------------
# Authentication strategies
# ---------------------------------------------------------------------------


class AuthStrategy(ABC):
    """Produces the Authorization header for a model call."""

    name: str

    @abstractmethod
    async def auth_header(self, timeout: float) -> dict[str, str]:
        ...


class ApiKeyAuth(AuthStrategy):
    name = "api_key"

    def __init__(self, api_key: str):
        self.api_key = api_key

    async def auth_header(self, timeout: float) -> dict[str, str]:
        if self.api_key.startswith("Bearer "):
            return {"Authorization": self.api_key}
        return {"Authorization": f"Bearer {self.api_key}"}


class IamTokenAuth(AuthStrategy):
    """Exchange an API key for a short-lived IAM bearer token."""

    name = "iam"

    def __init__(self, api_key: str, iam_url: str = "https://iam.cloud.ibm.com/identity/token"):
        self.api_key = api_key
        self.iam_url = iam_url
        self._token: str = ""
        self._expires_at: float = 0.0

    def _token_valid(self) -> bool:
        return bool(self._token) and time.monotonic() < self._expires_at

    async def auth_header(self, timeout: float) -> dict[str, str]:
        if not self._token_valid():
            await self._refresh(timeout)
        return {"Authorization": f"Bearer {self._token}"}

    async def _refresh(self, timeout: float) -> None:
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(
                    self.iam_url,
                    data={"grant_type": IAM_GRANT_TYPE, "apikey": self.api_key},
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            raise TransportError(f"IAM token request failed: {e}") from e

        if resp.status_code >= 400:
            raise TransportError(
                f"IAM token request failed: {resp.status_code} - {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise TransportError("IAM service returned non-JSON body", resp.status_code, resp.text) from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise TransportError("No access token received from IAM service", status_code=resp.status_code)

        try:
            expires_in = int(data.get("expires_in", 3600))
        except (TypeError, ValueError):
            expires_in = 3600
        self._token = token
        self._expires_at = time.monotonic() + max(expires_in - IAM_REFRESH_MARGIN, 0)
        logger.debug("IAM token refreshed, expires in %ds", expires_in)


def build_auth(mode: str, api_key: str, iam_url: str = "") -> AuthStrategy:
    """Create the configured auth strategy. Unknown modes are a configuration error."""
    if mode == "api_key":
        return ApiKeyAuth(api_key)
    if mode == "iam":
        return IamTokenAuth(api_key, iam_url) if iam_url else IamTokenAuth(api_key)
    raise ConfigurationError(f"Unknown LLM auth mode: {mode!r}")


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------


@dataclass
class GenerationParams:
    max_new_tokens: int = 2048
    temperature: float = 0.1
    top_p: float = 0.9
    repetition_penalty: float = 1.1

    def to_dict(self) -> dict:
        return {
            "max_new_tokens": self.max_new_tokens,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "repetition_penalty": self.repetition_penalty,
        }


class BaseLlmClient(ABC):
    """Anything that turns a prompt into raw model text."""

    model_id: str = ""

    @abstractmethod
    async def call(self, prompt: str) -> str:
        """Send one prompt. Raises TransportError on failure."""
        ...


class WatsonxClient(BaseLlmClient):
    """watsonx.ai text-generation client."""

    def __init__(
        self,
        api_url: str,
        project_id: str,
        model_id: str,
        auth: AuthStrategy,
        params: GenerationParams | None = None,
        timeout: float = 30.0,
    ):
        if not project_id:
            raise ConfigurationError("LLM project id is not configured")
        self.api_url = api_url
        self.project_id = project_id
        self.model_id = model_id
        self.auth = auth
        self.params = params or GenerationParams()
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> WatsonxClient:
        if not settings.llm_api_key:
            raise ConfigurationError("LLM_API_KEY is not configured")
        return cls(
            api_url=settings.llm_api_url,
            project_id=settings.llm_project_id,
            model_id=settings.llm_model_id,
            auth=build_auth(settings.llm_auth_mode, settings.llm_api_key, settings.llm_iam_url),
            params=GenerationParams(
                max_new_tokens=settings.llm_max_tokens,
                temperature=settings.llm_temperature,
                top_p=settings.llm_top_p,
                repetition_penalty=settings.llm_repetition_penalty,
            ),
            timeout=settings.llm_timeout_seconds,
        )

    def build_payload(self, prompt: str) -> dict:
        return {
            "model_id": self.model_id,
            "input": prompt,
            "parameters": self.params.to_dict(),
            "project_id": self.project_id,
        }

    async def call(self, prompt: str) -> str:
        headers = {
            **(await self.auth.auth_header(self.timeout)),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        start = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.api_url, json=self.build_payload(prompt), headers=headers)
        except httpx.TimeoutException as e:
            LLM_CALLS.labels(outcome="timeout").inc()
            raise TransportError(f"Model call timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            LLM_CALLS.labels(outcome="network_error").inc()
            raise TransportError(f"Model call failed: {e}") from e
        finally:
            LLM_CALL_DURATION.observe(time.monotonic() - start)

        if resp.status_code < 200 or resp.status_code >= 300:
            LLM_CALLS.labels(outcome="http_error").inc()
            raise TransportError(
                f"Model endpoint error: {resp.status_code} - {resp.text[:500]}",
                status_code=resp.status_code,
                body=resp.text,
            )

        text = self._extract_text(resp)
        LLM_CALLS.labels(outcome="success").inc()
        logger.debug("Model %s returned %d chars", self.model_id, len(text))
        return text

    @staticmethod
    def _extract_text(resp: httpx.Response) -> str:
        try:
            data = resp.json()
        except ValueError as e:
            raise TransportError("Model endpoint returned non-JSON body", resp.status_code, resp.text) from e

        if not isinstance(data, dict):
            raise TransportError("Invalid response format from model endpoint", resp.status_code, resp.text)

        results = data.get("results")
        if isinstance(results, list) and results and isinstance(results[0], dict) and "generated_text" in results[0]:
            generated = results[0]["generated_text"]
            return generated if isinstance(generated, str) else ""

        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")
            content = message.get("content") if isinstance(message, dict) else None
            if isinstance(content, str):
                return content

        raise TransportError("Invalid response format from model endpoint", resp.status_code, resp.text)
