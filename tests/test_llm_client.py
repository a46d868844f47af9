"""Tests for the model client and its auth strategies (mocked HTTP)."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from conftest import RecordingSleep, make_payload

from app.core.exceptions import ConfigurationError, TransportError
from app.evaluation.llm_client import (
    IAM_GRANT_TYPE,
    ApiKeyAuth,
    GenerationParams,
    IamTokenAuth,
    WatsonxClient,
    build_auth,
)
from app.evaluation.orchestrator import EvaluationOrchestrator
from app.evaluation.retry import no_backoff
from app.evaluation.types import EvaluationRequest, EvaluationStatus

API_URL = "https://llm.example.com/ml/v1/text/generation"
IAM_URL = "https://iam.example.com/identity/token"


def _make_httpx_response(status_code: int, json_data: dict | list | None = None, text: str = "") -> httpx.Response:
    """Create a proper httpx.Response with request set."""
    request = httpx.Request("POST", "https://example.com")
    if json_data is not None:
        return httpx.Response(status_code, json=json_data, request=request)
    return httpx.Response(status_code, text=text, request=request)


def _generation_response(text: str = '{"alignment": "HIGH"}') -> httpx.Response:
    return _make_httpx_response(200, json_data={"results": [{"generated_text": text}]})


def _mock_async_client(mock_client_cls, **post_kwargs) -> AsyncMock:
    mock_client = AsyncMock()
    for key, value in post_kwargs.items():
        setattr(mock_client.post, key, value)
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    mock_client_cls.return_value = mock_client
    return mock_client


def _client(auth=None) -> WatsonxClient:
    return WatsonxClient(
        api_url=API_URL,
        project_id="proj-1",
        model_id="meta-llama/llama-3-3-70b-instruct",
        auth=auth or ApiKeyAuth("secret"),
        timeout=5.0,
    )


class TestAuth:
    @pytest.mark.asyncio
    async def test_api_key_bearer(self):
        assert await ApiKeyAuth("secret").auth_header(5.0) == {"Authorization": "Bearer secret"}

    @pytest.mark.asyncio
    async def test_api_key_already_prefixed(self):
        assert await ApiKeyAuth("Bearer abc").auth_header(5.0) == {"Authorization": "Bearer abc"}

    def test_build_auth(self):
        assert isinstance(build_auth("api_key", "k"), ApiKeyAuth)
        iam = build_auth("iam", "k", IAM_URL)
        assert isinstance(iam, IamTokenAuth)
        assert iam.iam_url == IAM_URL

    def test_build_auth_unknown_mode(self):
        with pytest.raises(ConfigurationError):
            build_auth("both", "k")

    @pytest.mark.asyncio
    async def test_iam_token_cached(self):
        auth = IamTokenAuth("secret", IAM_URL)
        with patch("app.evaluation.llm_client.httpx.AsyncClient") as mock_client_cls:
            mock_client = _mock_async_client(
                mock_client_cls,
                return_value=_make_httpx_response(200, json_data={"access_token": "tok", "expires_in": 3600}),
            )
            first = await auth.auth_header(5.0)
            second = await auth.auth_header(5.0)

        assert first == second == {"Authorization": "Bearer tok"}
        assert mock_client.post.call_count == 1
        call = mock_client.post.call_args
        assert call.args[0] == IAM_URL
        assert call.kwargs["data"] == {"grant_type": IAM_GRANT_TYPE, "apikey": "secret"}

    @pytest.mark.asyncio
    async def test_iam_failure_is_transport_error(self):
        auth = IamTokenAuth("secret", IAM_URL)
        with patch("app.evaluation.llm_client.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(mock_client_cls, return_value=_make_httpx_response(401, text="bad key"))
            with pytest.raises(TransportError) as exc_info:
                await auth.auth_header(5.0)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_iam_missing_token(self):
        auth = IamTokenAuth("secret", IAM_URL)
        with patch("app.evaluation.llm_client.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(mock_client_cls, return_value=_make_httpx_response(200, json_data={}))
            with pytest.raises(TransportError, match="No access token"):
                await auth.auth_header(5.0)

    @pytest.mark.asyncio
    async def test_iam_non_json_body(self):
        auth = IamTokenAuth("secret", IAM_URL)
        with patch("app.evaluation.llm_client.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(mock_client_cls, return_value=_make_httpx_response(200, text="<html>login</html>"))
            with pytest.raises(TransportError, match="non-JSON"):
                await auth.auth_header(5.0)

    @pytest.mark.asyncio
    async def test_iam_list_body(self):
        auth = IamTokenAuth("secret", IAM_URL)
        with patch("app.evaluation.llm_client.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(mock_client_cls, return_value=_make_httpx_response(200, json_data=["tok"]))
            with pytest.raises(TransportError, match="No access token"):
                await auth.auth_header(5.0)

    @pytest.mark.asyncio
    async def test_iam_bad_expires_in_uses_default(self):
        auth = IamTokenAuth("secret", IAM_URL)
        with patch("app.evaluation.llm_client.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(
                mock_client_cls,
                return_value=_make_httpx_response(200, json_data={"access_token": "tok", "expires_in": "soon"}),
            )
            assert await auth.auth_header(5.0) == {"Authorization": "Bearer tok"}


class TestWatsonxClient:
    def test_requires_project_id(self):
        with pytest.raises(ConfigurationError):
            WatsonxClient(api_url=API_URL, project_id="", model_id="m", auth=ApiKeyAuth("k"))

    def test_payload_shape(self):
        client = _client()
        client.params = GenerationParams(max_new_tokens=100, temperature=0.2, top_p=0.8, repetition_penalty=1.0)
        assert client.build_payload("hello") == {
            "model_id": "meta-llama/llama-3-3-70b-instruct",
            "input": "hello",
            "parameters": {"max_new_tokens": 100, "temperature": 0.2, "top_p": 0.8, "repetition_penalty": 1.0},
            "project_id": "proj-1",
        }

    @pytest.mark.asyncio
    async def test_success(self):
        client = _client()
        with patch("app.evaluation.llm_client.httpx.AsyncClient") as mock_client_cls:
            mock_client = _mock_async_client(mock_client_cls, return_value=_generation_response("model says hi"))
            text = await client.call("prompt")

        assert text == "model says hi"
        call = mock_client.post.call_args
        assert call.args[0] == API_URL
        assert call.kwargs["json"]["input"] == "prompt"
        assert call.kwargs["headers"]["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_chat_shape_accepted(self):
        client = _client()
        with patch("app.evaluation.llm_client.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(
                mock_client_cls,
                return_value=_make_httpx_response(200, json_data={"choices": [{"message": {"content": "chat"}}]}),
            )
            assert await client.call("prompt") == "chat"

    @pytest.mark.asyncio
    async def test_non_2xx(self):
        client = _client()
        with patch("app.evaluation.llm_client.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(mock_client_cls, return_value=_make_httpx_response(503, text="unavailable"))
            with pytest.raises(TransportError) as exc_info:
                await client.call("prompt")

        assert exc_info.value.status_code == 503
        assert exc_info.value.body == "unavailable"
        assert "503" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout(self):
        client = _client()
        with patch("app.evaluation.llm_client.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(mock_client_cls, side_effect=httpx.TimeoutException("timeout"))
            with pytest.raises(TransportError, match="timed out"):
                await client.call("prompt")

    @pytest.mark.asyncio
    async def test_network_error(self):
        client = _client()
        with patch("app.evaluation.llm_client.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(mock_client_cls, side_effect=httpx.ConnectError("refused"))
            with pytest.raises(TransportError):
                await client.call("prompt")

    @pytest.mark.asyncio
    async def test_unexpected_body(self):
        client = _client()
        with patch("app.evaluation.llm_client.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(mock_client_cls, return_value=_make_httpx_response(200, json_data={"foo": 1}))
            with pytest.raises(TransportError, match="Invalid response format"):
                await client.call("prompt")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            ["not", "an", "object"],
            {"results": {"generated_text": "x"}},
            {"results": []},
            {"choices": [{"message": None}]},
            {"choices": {"0": {"message": {"content": "x"}}}},
        ],
    )
    async def test_malformed_bodies_are_transport_errors(self, body):
        client = _client()
        with patch("app.evaluation.llm_client.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(mock_client_cls, return_value=_make_httpx_response(200, json_data=body))
            with pytest.raises(TransportError, match="Invalid response format"):
                await client.call("prompt")

    @pytest.mark.asyncio
    async def test_unreadable_iam_reply_becomes_error_result(self):
        client = _client(auth=IamTokenAuth("secret", IAM_URL))
        orchestrator = EvaluationOrchestrator(
            client, max_retries=2, criterion_delay=0.0, backoff=no_backoff, sleep=RecordingSleep()
        )
        with patch("app.evaluation.llm_client.httpx.AsyncClient") as mock_client_cls:
            _mock_async_client(mock_client_cls, return_value=_make_httpx_response(200, text="<html>down</html>"))
            run = await orchestrator.run(EvaluationRequest.from_payload(make_payload()))

        assert len(run.results) == 1
        assert run.results[0].status == EvaluationStatus.ERROR
        assert run.results[0].attempts == 3
        assert "non-JSON" in run.results[0].last_error

    @pytest.mark.asyncio
    async def test_iam_auth_fetches_token_once(self):
        client = _client(auth=IamTokenAuth("secret", IAM_URL))
        with patch("app.evaluation.llm_client.httpx.AsyncClient") as mock_client_cls:
            mock_client = _mock_async_client(
                mock_client_cls,
                side_effect=[
                    _make_httpx_response(200, json_data={"access_token": "tok", "expires_in": 3600}),
                    _generation_response("one"),
                    _generation_response("two"),
                ],
            )
            assert await client.call("p1") == "one"
            assert await client.call("p2") == "two"

        assert mock_client.post.call_count == 3
        assert mock_client.post.call_args.kwargs["headers"]["Authorization"] == "Bearer tok"
