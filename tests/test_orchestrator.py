"""Tests for the evaluation orchestrator, prompt builder and summary."""

import asyncio

import pytest
from conftest import FakeLlmClient, RecordingSleep, make_payload, reply

from app.core.exceptions import TransportError
from app.evaluation.orchestrator import SECTION_SEPARATOR, EvaluationOrchestrator, compute_summary
from app.evaluation.prompts import NO_DEFINITION, build_evaluation_prompt
from app.evaluation.retry import no_backoff
from app.evaluation.types import (
    Alignment,
    Criterion,
    EvaluationRequest,
    EvaluationResult,
    EvaluationStatus,
    Section,
)


def _request(criteria_count: int = 1, sections: list[dict] | None = None) -> EvaluationRequest:
    criteria = [
        {"id": f"c{i}", "name": f"Criterion {i}", "definition": f"Definition {i}", "selected": True}
        for i in range(criteria_count)
    ]
    payload = make_payload(criteria=criteria)
    if sections is not None:
        payload["selectedSections"] = sections
    return EvaluationRequest.from_payload(payload)


def _orchestrator(
    llm: FakeLlmClient,
    sleep: RecordingSleep,
    max_retries: int = 2,
    criterion_delay: float = 0.0,
) -> EvaluationOrchestrator:
    return EvaluationOrchestrator(
        llm, max_retries=max_retries, criterion_delay=criterion_delay, backoff=no_backoff, sleep=sleep
    )


# ==========================================================================
# Prompt
# ==========================================================================


class TestPrompt:
    def test_contains_criterion_and_url(self):
        criterion = Criterion(id="a11y", name="Accessibility", definition="WCAG 2.1 AA")
        sections = [Section(selector="main", title="Main", content="Hello world")]
        prompt = build_evaluation_prompt(criterion, "https://example.com", sections)
        assert '"Accessibility"' in prompt
        assert "Criterion Definition: WCAG 2.1 AA" in prompt
        assert "Website URL: https://example.com" in prompt
        assert "Main: Hello world" in prompt
        assert '"alignment": "HIGH|MEDIUM|LOW"' in prompt

    def test_missing_definition_placeholder(self):
        prompt = build_evaluation_prompt(Criterion(id="x", name="X"), "https://example.com", [])
        assert f"Criterion Definition: {NO_DEFINITION}" in prompt

    def test_section_excerpt_truncated(self):
        long_text = "a" * 250
        prompt = build_evaluation_prompt(
            Criterion(id="x", name="X"),
            "https://example.com",
            [Section(selector="main", title="Main", content=long_text)],
        )
        assert f"Main: {'a' * 200}..." in prompt
        assert "a" * 201 not in prompt


# ==========================================================================
# Orchestrator
# ==========================================================================


class TestOrchestrator:
    @pytest.mark.asyncio
    async def test_single_criterion_high(self):
        llm = FakeLlmClient([reply("HIGH", "Good contrast", ["alt text present"])])
        run = await _orchestrator(llm, RecordingSleep()).run(_request())

        assert len(run.results) == 1
        result = run.results[0]
        assert result.criterion_id == "c0"
        assert result.status == EvaluationStatus.COMPLETED
        assert result.alignment == Alignment.HIGH
        assert result.reasoning == "Good contrast"
        assert result.key_insights == ["alt text present"]
        assert result.attempts == 1
        assert result.selected_sections == ["Main"]
        assert result.content_analysed == "Welcome to our accessible website."
        assert run.summary.average_alignment == 3
        assert run.summary.completed_evaluations == 1
        assert not run.cancelled

    @pytest.mark.asyncio
    async def test_retry_then_success(self):
        llm = FakeLlmClient([TransportError("503"), TransportError("503"), reply("LOW")])
        sleep = RecordingSleep()
        orchestrator = EvaluationOrchestrator(llm, max_retries=2, criterion_delay=0.0, sleep=sleep)

        run = await orchestrator.run(_request())

        result = run.results[0]
        assert result.status == EvaluationStatus.COMPLETED
        assert result.alignment == Alignment.LOW
        assert result.attempts == 3
        assert sleep.delays == [1.0, 2.0]
        assert run.summary.retry_stats.total_attempts == 3
        assert run.summary.retry_stats.successful_on_retry == 1
        assert run.summary.retry_stats.failed_after_retries == 0

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        llm = FakeLlmClient([TransportError("HTTP 503")] * 3)
        run = await _orchestrator(llm, RecordingSleep()).run(_request())

        result = run.results[0]
        assert result.status == EvaluationStatus.ERROR
        assert result.alignment == Alignment.MEDIUM
        assert result.attempts == 3
        assert result.last_error == "HTTP 503"
        assert result.reasoning == (
            "Evaluation failed after 3 attempts. Last error: HTTP 503. Using fallback analysis."
        )
        assert result.key_insights == ["Fallback evaluation used after 3 failed attempts"]
        assert result.to_dict()["lastError"] == "HTTP 503"
        assert len(llm.prompts) == 3
        assert run.summary.failed_evaluations == 1
        assert run.summary.retry_stats.failed_after_retries == 1

    @pytest.mark.asyncio
    async def test_zero_retries_single_attempt(self):
        llm = FakeLlmClient([TransportError("down")])
        run = await _orchestrator(llm, RecordingSleep(), max_retries=0).run(_request())
        assert run.results[0].status == EvaluationStatus.ERROR
        assert run.results[0].attempts == 1
        assert len(llm.prompts) == 1

    @pytest.mark.asyncio
    async def test_failure_does_not_abort_batch_and_order_kept(self):
        llm = FakeLlmClient(
            [reply("HIGH")] + [TransportError("x")] * 3 + [reply("LOW")],
        )
        run = await _orchestrator(llm, RecordingSleep()).run(_request(criteria_count=3))

        assert [r.criterion_id for r in run.results] == ["c0", "c1", "c2"]
        assert [r.status for r in run.results] == [
            EvaluationStatus.COMPLETED,
            EvaluationStatus.ERROR,
            EvaluationStatus.COMPLETED,
        ]
        assert run.summary.total_criteria == 3
        assert run.summary.completed_evaluations == 2
        assert run.summary.failed_evaluations == 1
        assert run.summary.average_alignment == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_delay_between_criteria_only(self):
        sleep = RecordingSleep()
        llm = FakeLlmClient()
        await _orchestrator(llm, sleep, criterion_delay=1.0).run(_request(criteria_count=3))
        assert sleep.delays == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_non_transport_error_propagates(self):
        llm = FakeLlmClient([RuntimeError("bug")])
        with pytest.raises(RuntimeError):
            await _orchestrator(llm, RecordingSleep()).run(_request())
        assert len(llm.prompts) == 1

    @pytest.mark.asyncio
    async def test_content_joined_across_sections(self):
        sections = [
            {"selector": "main", "title": "Main", "content": "First"},
            {"selector": "footer", "title": "Footer", "content": "Second"},
        ]
        run = await _orchestrator(FakeLlmClient(), RecordingSleep()).run(_request(sections=sections))
        result = run.results[0]
        assert result.selected_sections == ["Main", "Footer"]
        assert result.content_analysed == f"First{SECTION_SEPARATOR}Second"

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self):
        llm = FakeLlmClient()
        cancel = asyncio.Event()
        cancel.set()
        run = await _orchestrator(llm, RecordingSleep()).run(_request(criteria_count=2), cancel_event=cancel)
        assert run.cancelled
        assert run.results == []
        assert llm.prompts == []
        assert run.summary.total_criteria == 2

    @pytest.mark.asyncio
    async def test_cancelled_between_criteria(self):
        cancel = asyncio.Event()

        class CancellingLlm(FakeLlmClient):
            async def call(self, prompt: str) -> str:
                text = await super().call(prompt)
                cancel.set()
                return text

        llm = CancellingLlm()
        run = await _orchestrator(llm, RecordingSleep()).run(_request(criteria_count=3), cancel_event=cancel)
        assert run.cancelled
        assert len(run.results) == 1
        assert run.results[0].status == EvaluationStatus.COMPLETED
        assert len(llm.prompts) == 1

    @pytest.mark.asyncio
    async def test_cancelled_during_criterion_delay(self):
        cancel = asyncio.Event()

        class CancellingSleep(RecordingSleep):
            async def __call__(self, delay: float) -> None:
                await super().__call__(delay)
                cancel.set()

        llm = FakeLlmClient()
        sleep = CancellingSleep()
        run = await _orchestrator(llm, sleep, criterion_delay=1.0).run(_request(criteria_count=3), cancel_event=cancel)
        assert run.cancelled
        assert len(run.results) == 1
        assert len(llm.prompts) == 1
        assert sleep.delays == [1.0]


# ==========================================================================
# Summary
# ==========================================================================


def _result(alignment: Alignment, status=EvaluationStatus.COMPLETED, attempts: int = 1) -> EvaluationResult:
    return EvaluationResult(
        criterion_id="x",
        name="X",
        status=status,
        alignment=alignment,
        reasoning="r",
        attempts=attempts,
    )


class TestSummary:
    def test_empty(self):
        summary = compute_summary([])
        assert summary.total_criteria == 0
        assert summary.average_alignment == 0.0

    def test_average_counts_error_results(self):
        results = [
            _result(Alignment.HIGH),
            _result(Alignment.MEDIUM, status=EvaluationStatus.ERROR, attempts=3),
            _result(Alignment.HIGH, attempts=2),
        ]
        summary = compute_summary(results)
        assert summary.average_alignment == pytest.approx(8 / 3)
        assert summary.retry_stats.total_attempts == 6
        assert summary.retry_stats.successful_on_retry == 1
        assert summary.retry_stats.failed_after_retries == 1

    def test_wire_shape(self):
        data = compute_summary([_result(Alignment.LOW)]).to_dict()
        assert data == {
            "totalCriteria": 1,
            "completedEvaluations": 1,
            "failedEvaluations": 0,
            "averageAlignment": 1.0,
            "retryStats": {"totalAttempts": 1, "successfulOnRetry": 0, "failedAfterRetries": 0},
        }
