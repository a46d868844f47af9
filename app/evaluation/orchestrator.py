"""Evaluation Orchestrator — sequences per-criterion model calls.

Per criterion:
  PENDING → build prompt → CALLING
  CALLING → success → normalize → COMPLETED
  CALLING → TransportError → wait 2^attempt s → CALLING (up to max_retries)
  retries exhausted → ERROR (alignment MEDIUM, reasoning carries the last error)

Criteria run strictly one after another with a fixed pause between them to
stay under the upstream rate limit. A criterion that exhausts its retries
never aborts the batch: every criterion yields exactly one result.

The orchestrator holds no state between runs.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from app.core.config import settings
from app.core.exceptions import TransportError
from app.core.metrics import CRITERION_RESULTS
from app.evaluation.llm_client import BaseLlmClient
from app.evaluation.normalizer import normalize_text
from app.evaluation.prompts import build_evaluation_prompt
from app.evaluation.retry import Backoff, Sleep, exponential_backoff, with_retry
from app.evaluation.types import (
    Alignment,
    Criterion,
    EvaluationRequest,
    EvaluationResult,
    EvaluationRun,
    EvaluationStatus,
    EvaluationSummary,
    RetryStats,
)

logger = logging.getLogger(__name__)

SECTION_SEPARATOR = "\n\n---\n\n"


def compute_summary(results: list[EvaluationResult], total_criteria: int | None = None) -> EvaluationSummary:
    """Aggregate counts, mean alignment (HIGH=3/MEDIUM=2/LOW=1) and retry stats.

    The mean covers every result, error-defaulted ones included.
    """
    completed = [r for r in results if r.status == EvaluationStatus.COMPLETED]
    failed = [r for r in results if r.status == EvaluationStatus.ERROR]
    average = sum(r.alignment.score for r in results) / len(results) if results else 0.0

    return EvaluationSummary(
        total_criteria=len(results) if total_criteria is None else total_criteria,
        completed_evaluations=len(completed),
        failed_evaluations=len(failed),
        average_alignment=average,
        retry_stats=RetryStats(
            total_attempts=sum(r.attempts for r in results),
            successful_on_retry=sum(1 for r in completed if r.attempts > 1),
            failed_after_retries=len(failed),
        ),
    )


class EvaluationOrchestrator:
    """Run one evaluation request against a model client."""

    def __init__(
        self,
        llm_client: BaseLlmClient,
        max_retries: int = 2,
        criterion_delay: float = 1.0,
        backoff: Backoff = exponential_backoff,
        sleep: Sleep = asyncio.sleep,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.llm_client = llm_client
        self.max_retries = max_retries
        self.criterion_delay = criterion_delay
        self.backoff = backoff
        self._sleep = sleep

    @classmethod
    def from_settings(cls, llm_client: BaseLlmClient) -> EvaluationOrchestrator:
        return cls(
            llm_client=llm_client,
            max_retries=settings.evaluation_max_retries,
            criterion_delay=settings.evaluation_criterion_delay,
        )

    async def run(
        self,
        request: EvaluationRequest,
        cancel_event: asyncio.Event | None = None,
    ) -> EvaluationRun:
        """Evaluate every criterion in order.

        If ``cancel_event`` is set, the loop stops before starting the next
        criterion; a call already in flight is allowed to finish.
        """
        logger.info(
            "Starting evaluation of %s (%d sections, %d criteria)",
            request.website_url,
            len(request.sections),
            len(request.criteria),
            extra={"website_url": request.website_url},
        )

        results: list[EvaluationResult] = []
        cancelled = False

        for index, criterion in enumerate(request.criteria):
            if index > 0 and self.criterion_delay > 0:
                await self._sleep(self.criterion_delay)

            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                logger.info("Evaluation cancelled after %d/%d criteria", index, len(request.criteria))
                break

            result = await self.evaluate_criterion(criterion, request)
            CRITERION_RESULTS.labels(status=result.status.value).inc()
            results.append(result)

        summary = compute_summary(results, total_criteria=len(request.criteria))
        logger.info(
            "Evaluation of %s finished: %d completed, %d failed, average alignment %.2f",
            request.website_url,
            summary.completed_evaluations,
            summary.failed_evaluations,
            summary.average_alignment,
        )
        return EvaluationRun(results=results, summary=summary, cancelled=cancelled)

    async def evaluate_criterion(self, criterion: Criterion, request: EvaluationRequest) -> EvaluationResult:
        prompt = build_evaluation_prompt(criterion, request.website_url, request.sections)
        section_titles = [s.title for s in request.sections]
        content = SECTION_SEPARATOR.join(s.content for s in request.sections)
        max_attempts = self.max_retries + 1

        outcome = await with_retry(
            lambda: self.llm_client.call(prompt),
            max_attempts=max_attempts,
            backoff=self.backoff,
            retry_on=(TransportError,),
            sleep=self._sleep,
            label=f'criterion "{criterion.name}"',
        )

        if outcome.succeeded:
            normalized = normalize_text(outcome.value or "")
            logger.info(
                'Criterion "%s" evaluated as %s on attempt %d',
                criterion.name,
                normalized.alignment.value,
                outcome.attempts,
                extra={"criterion_id": criterion.id},
            )
            return EvaluationResult(
                criterion_id=criterion.id,
                name=criterion.name,
                status=EvaluationStatus.COMPLETED,
                alignment=normalized.alignment,
                reasoning=normalized.reasoning,
                selected_sections=section_titles,
                content_analysed=content,
                key_insights=normalized.key_insights,
                attempts=outcome.attempts,
                evaluated_at=datetime.now(timezone.utc),
            )

        error_message = str(outcome.error)
        logger.error(
            'All %d attempts failed for criterion "%s": %s',
            max_attempts,
            criterion.name,
            error_message,
            extra={"criterion_id": criterion.id},
        )
        return EvaluationResult(
            criterion_id=criterion.id,
            name=criterion.name,
            status=EvaluationStatus.ERROR,
            alignment=Alignment.MEDIUM,
            reasoning=(
                f"Evaluation failed after {max_attempts} attempts. "
                f"Last error: {error_message}. Using fallback analysis."
            ),
            selected_sections=section_titles,
            content_analysed=content,
            key_insights=[f"Fallback evaluation used after {max_attempts} failed attempts"],
            attempts=outcome.attempts,
            evaluated_at=datetime.now(timezone.utc),
            last_error=error_message,
        )
