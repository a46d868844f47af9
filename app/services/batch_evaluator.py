"""Batch evaluation over the website catalog.

For each website: scrape → auto-select sections that talk about AI →
evaluate with the selected criteria → record results in the catalog.
One website failing never stops the batch.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from app.catalog.models import Website
from app.catalog.repository import CatalogRepository
from app.core.exceptions import RequestValidationError
from app.evaluation.orchestrator import EvaluationOrchestrator
from app.evaluation.types import Criterion, EvaluationRequest, EvaluationRun
from app.evaluation.validation import sanitize_request, validate_request
from app.scraper.sections import ScrapedSection, scrape_website_sections

logger = logging.getLogger(__name__)

AI_KEYWORDS = ["AI", "A.I.", "Artificial Intelligence", "artificial intelligence", "Transparency"]
MIN_KEYWORD_OCCURRENCES = 6

Scraper = Callable[[str], Awaitable[list[ScrapedSection]]]


def count_keyword_occurrences(text: str, keywords: list[str] = AI_KEYWORDS) -> int:
    """Case-sensitive occurrence count summed over all keywords."""
    return sum(len(re.findall(re.escape(keyword), text)) for keyword in keywords)


def auto_select_sections(
    sections: list[ScrapedSection],
    min_occurrences: int = MIN_KEYWORD_OCCURRENCES,
) -> list[ScrapedSection]:
    return [s for s in sections if count_keyword_occurrences(s.full_text or s.text) >= min_occurrences]


def build_request(website: Website, sections: list[ScrapedSection], criteria: list[Criterion]) -> EvaluationRequest:
    """Validate and sanitize like the HTTP boundary does before any model call."""
    payload = {
        "websiteUrl": website.url,
        "selectedSections": [
            {"selector": s.selector, "title": s.title or "Unknown Section", "content": s.full_text or s.text}
            for s in sections
        ],
        "criteria": [c.to_dict() for c in criteria],
    }
    outcome = validate_request(payload)
    if not outcome.is_valid:
        raise RequestValidationError(outcome.errors)
    return EvaluationRequest.from_payload(sanitize_request(payload))


@dataclass
class BatchProgress:
    total: int = 0
    completed: int = 0
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    cancelled: bool = False


class BatchEvaluator:
    def __init__(
        self,
        repository: CatalogRepository,
        orchestrator: EvaluationOrchestrator,
        scraper: Scraper = scrape_website_sections,
    ):
        self.repository = repository
        self.orchestrator = orchestrator
        self.scraper = scraper

    async def evaluate_website(
        self,
        website: Website,
        criteria: list[Criterion],
        cancel_event: asyncio.Event | None = None,
    ) -> EvaluationRun | None:
        """Evaluate one website and record the outcome. Returns None when nothing matched."""
        sections = await self.scraper(website.url)
        selected = auto_select_sections(sections)

        if not selected:
            logger.info("No AI-related sections found on %s", website.url)
            self.repository.record_evaluation(website.id, [])
            return None

        request = build_request(website, selected, criteria)
        run = await self.orchestrator.run(request, cancel_event=cancel_event)
        if run.cancelled:
            # Keep the previous complete evaluation set
            logger.info("Evaluation of %s cancelled, catalog left unchanged", website.url)
            return run

        self.repository.record_evaluation(website.id, run.results)
        return run

    async def run(self, cancel_event: asyncio.Event | None = None) -> BatchProgress:
        websites = self.repository.list_websites()
        criteria = self.repository.selected_criteria()
        progress = BatchProgress(total=len(websites))

        if not criteria:
            logger.warning("No criteria selected, nothing to evaluate")
            return progress

        for i, website in enumerate(websites):
            if cancel_event is not None and cancel_event.is_set():
                progress.cancelled = True
                break

            logger.info("Processing %s (%d/%d)", website.name, i + 1, len(websites), extra={"website_url": website.url})
            try:
                run = await self.evaluate_website(website, criteria, cancel_event)
            except Exception as e:
                logger.exception("Failed to evaluate %s: %s", website.name, e)
                progress.failed.append(website.id)
                continue

            if run is None:
                progress.skipped.append(website.id)
            elif run.cancelled:
                progress.cancelled = True
                break
            progress.completed += 1

        logger.info(
            "Batch finished: %d/%d websites, %d failed, %d without matching sections",
            progress.completed,
            progress.total,
            len(progress.failed),
            len(progress.skipped),
        )
        return progress
