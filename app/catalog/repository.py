"""Catalog repository: websites with their last evaluation set, plus the rubric.

Mirrors the browser's local-storage layout: each collection is one JSON
array under a versioned key. The evaluation core never touches this; the
caller passes results in after a run.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from app.catalog.models import DEFAULT_CRITERIA, Website, WebsiteEvaluation, generate_id
from app.catalog.store import KeyValueStore
from app.core.exceptions import NotFoundError, RequestValidationError
from app.evaluation.types import Criterion, EvaluationResult

logger = logging.getLogger(__name__)

WEBSITES_KEY = "websites:v1"
CRITERIA_KEY = "criteria:v1"


class CatalogRepository:
    def __init__(self, store: KeyValueStore):
        self.store = store

    # ── Websites ─────────────────────────────────────────────────

    def list_websites(self) -> list[Website]:
        return [Website.from_dict(w) for w in self.store.get(WEBSITES_KEY, [])]

    def _save_websites(self, websites: list[Website]) -> None:
        self.store.set(WEBSITES_KEY, [w.to_dict() for w in websites])

    def get_website(self, website_id: str) -> Website:
        for website in self.list_websites():
            if website.id == website_id:
                return website
        raise NotFoundError(f"Website {website_id} not found")

    def add_website(self, url: str, name: str = "") -> Website:
        url = url.strip()
        if not url:
            raise RequestValidationError(["url is required"])
        website = Website(id=generate_id("w"), url=url, name=name.strip() or url)
        websites = self.list_websites()
        websites.append(website)
        self._save_websites(websites)
        logger.info("Added website %s (%s)", website.id, website.url)
        return website

    def remove_website(self, website_id: str) -> None:
        websites = self.list_websites()
        remaining = [w for w in websites if w.id != website_id]
        if len(remaining) == len(websites):
            raise NotFoundError(f"Website {website_id} not found")
        self._save_websites(remaining)

    def save_website(self, updated: Website) -> Website:
        websites = self.list_websites()
        for i, website in enumerate(websites):
            if website.id == updated.id:
                websites[i] = updated
                self._save_websites(websites)
                return updated
        raise NotFoundError(f"Website {updated.id} not found")

    def record_evaluation(
        self,
        website_id: str,
        results: list[EvaluationResult],
        evaluated_at: datetime | None = None,
    ) -> Website:
        """Replace the website's evaluation set wholesale and stamp lastEvaluated."""
        website = self.get_website(website_id)
        website.evaluations = [WebsiteEvaluation.from_result(r) for r in results]
        website.last_evaluated = evaluated_at or datetime.now(timezone.utc)
        return self.save_website(website)

    # ── Criteria ─────────────────────────────────────────────────

    def list_criteria(self) -> list[Criterion]:
        raw = self.store.get(CRITERIA_KEY)
        if raw is None:
            return [Criterion(**c.to_dict()) for c in DEFAULT_CRITERIA]
        return [Criterion.from_dict(c) for c in raw]

    def selected_criteria(self) -> list[Criterion]:
        return [c for c in self.list_criteria() if c.selected]

    def _save_criteria(self, criteria: list[Criterion]) -> None:
        self.store.set(CRITERIA_KEY, [c.to_dict() for c in criteria])

    def add_criterion(self, name: str = "New criterion", definition: str = "", selected: bool = False) -> Criterion:
        criterion = Criterion(id=generate_id("c"), name=name.strip(), definition=definition.strip(), selected=selected)
        self._save_criteria([criterion] + self.list_criteria())
        return criterion

    def update_criterion(
        self,
        criterion_id: str,
        name: str | None = None,
        definition: str | None = None,
        selected: bool | None = None,
    ) -> Criterion:
        criteria = self.list_criteria()
        for criterion in criteria:
            if criterion.id == criterion_id:
                if name is not None:
                    criterion.name = name.strip()
                if definition is not None:
                    criterion.definition = definition.strip()
                if selected is not None:
                    criterion.selected = selected
                self._save_criteria(criteria)
                return criterion
        raise NotFoundError(f"Criterion {criterion_id} not found")

    def remove_criterion(self, criterion_id: str) -> None:
        criteria = self.list_criteria()
        remaining = [c for c in criteria if c.id != criterion_id]
        if len(remaining) == len(criteria):
            raise NotFoundError(f"Criterion {criterion_id} not found")
        self._save_criteria(remaining)

    def export_criteria(self) -> str:
        return json.dumps([c.to_dict() for c in self.list_criteria()], indent=2, ensure_ascii=False)

    def import_criteria(self, raw_json: str) -> list[Criterion]:
        """Replace the rubric with a JSON array of ``{id, name, definition?}`` objects."""
        try:
            parsed: Any = json.loads(raw_json)
        except json.JSONDecodeError as e:
            raise RequestValidationError(["Invalid JSON format"]) from e

        if not isinstance(parsed, list):
            raise RequestValidationError(["Invalid format: must be an array of criteria"])
        if not all(isinstance(item, dict) and isinstance(item.get("id"), str) and isinstance(item.get("name"), str) for item in parsed):
            raise RequestValidationError(["Invalid format: each criterion must have id and name fields"])

        criteria = [
            Criterion(
                id=item["id"].strip(),
                name=item["name"].strip(),
                definition=(item.get("definition") or "").strip() if isinstance(item.get("definition"), str) else "",
                selected=item.get("selected") is True,
            )
            for item in parsed
        ]
        self._save_criteria(criteria)
        logger.info("Imported %d criteria", len(criteria))
        return criteria
