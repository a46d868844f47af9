"""Catalog records: websites and their last evaluation set."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from app.evaluation.types import Alignment, Criterion, EvaluationResult


def generate_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class WebsiteEvaluation:
    criterion_id: str
    alignment: Alignment
    reasoning: str
    selected_sections: list[str] = field(default_factory=list)
    content_analysed: str = ""
    evaluated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_result(cls, result: EvaluationResult) -> WebsiteEvaluation:
        return cls(
            criterion_id=result.criterion_id,
            alignment=result.alignment,
            reasoning=result.reasoning,
            selected_sections=list(result.selected_sections),
            content_analysed=result.content_analysed,
            evaluated_at=result.evaluated_at,
        )

    @classmethod
    def from_dict(cls, data: dict) -> WebsiteEvaluation:
        return cls(
            criterion_id=data["criterionId"],
            alignment=Alignment.coerce(data.get("alignment")),
            reasoning=data.get("reasoning", ""),
            selected_sections=list(data.get("selectedSections", [])),
            content_analysed=data.get("contentAnalysed", ""),
            evaluated_at=_parse_dt(data.get("evaluatedAt")) or datetime.now(timezone.utc),
        )

    def to_dict(self) -> dict:
        return {
            "criterionId": self.criterion_id,
            "alignment": self.alignment.value,
            "reasoning": self.reasoning,
            "selectedSections": list(self.selected_sections),
            "contentAnalysed": self.content_analysed,
            "evaluatedAt": self.evaluated_at.isoformat(),
        }


@dataclass
class Website:
    id: str
    url: str
    name: str
    last_evaluated: datetime | None = None
    evaluations: list[WebsiteEvaluation] = field(default_factory=list)

    def evaluation_for(self, criterion_id: str) -> WebsiteEvaluation | None:
        return next((e for e in self.evaluations if e.criterion_id == criterion_id), None)

    @classmethod
    def from_dict(cls, data: dict) -> Website:
        return cls(
            id=data["id"],
            url=data["url"],
            name=data.get("name") or data["url"],
            last_evaluated=_parse_dt(data.get("lastEvaluated")),
            evaluations=[WebsiteEvaluation.from_dict(e) for e in data.get("evaluations", [])],
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "name": self.name,
            "lastEvaluated": self.last_evaluated.isoformat() if self.last_evaluated else None,
            "evaluations": [e.to_dict() for e in self.evaluations],
        }


DEFAULT_CRITERIA: list[Criterion] = [
    Criterion(id="accessibility", name="Accessibility", selected=True),
    Criterion(id="performance", name="Performance", selected=True),
    Criterion(id="security", name="Security headers", selected=True),
    Criterion(id="metadata", name="Metadata", selected=True),
    Criterion(id="content", name="Content quality", selected=False),
]
