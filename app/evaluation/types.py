"""Core types and DTOs for the evaluation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Alignment(str, Enum):
    """Three-level rubric score."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def score(self) -> int:
        return ALIGNMENT_SCORES[self]

    @classmethod
    def coerce(cls, value: Any) -> Alignment:
        """Map any value onto the rubric; unknown values become MEDIUM."""
        if isinstance(value, Alignment):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        return cls.MEDIUM


ALIGNMENT_SCORES: dict[Alignment, int] = {
    Alignment.HIGH: 3,
    Alignment.MEDIUM: 2,
    Alignment.LOW: 1,
}


class EvaluationStatus(str, Enum):
    """Terminal state of one criterion evaluation."""

    COMPLETED = "completed"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Request side
# ---------------------------------------------------------------------------


@dataclass
class Criterion:
    """A named rubric dimension with an optional free-text definition."""

    id: str
    name: str
    definition: str = ""
    selected: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> Criterion:
        return cls(
            id=data["id"],
            name=data["name"],
            definition=data.get("definition") or "",
            selected=data.get("selected") is True,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "definition": self.definition,
            "selected": self.selected,
        }


@dataclass
class Section:
    """A titled excerpt of page text, identified by a selector string."""

    selector: str
    title: str
    content: str

    @classmethod
    def from_dict(cls, data: dict) -> Section:
        return cls(selector=data["selector"], title=data["title"], content=data["content"])


@dataclass
class EvaluationRequest:
    """One pipeline invocation: a website, the sections to read, the rubric."""

    website_url: str
    sections: list[Section] = field(default_factory=list)
    criteria: list[Criterion] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict) -> EvaluationRequest:
        """Build from a sanitized wire payload (camelCase keys)."""
        return cls(
            website_url=payload["websiteUrl"],
            sections=[Section.from_dict(s) for s in payload["selectedSections"]],
            criteria=[Criterion.from_dict(c) for c in payload["criteria"]],
        )


# ---------------------------------------------------------------------------
# Parsed model output (tagged outcome)
# ---------------------------------------------------------------------------


@dataclass
class Structured:
    """Model output that parsed as a JSON object."""

    alignment: Alignment
    reasoning: str
    key_insights: list[str] = field(default_factory=list)


@dataclass
class Heuristic:
    """Model output read by regex markers (no usable JSON)."""

    alignment: Alignment
    reasoning: str


@dataclass
class Default:
    """Model output with no recognizable alignment token."""

    raw_text: str = ""


ParsedLLMResponse = Union[Structured, Heuristic, Default]


@dataclass
class NormalizedEvaluation:
    alignment: Alignment
    reasoning: str
    key_insights: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Result side
# ---------------------------------------------------------------------------


@dataclass
class EvaluationResult:
    """Outcome for one criterion. Every requested criterion yields exactly one."""

    criterion_id: str
    name: str
    status: EvaluationStatus
    alignment: Alignment
    reasoning: str
    selected_sections: list[str] = field(default_factory=list)
    content_analysed: str = ""
    key_insights: list[str] = field(default_factory=list)
    attempts: int = 1
    evaluated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_error: str = ""

    def to_dict(self) -> dict:
        """Serialize to the camelCase wire shape."""
        data = {
            "criterionId": self.criterion_id,
            "name": self.name,
            "status": self.status.value,
            "alignment": self.alignment.value,
            "reasoning": self.reasoning,
            "selectedSections": list(self.selected_sections),
            "contentAnalysed": self.content_analysed,
            "keyInsights": list(self.key_insights),
            "attempts": self.attempts,
            "evaluatedAt": self.evaluated_at.isoformat(),
        }
        if self.last_error:
            data["lastError"] = self.last_error
        return data


@dataclass
class RetryStats:
    total_attempts: int = 0
    successful_on_retry: int = 0
    failed_after_retries: int = 0

    def to_dict(self) -> dict:
        return {
            "totalAttempts": self.total_attempts,
            "successfulOnRetry": self.successful_on_retry,
            "failedAfterRetries": self.failed_after_retries,
        }


@dataclass
class EvaluationSummary:
    total_criteria: int = 0
    completed_evaluations: int = 0
    failed_evaluations: int = 0
    average_alignment: float = 0.0
    retry_stats: RetryStats = field(default_factory=RetryStats)

    def to_dict(self) -> dict:
        return {
            "totalCriteria": self.total_criteria,
            "completedEvaluations": self.completed_evaluations,
            "failedEvaluations": self.failed_evaluations,
            "averageAlignment": self.average_alignment,
            "retryStats": self.retry_stats.to_dict(),
        }


@dataclass
class EvaluationRun:
    """Output of one orchestrator run."""

    results: list[EvaluationResult] = field(default_factory=list)
    summary: EvaluationSummary = field(default_factory=EvaluationSummary)
    cancelled: bool = False
