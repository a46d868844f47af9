"""Request validation and sanitization, the first step of every evaluation.

Validation collects every violation rather than stopping at the first, so
the caller can report all problems in one 400 response. Both functions are
pure; nothing here touches the network.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from app.core.config import settings


@dataclass
class ValidationLimits:
    max_sections: int = 10
    max_content_length: int = 50_000
    max_total_content_length: int = 50_000

    @classmethod
    def from_settings(cls) -> ValidationLimits:
        return cls(
            max_sections=settings.max_sections_per_request,
            max_content_length=settings.max_content_length,
            max_total_content_length=settings.max_total_content_length,
        )


@dataclass
class ValidationOutcome:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


def _is_valid_url(value: str) -> bool:
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _is_nonempty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _validate_sections(sections: Any, limits: ValidationLimits, errors: list[str]) -> None:
    if not isinstance(sections, list) or not sections:
        errors.append("selectedSections is required and must be a non-empty array")
        return

    if len(sections) > limits.max_sections:
        errors.append(f"selectedSections cannot exceed {limits.max_sections} sections")

    total_length = 0
    for index, section in enumerate(sections):
        if not isinstance(section, dict):
            errors.append(f"selectedSections[{index}] must be an object")
            continue

        for key in ("selector", "title", "content"):
            if not _is_nonempty_str(section.get(key)):
                errors.append(f"selectedSections[{index}].{key} is required and must be a string")

        content = section.get("content")
        if isinstance(content, str):
            total_length += len(content)
            if len(content) > limits.max_content_length:
                errors.append(
                    f"selectedSections[{index}].content exceeds maximum length of "
                    f"{limits.max_content_length} characters"
                )

    if total_length > limits.max_total_content_length:
        errors.append(
            f"Total content length ({total_length}) exceeds maximum allowed ({limits.max_total_content_length})"
        )


def _validate_criteria(criteria: Any, errors: list[str]) -> None:
    if not isinstance(criteria, list) or not criteria:
        errors.append("criteria is required and must be a non-empty array")
        return

    for index, criterion in enumerate(criteria):
        if not isinstance(criterion, dict):
            errors.append(f"criteria[{index}] must be an object")
            continue

        if not _is_nonempty_str(criterion.get("id")):
            errors.append(f"criteria[{index}].id is required and must be a string")
        if not _is_nonempty_str(criterion.get("name")):
            errors.append(f"criteria[{index}].name is required and must be a string")

        definition = criterion.get("definition")
        if definition is not None and not isinstance(definition, str):
            errors.append(f"criteria[{index}].definition must be a string if provided")

        selected = criterion.get("selected")
        if selected is not None and not isinstance(selected, bool):
            errors.append(f"criteria[{index}].selected must be a boolean if provided")


def validate_request(payload: Any, limits: ValidationLimits | None = None) -> ValidationOutcome:
    """Check an untyped evaluation payload and collect all violations."""
    limits = limits or ValidationLimits.from_settings()
    errors: list[str] = []

    if not isinstance(payload, dict):
        errors.append("Request body is required and must be an object")
        return ValidationOutcome(is_valid=False, errors=errors)

    website_url = payload.get("websiteUrl")
    if not _is_nonempty_str(website_url):
        errors.append("websiteUrl is required and must be a non-empty string")
    elif not _is_valid_url(website_url):
        errors.append("websiteUrl must be a valid URL")

    _validate_sections(payload.get("selectedSections"), limits, errors)
    _validate_criteria(payload.get("criteria"), errors)

    return ValidationOutcome(is_valid=not errors, errors=errors)


def _strip(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def sanitize_request(payload: dict) -> dict:
    """Trim every string field and coerce ``selected`` to a strict boolean.

    Unknown keys are dropped. Sanitizing an already-sanitized payload
    returns an equal payload.
    """
    sanitized: dict[str, Any] = {"websiteUrl": _strip(payload.get("websiteUrl"))}

    sections = payload.get("selectedSections")
    sanitized["selectedSections"] = [
        {
            "selector": _strip(section.get("selector")),
            "title": _strip(section.get("title")),
            "content": _strip(section.get("content")),
        }
        for section in (sections if isinstance(sections, list) else [])
        if isinstance(section, dict)
    ]

    criteria = payload.get("criteria")
    sanitized["criteria"] = [
        {
            "id": _strip(criterion.get("id")),
            "name": _strip(criterion.get("name")),
            "definition": _strip(criterion.get("definition")),
            "selected": criterion.get("selected") is True,
        }
        for criterion in (criteria if isinstance(criteria, list) else [])
        if isinstance(criterion, dict)
    ]

    return sanitized
