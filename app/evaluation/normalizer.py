"""Response Normalizer — converts free-text model output into structured fields.

The model is asked for a JSON object but is not guaranteed to produce one,
so parsing degrades through three tiers before settling on a default:
  1. Strict JSON parse of the whole text
  2. Strip code fences, slice first '{' .. last '}', parse again
  3. Regex markers (ALIGNMENT: / REASONING:) or a bare HIGH|MEDIUM|LOW token
  4. Nothing recognizable → MEDIUM, raw text kept as reasoning

parse_llm_response() returns a tagged outcome (Structured | Heuristic |
Default); normalize() applies one policy per tag. Neither ever raises.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from app.core.exceptions import ResponseParseError
from app.evaluation.types import (
    Alignment,
    Default,
    Heuristic,
    NormalizedEvaluation,
    ParsedLLMResponse,
    Structured,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*")

_ALIGNMENT_MARKER_RE = re.compile(
    r"ALIGNMENT[\s*\"']*[:=\-]\s*[\"'*]*\s*(HIGH|MEDIUM|LOW)\b",
    re.IGNORECASE,
)
_ALIGNMENT_TOKEN_RE = re.compile(r"\b(HIGH|MEDIUM|LOW)\b", re.IGNORECASE)

# Reasoning runs until the next recognized section marker or end of text
_REASONING_RE = re.compile(
    r"REASONING[\s*\"']*:\s*(.*?)"
    r"(?=(?:\n|^)\s*(?:\d+\.\s*)?[\"'*]*(?:KEY[_ ]?(?:FINDINGS|INSIGHTS)|RECOMMENDATIONS|ALIGNMENT)[\s*\"']*:|\Z)",
    re.IGNORECASE | re.DOTALL,
)

EMPTY_RESPONSE_REASONING = "Model returned an empty response"
MISSING_REASONING = "No reasoning provided by the model"


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def _load_json_object(text: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError, RecursionError) as e:
        raise ResponseParseError(str(e)) from e
    if not isinstance(data, dict):
        raise ResponseParseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def _extract_embedded_json(text: str) -> dict[str, Any]:
    cleaned = strip_code_fences(text)
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        raise ResponseParseError("No JSON object found in response")
    return _load_json_object(cleaned[start : end + 1])


def _coerce_insights(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


def _structured_from_dict(data: dict[str, Any]) -> Structured:
    reasoning = data.get("reasoning")
    insights = data.get("keyInsights")
    if insights is None:
        insights = data.get("keyFindings")
    return Structured(
        alignment=Alignment.coerce(data.get("alignment")),
        reasoning=reasoning.strip() if isinstance(reasoning, str) else "",
        key_insights=_coerce_insights(insights),
    )


def _heuristic(text: str) -> Heuristic | None:
    marker = _ALIGNMENT_MARKER_RE.search(text)
    match = marker or _ALIGNMENT_TOKEN_RE.search(text)
    if match is None:
        return None

    reasoning_match = _REASONING_RE.search(text)
    if reasoning_match and reasoning_match.group(1).strip():
        reasoning = reasoning_match.group(1).strip()
    else:
        reasoning = strip_code_fences(text)
    return Heuristic(alignment=Alignment(match.group(1).upper()), reasoning=reasoning)


def parse_llm_response(raw_text: str) -> ParsedLLMResponse:
    """Classify raw model text into a tagged outcome."""
    text = (raw_text or "").strip()
    if not text:
        return Default(raw_text="")

    try:
        return _structured_from_dict(_load_json_object(text))
    except ResponseParseError:
        pass

    try:
        structured = _structured_from_dict(_extract_embedded_json(text))
        logger.debug("Extracted embedded JSON from model response")
        return structured
    except ResponseParseError as e:
        logger.info("JSON extraction failed (%s), falling back to marker parsing", e)

    heuristic = _heuristic(text)
    if heuristic is not None:
        return heuristic

    logger.warning("No alignment found in model response, defaulting to MEDIUM: %s", text[:200])
    return Default(raw_text=text)


def normalize(parsed: ParsedLLMResponse) -> NormalizedEvaluation:
    """Apply the per-tag policy and return fields safe to store."""
    if isinstance(parsed, Structured):
        return NormalizedEvaluation(
            alignment=parsed.alignment,
            reasoning=parsed.reasoning or MISSING_REASONING,
            key_insights=list(parsed.key_insights),
        )
    if isinstance(parsed, Heuristic):
        return NormalizedEvaluation(alignment=parsed.alignment, reasoning=parsed.reasoning)
    return NormalizedEvaluation(
        alignment=Alignment.MEDIUM,
        reasoning=strip_code_fences(parsed.raw_text) or EMPTY_RESPONSE_REASONING,
    )


def normalize_text(raw_text: str) -> NormalizedEvaluation:
    """parse_llm_response() + normalize() in one call."""
    return normalize(parse_llm_response(raw_text))
