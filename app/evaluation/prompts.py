"""Evaluation prompt template.

Section content is cut to a short excerpt to bound token usage; the
trailing instruction asks for a bare JSON object so the normalizer's
fallback tiers are the exception, not the rule.
"""

from __future__ import annotations

from app.evaluation.types import Criterion, Section

SECTION_EXCERPT_CHARS = 200
NO_DEFINITION = "No definition provided"

_EVALUATION_TEMPLATE = """\
Evaluate the following website content against the criterion: "{name}"

Criterion Definition: {definition}

Website URL: {url}

Selected Content Sections:
{sections}

Please provide your evaluation as a single JSON object ONLY (no additional text before or after):

{{
  "alignment": "HIGH|MEDIUM|LOW",
  "reasoning": "Your detailed reasoning here",
  "keyInsights": ["insight1", "insight2", "insight3"]
}}

Important: Return ONLY valid JSON, no markdown formatting or additional text."""


def render_section(section: Section, limit: int = SECTION_EXCERPT_CHARS) -> str:
    excerpt = section.content[:limit]
    suffix = "..." if len(section.content) > limit else ""
    return f"{section.title}: {excerpt}{suffix}"


def build_evaluation_prompt(criterion: Criterion, website_url: str, sections: list[Section]) -> str:
    """Build the per-criterion prompt."""
    return _EVALUATION_TEMPLATE.format(
        name=criterion.name,
        definition=criterion.definition or NO_DEFINITION,
        url=website_url,
        sections="\n\n".join(render_section(s) for s in sections),
    )
