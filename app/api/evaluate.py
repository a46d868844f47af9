"""Evaluation endpoint: validate and sanitize the body, then run the orchestrator."""

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.dependencies import get_orchestrator
from app.core.exceptions import RequestValidationError
from app.core.rate_limit import limiter
from app.evaluation.orchestrator import EvaluationOrchestrator
from app.evaluation.types import EvaluationRequest
from app.evaluation.validation import sanitize_request, validate_request
from app.schemas.evaluation import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["evaluation"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _read_json(request: Request):
    body = await request.body()
    if not body:
        return None
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise RequestValidationError([f"Request body must be valid JSON: {e}"]) from e


@router.post("/evaluate", responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}})
@limiter.limit(settings.evaluate_rate_limit)
async def evaluate(
    request: Request,
    orchestrator: EvaluationOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Score the selected sections of a website against each criterion."""
    payload = await _read_json(request)

    outcome = validate_request(payload)
    if not outcome.is_valid:
        logger.info("Rejected evaluation request: %s", outcome.errors)
        raise RequestValidationError(outcome.errors)

    evaluation_request = EvaluationRequest.from_payload(sanitize_request(payload))

    try:
        run = await orchestrator.run(evaluation_request)
    except Exception as e:
        logger.exception("Evaluation of %s failed", evaluation_request.website_url)
        return JSONResponse(
            status_code=500,
            content={"error": "Evaluation failed", "message": str(e), "timestamp": _now()},
        )

    return JSONResponse(
        content={
            "success": True,
            "message": "Website evaluation completed successfully",
            "websiteUrl": evaluation_request.website_url,
            "results": [r.to_dict() for r in run.results],
            "summary": run.summary.to_dict(),
            "metadata": {
                "processedAt": _now(),
                "sectionsAnalyzed": len(evaluation_request.sections),
                "criteriaEvaluated": len(run.results),
                "model": orchestrator.llm_client.model_id,
            },
        }
    )
