import logging
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.router import api_router
from app.core.config import settings, validate_settings
from app.core.exceptions import ConfigurationError, NotFoundError, RequestValidationError
from app.core.logging import setup_logging
from app.core.metrics import PrometheusMiddleware, metrics_response
from app.core.middleware import RequestLoggingMiddleware
from app.core.rate_limit import limiter
from app.core.sentry import init_sentry
from app.evaluation.llm_client import WatsonxClient
from app.schemas.evaluation import HealthResponse

# Configure logging before anything else
setup_logging()
init_sentry()

logger = logging.getLogger(__name__)

SERVICE_NAME = "Website Rubric Evaluator"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    if settings.app_env != "test":
        validate_settings()

    if settings.llm_configured:
        app.state.llm_client = WatsonxClient.from_settings()
        logger.info(
            "LLM client ready: model=%s auth=%s timeout=%.0fs",
            settings.llm_model_id,
            settings.llm_auth_mode,
            settings.llm_timeout_seconds,
        )
    else:
        app.state.llm_client = None
        logger.warning("LLM credentials not configured, /api/evaluate will fail")

    logger.info("Starting %s...", SERVICE_NAME)
    yield
    logger.info("%s shut down", SERVICE_NAME)


app = FastAPI(
    title=SERVICE_NAME,
    description="Scores scraped website sections against a user-defined rubric via an LLM",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.app_debug else None,
    redoc_url="/api/redoc" if settings.app_debug else None,
)


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": exc.errors})


@app.exception_handler(NotFoundError)
async def _not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc), "timestamp": _now()})


@app.exception_handler(ConfigurationError)
async def _configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Configuration error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Service misconfigured", "message": str(exc), "timestamp": _now()},
    )


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return JSONResponse(
            status_code=404,
            content={"error": "Endpoint not found", "path": request.url.path, "timestamp": _now()},
        )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail, "timestamp": _now()})


# Log unhandled exceptions with the full traceback
@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled %s on %s %s:\n%s", type(exc).__name__, request.method, request.url.path, "".join(tb))
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": f"{type(exc).__name__}: {exc}", "timestamp": _now()},
    )


# Rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Request logging + metrics middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(PrometheusMiddleware)

# CORS: parse allowed_origins from settings (comma-separated)
_origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# API routes
app.include_router(api_router)


@app.get("/health", response_model=HealthResponse)
async def health():
    return {
        "status": "healthy",
        "timestamp": _now(),
        "service": SERVICE_NAME,
        "llmConfigured": settings.llm_configured,
        "model": settings.llm_model_id,
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_response()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.app_host, port=settings.app_port, reload=settings.app_debug)
