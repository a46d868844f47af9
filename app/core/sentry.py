"""Sentry error tracking integration.

Initializes the SDK only when SENTRY_DSN is set. Events are scrubbed of
the model API key and Authorization headers before they leave the process.
"""

import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

_REDACTED = "[redacted]"


def _scrub(value, secret: str):
    if isinstance(value, str):
        return value.replace(secret, _REDACTED) if secret and secret in value else value
    if isinstance(value, dict):
        return {
            k: _REDACTED if isinstance(k, str) and k.lower() == "authorization" else _scrub(v, secret)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_scrub(v, secret) for v in value]
    return value


def before_send(event: dict, hint: dict) -> dict:
    return _scrub(event, settings.llm_api_key)


def init_sentry() -> None:
    """Initialize Sentry if SENTRY_DSN is configured."""
    if not settings.sentry_dsn:
        logger.debug("Sentry DSN not configured, skipping")
        return

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        traces_sample_rate=0.1 if settings.app_env == "production" else 1.0,
        send_default_pii=False,
        before_send=before_send,
        integrations=[FastApiIntegration(transaction_style="endpoint")],
    )
    sentry_sdk.set_tag("llm_model", settings.llm_model_id)
    logger.info("Sentry initialized (env=%s, model=%s)", settings.app_env, settings.llm_model_id)
