from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.exceptions import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Model endpoint (watsonx.ai text generation)
    llm_api_url: str = "https://us-south.ml.cloud.ibm.com/ml/v1/text/generation?version=2023-05-29"
    llm_api_key: str = ""
    llm_project_id: str = ""
    llm_model_id: str = "meta-llama/llama-3-3-70b-instruct"

    # "api_key" sends the key as a bearer token; "iam" exchanges it for an IAM access token first
    llm_auth_mode: str = "iam"
    llm_iam_url: str = "https://iam.cloud.ibm.com/identity/token"

    # Generation parameters
    llm_max_tokens: int = 2048
    llm_temperature: float = 0.1
    llm_top_p: float = 0.9
    llm_repetition_penalty: float = 1.1
    llm_timeout_seconds: float = 30.0

    # Request limits
    max_sections_per_request: int = 10
    max_content_length: int = 50_000
    max_total_content_length: int = 50_000

    # Orchestrator
    evaluation_max_retries: int = 2
    evaluation_criterion_delay: float = 1.0

    # Scraper
    scrape_timeout_seconds: float = 15.0

    # Local catalog (websites + criteria)
    catalog_path: str = "data/catalog.json"

    # App
    app_env: str = "development"
    app_debug: bool = True
    app_host: str = "0.0.0.0"
    app_port: int = 3001

    # CORS
    allowed_origins: str = "http://localhost:5173"

    # Rate limiting on the evaluate endpoint (slowapi syntax)
    evaluate_rate_limit: str = "30/minute"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable

    @property
    def llm_configured(self) -> bool:
        return bool(self.llm_api_key and self.llm_project_id)


settings = Settings()


def validate_settings() -> None:
    """Validate credential material. Called on startup in non-test environments."""
    errors: list[str] = []

    if not settings.llm_api_key:
        errors.append("LLM_API_KEY must be set")
    if not settings.llm_project_id:
        errors.append("LLM_PROJECT_ID must be set")
    if settings.llm_auth_mode not in ("api_key", "iam"):
        errors.append("LLM_AUTH_MODE must be 'api_key' or 'iam'")

    if settings.app_env == "production" and settings.allowed_origins == "*":
        errors.append("ALLOWED_ORIGINS must not be '*' in production")

    if errors:
        raise ConfigurationError("Configuration errors:\n  - " + "\n  - ".join(errors))
