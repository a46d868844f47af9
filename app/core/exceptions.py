"""Error taxonomy for the evaluation service.

Only validation and configuration errors reach the caller as hard failures;
transport and parse problems are recovered inside the pipeline.
"""


class EvaluatorError(Exception):
    """Base class for all service errors."""


class RequestValidationError(EvaluatorError):
    """Malformed or incomplete evaluation request (HTTP 400)."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors) or "Invalid request")
        self.errors = errors


class TransportError(EvaluatorError):
    """Network failure or non-2xx response from the model endpoint."""

    def __init__(self, message: str, status_code: int = 0, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ResponseParseError(EvaluatorError):
    """Model text that could not be read as structured JSON."""


class ConfigurationError(EvaluatorError):
    """Missing credentials or project identifiers; fatal at startup."""


class NotFoundError(EvaluatorError):
    """Requested catalog record does not exist."""
