"""
MainsGrader - Error types
Raised by the provider / orchestration layers and mapped to HTTP status
codes in api.py. Request validation errors come from pydantic and method
errors from FastAPI routing, so neither needs a class here.
"""


class MainsGraderError(Exception):
    """Base class for errors surfaced by the evaluation pipeline."""


class ConfigurationError(MainsGraderError):
    """Missing or unusable credentials / provider settings (HTTP 500)."""


class UpstreamError(MainsGraderError):
    """The scoring model call itself failed (HTTP 500)."""

    def __init__(self, message: str, provider: str = ""):
        super().__init__(message)
        self.provider = provider
