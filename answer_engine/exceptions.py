from __future__ import annotations


class AnswerEngineError(Exception):
    """Base error for the answer pipeline."""


class InvalidRequestError(AnswerEngineError):
    """Caller input is missing or malformed. Raised before any provider call."""

    status_code = 400


class ProviderUnavailable(AnswerEngineError):
    """A provider has no credentials configured or is disabled."""

    def __init__(self, provider: str, reason: str = "not configured"):
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class RerankUnavailable(ProviderUnavailable):
    def __init__(self, reason: str = "not configured"):
        super().__init__("rerank", reason)


class GenerationError(AnswerEngineError):
    """Every candidate model failed or returned empty text."""

    def __init__(self, message: str, attempts: list[str] | None = None):
        super().__init__(message)
        self.attempts = attempts or []
