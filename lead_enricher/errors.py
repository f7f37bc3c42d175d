"""
Exception taxonomy for the enrichment pipeline.

Lower layers raise these; the batch orchestrator absorbs them per chunk and
the coordinator surfaces anything that escapes as a user notification.
"""


class EnrichmentError(Exception):
    """Base exception for enrichment service errors."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


class DailyQuotaExceeded(EnrichmentError):
    """Raised when a model has used up its requests for the calendar day."""

    def __init__(self, model: str, limit: int):
        super().__init__(f"Daily limit reached for {model} ({limit} requests/day)", recoverable=False)
        self.model = model
        self.limit = limit


class UnknownModelError(EnrichmentError):
    """Raised when no quota is configured for the requested model."""

    def __init__(self, model: str):
        super().__init__(f"Unknown model: {model}", recoverable=False)
        self.model = model


class GeminiApiError(EnrichmentError):
    """Raised when Gemini answers with a non-success HTTP status."""

    def __init__(self, status: int, body: str | None = None):
        super().__init__(f"API request failed with status {status}.")
        self.status = status
        self.body = body


class EmptyResponse(EnrichmentError):
    """Raised when a response carries no candidate text."""

    def __init__(self, message: str = "No valid content received from Gemini."):
        super().__init__(message, recoverable=False)


class InvalidResponseFormat(EnrichmentError):
    """Raised when the model text is not JSON or has the wrong shape."""

    def __init__(self, message: str = "Invalid JSON format from Gemini response."):
        super().__init__(message, recoverable=False)


class GeminiNetworkError(EnrichmentError):
    """Raised when retries and the fallback model all failed at transport level."""


class ExportInProgressError(EnrichmentError):
    """Raised when an export is requested while another one is processing."""

    def __init__(self, started_at: int | None = None):
        super().__init__("An export is already processing")
        self.started_at = started_at


class StoreReadError(EnrichmentError):
    """Raised when the durable store could not be read, as opposed to a missing key."""
