from typing import Iterable, Optional

from .entities import ExtractionLogEntry


class InvalidInput(ValueError):
    """Input could not be interpreted (unparseable URL, malformed request)."""


class ExtractionError(Exception):
    """Terminal failure of an extraction run. Carries the log accumulated so far."""

    def __init__(self, message: str, logs: Optional[Iterable[ExtractionLogEntry]] = None) -> None:
        super().__init__(message)
        self.logs = tuple(logs or ())

    def with_logs(self, logs: Iterable[ExtractionLogEntry]) -> "ExtractionError":
        self.logs = tuple(logs)
        return self


class FetchFailure(ExtractionError):
    """The video source could not be reached or answered with a non-success status."""


class DescriptionUnavailable(ExtractionError):
    """The video description could not be located or expanded."""


class NoTracksFound(ExtractionError):
    """Every extraction strategy and fallback produced zero tracks."""


class NoActiveDevice(Exception):
    """Queue mode precondition: no playback device is currently active."""


class ReconciliationFailed(Exception):
    """Unexpected failure of a queue or playlist run."""


class RateLimited(Exception):
    """Operation was rate limited by provider. Includes suggested wait time in milliseconds."""

    def __init__(self, retry_after_ms: int, message: str = "Rate limited") -> None:
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class TemporaryFailure(Exception):
    """Transient provider or network failure."""


class PermanentFailure(Exception):
    """Non-retriable failure due to invalid input or authorization issues."""


class Unauthorized(PermanentFailure):
    """The catalog rejected the bearer credential. The caller must re-authenticate."""


class NotFound(Exception):
    """Requested resource was not found."""
