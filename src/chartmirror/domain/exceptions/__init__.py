"""Domain exceptions."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from chartmirror.domain.entities import SyncProgress


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). Don't raise this directly - always use a specific subclass so callers
    # can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationError(DomainException):
    """Input validation failed.

    HTTP Status: 422
    """

    pass


class InvalidStateException(DomainException):
    """Raised when the system is in an invalid state for the requested operation."""

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    HTTP Status: 503 (Service Unavailable)
    """

    pass


class ExternalServiceError(DomainException):
    """External service returned an error.

    HTTP Status: 502 (Bad Gateway)
    """

    pass


# =============================================================================
# Catalog sync exceptions
# =============================================================================


class FatalFetchError(ExternalServiceError):
    """A catalog page could not be fetched and will not be retried.

    Raised for any non-success status other than 429, for network-level
    failures, and for 2xx bodies that don't look like a search response.
    The run that hit this is aborted; pages reported before it stay valid.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cursor: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code  # None for network-level failures
        self.cursor = cursor  # chartIdAfter of the failed request


class RateLimitExceededError(FatalFetchError):
    """The catalog kept answering 429 past the retry bound.

    HTTP Status: 429
    """

    def __init__(self, message: str, attempts: int, cursor: int | None = None) -> None:
        super().__init__(message, status_code=429, cursor=cursor)
        self.attempts = attempts


class MalformedRecordError(ValidationError):
    """A catalog record is missing identity fields or has invalid field types.

    The engine skips such records and keeps processing the rest of the page.
    """

    def __init__(
        self,
        message: str,
        fields: list[str] | None = None,
        chart_id: Any = None,
    ) -> None:
        super().__init__(message)
        self.fields = fields or []
        self.chart_id = chart_id


class SyncRunError(DomainException):
    """A sync run ended before converging.

    Hey future me - `progress` tells the caller how far the run got (last
    successful cursor, pages done) so the next run can resume from there
    instead of starting over.
    """

    def __init__(self, message: str, progress: "SyncProgress") -> None:
        super().__init__(message)
        self.progress = progress


class SyncRunFailedError(SyncRunError):
    """A sync run aborted because a page fetch failed fatally.

    HTTP Status: 502
    """

    pass


class SyncCancelledError(SyncRunError):
    """A sync run was cancelled by the caller between pages."""

    pass


class SyncAlreadyRunningError(InvalidStateException):
    """A sync was requested while another run is in flight.

    HTTP Status: 409 (Conflict)
    """

    def __init__(self, message: str = "A catalog sync is already running") -> None:
        super().__init__(message)


__all__ = [
    # Base
    "DomainException",
    "EntityNotFoundException",
    "ValidationError",
    "InvalidStateException",
    "ConfigurationError",
    "ExternalServiceError",
    # Catalog sync
    "FatalFetchError",
    "RateLimitExceededError",
    "MalformedRecordError",
    "SyncRunError",
    "SyncRunFailedError",
    "SyncCancelledError",
    "SyncAlreadyRunningError",
]
