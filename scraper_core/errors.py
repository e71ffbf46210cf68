"""Error taxonomy shared by the pool, the pipeline and the scheduler."""
from __future__ import annotations


class ScraperError(Exception):
    """Base error that carries retryability information for the scheduler."""

    def __init__(self, message: str, *, retryable: bool) -> None:
        super().__init__(message)
        self.retryable = retryable


class RetryableScraperError(ScraperError):
    """Errors that should cause the scheduler to retry the job."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=True)


class NonRetryableScraperError(ScraperError):
    """Errors that should fail the job without retry."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=False)


class PoolExhausted(RetryableScraperError):
    """All sessions are in use; callers wait rather than fail."""


class PoolClosedError(NonRetryableScraperError):
    """The browser pool was shut down while a caller was waiting."""


class NavigationTimeout(RetryableScraperError):
    """The page did not settle within the navigation budget."""


class NavigationError(RetryableScraperError):
    """Transport-level failure while loading a page."""


class SoftScraperError(ScraperError):
    """Problems that are logged and never fail a job on their own."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=False)


class ExtractionIncomplete(SoftScraperError):
    """A required field such as the title is missing from the page."""


class AddressResolutionFailed(SoftScraperError):
    """Address extraction or geocoding failed; coordinates stay empty."""


class PersistenceError(RetryableScraperError):
    """The offer store rejected a read or write."""


class DuplicateOfferError(PersistenceError):
    """Another writer created the offer with the same link first."""


class MatchTriggerError(SoftScraperError):
    """Alert matching failed after a successful commit."""


class UnsupportedSourceError(NonRetryableScraperError):
    """No source adapter is registered for the job's marketplace."""


__all__ = [
    "AddressResolutionFailed",
    "DuplicateOfferError",
    "ExtractionIncomplete",
    "MatchTriggerError",
    "NavigationError",
    "NavigationTimeout",
    "NonRetryableScraperError",
    "PersistenceError",
    "PoolClosedError",
    "PoolExhausted",
    "RetryableScraperError",
    "ScraperError",
    "SoftScraperError",
    "UnsupportedSourceError",
]
