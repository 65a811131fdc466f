"""
Failure taxonomy for scheduled page fetches.

Every error carries the offending URL so callers can report which page
could not be obtained.
"""

from __future__ import annotations


class SchedulerError(RuntimeError):
    """
    Base class for failures of one scheduled request.
    """

    def __init__(self, url: str, message: str | None = None) -> None:
        self.url = url
        super().__init__(message or url)


class TransientFetchError(SchedulerError):
    """
    Timeout, connection error or retryable HTTP status. Retried with backoff.
    """

    def __init__(self, url: str, message: str | None = None, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(url, message)


class FetchFailedError(SchedulerError):
    """
    Raised when a page cannot be fetched after retries, or the site answered
    with a non-retryable HTTP status.
    """

    def __init__(
        self,
        url: str,
        message: str | None = None,
        *,
        attempts: int = 0,
        status_code: int | None = None,
    ) -> None:
        self.attempts = attempts
        self.status_code = status_code
        super().__init__(url, message or f"Failed to fetch {url} after {attempts} attempt(s)")


class SignInRequiredError(SchedulerError):
    """
    The site answered with its sign-in page: the session is logged out.
    """

    def __init__(self, url: str, message: str | None = None) -> None:
        super().__init__(url, message or f"Sign-in required when fetching {url}")


class ConversionError(SchedulerError):
    """
    The converter rejected the fetched content. Permanent: never retried.
    """

    def __init__(self, url: str, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(url, f"Could not convert {url}: {cause}")


class SchedulerAbortedError(SchedulerError):
    """
    The request was cancelled by abort(), or submitted to an aborted scheduler.
    """

    def __init__(self, url: str, purpose: str = "") -> None:
        self.purpose = purpose
        super().__init__(url, f"scheduler aborted (purpose={purpose!r}) url={url}")


class ChannelClosedError(RuntimeError):
    """
    Raised by a message channel that can no longer deliver messages.
    """
