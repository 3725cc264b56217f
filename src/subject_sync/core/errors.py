"""Error taxonomy for the subject sync service.

- TransientUpstreamError: rate limiting or a server-side failure. Retried by
  RetryingClient, then surfaced.
- NonRetriableUpstreamError: validation or auth failure from the store.
  Surfaced immediately.
- UpstreamUnavailable: a startup load (activity type catalog) could not
  complete.
- ConfigInvalid: required configuration missing at startup. Fatal.

Missing records and out-of-scope types are not errors; they are reported
as ReconcileOutcome values.
"""

from __future__ import annotations


class SubjectSyncError(Exception):
    """Base class for all service errors."""


class UpstreamError(SubjectSyncError):
    """Failure reported by, or while talking to, the record store."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class TransientUpstreamError(UpstreamError):
    """429, 5xx or network failure -- safe to retry."""


class NonRetriableUpstreamError(UpstreamError):
    """4xx (other than 404/429) or a rejected request -- never retried."""


class UpstreamUnavailable(SubjectSyncError):
    """A required upstream load could not be completed."""


class ConfigInvalid(SubjectSyncError):
    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required configuration: {', '.join(missing)}")


__all__ = [
    "SubjectSyncError",
    "UpstreamError",
    "TransientUpstreamError",
    "NonRetriableUpstreamError",
    "UpstreamUnavailable",
    "ConfigInvalid",
]
