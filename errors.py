"""Errors raised by the report service.

The status computation itself never raises; these cover the submission and
storage boundaries.  ``main.py`` maps each one to an HTTP response.
"""

from __future__ import annotations


class ReportError(Exception):
    """Base class for report service errors."""


class ValidationError(ReportError):
    """Malformed request: unknown clinic, missing field or bad wait bucket."""


class StorageError(ReportError):
    """The report store is unreachable, misconfigured or a query failed."""


class RateLimited(ReportError):
    """The device already reported for this clinic within the cooldown."""

    def __init__(self, clinic_id: str, retry_after: int) -> None:
        super().__init__(f"Already reported for clinic {clinic_id} recently")
        self.clinic_id = clinic_id
        self.retry_after = retry_after
