"""
Exception classes for the sync engine.

Fetch-side errors (SpApiError, ReportFailedError and subclasses) are caught per
group by the orchestrator and recorded on the job; the remaining ones are
raised to the caller.
"""
from typing import Any, Dict, Optional


class DataBridgeError(Exception):
    """Base exception for all sync engine errors"""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class SpApiError(DataBridgeError):
    """
    Vendor API call failed.

    Attributes:
        status_code: HTTP status, None for connection-level failures
    """

    def __init__(self, message: str, status_code: Optional[int] = None, context: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        super().__init__(message, context)

    @property
    def transient(self) -> bool:
        return self.status_code is None or self.status_code >= 500


class SpApiQuotaError(SpApiError):
    """Raised when SP-API returns QuotaExceeded / 429."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=429, context=context)

    @property
    def transient(self) -> bool:
        return True


class ReportFailedError(DataBridgeError):
    """Report ended in CANCELLED or FATAL."""

    def __init__(self, report_id: str, status: Optional[str], message: Optional[str] = None):
        self.report_id = report_id
        self.status = status
        super().__init__(
            message or f"Report {report_id} failed with status: {status}",
            {"report_id": report_id, "status": status},
        )


class ReportTimeoutError(ReportFailedError):
    """Report did not reach DONE within the configured poll attempts."""

    def __init__(self, report_id: str, attempts: int, last_status: Optional[str] = None):
        self.attempts = attempts
        super().__init__(
            report_id,
            last_status,
            f"Report {report_id} timed out after {attempts} attempts (last status: {last_status})",
        )


class InvalidJobTransition(DataBridgeError):
    def __init__(self, job_id: Any, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            f"Sync job {job_id} cannot move from '{current}' to '{target}'",
            {"job_id": job_id, "current": current, "target": target},
        )


class MarketplaceNotFound(DataBridgeError):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Marketplace not found: {code}", {"marketplace": code})


class CredentialNotFound(DataBridgeError):
    pass
