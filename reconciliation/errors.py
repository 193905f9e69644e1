"""
Error Taxonomy for the Reconciliation Engine

Stores raise these exceptions. Engine components catch them at their own
boundary and hand them back inside typed results, so a caller never has to
guard a call with try/except.
"""


class ReconciliationError(Exception):
    """Base class for every error the engine reports."""

    code = "reconciliation_error"
    http_status = 500

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = {k: str(v) for k, v in self.details.items()}
        return payload


class ValidationError(ReconciliationError, ValueError):
    """Input or configuration problem.

    Raised for malformed input. Participant percentages that do not add up
    to 100 are reported with this type too, but only as a warning attached
    to a result.
    """

    code = "validation_error"
    http_status = 400


class ConflictError(ReconciliationError):
    """A daily entry already exists for the (offer, date) pair."""

    code = "conflict"
    http_status = 409


class NotFoundError(ReconciliationError):
    """Referenced offer, subscription or entry does not exist."""

    code = "not_found"
    http_status = 404


class ExternalServiceError(ReconciliationError):
    """Persistence or exchange-rate service failure."""

    code = "external_service_error"
    http_status = 502


def http_status_for(code: str) -> int:
    """HTTP status for an error code as produced by `to_dict()`."""
    for cls in (ValidationError, ConflictError, NotFoundError, ExternalServiceError):
        if cls.code == code:
            return cls.http_status
    return ReconciliationError.http_status
