"""Error taxonomy for dispatch operations.

Every error is terminal for the operation that raised it and is reported
back to the originating connection only.
"""
from typing import Optional


class DispatchError(Exception):
    """Base class for failures reported to the caller."""

    def __init__(self, message: str, sos_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.sos_id = sos_id

    def to_dict(self) -> dict:
        body = {"error": type(self).__name__, "message": self.message}
        if self.sos_id is not None:
            body["sosId"] = self.sos_id
        return body


class ValidationError(DispatchError):
    """Malformed inbound payload."""


class NotFound(DispatchError):
    """Unknown request or actor identity."""


class InvalidTransition(DispatchError):
    """Request is not in the status the operation requires."""


class DuplicateRequest(DispatchError):
    """A request with the same sosId is already in the ledger."""


class RoleConflict(DispatchError):
    """Connection is already registered under another role."""
