"""
Domain error taxonomy.

Services raise these before any write; the API layer maps each class to an
HTTP status so the client can tell "access denied" from "fix your input".
"""


class LedgerError(Exception):
    """Base class for rejected ledger operations."""
    status_code = 400
    default_code = "LEDGER_ERROR"

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(LedgerError):
    """Bad input values: non-positive amounts, self-references, bad splits."""
    status_code = 400
    default_code = "VALIDATION_ERROR"


class AuthorizationError(LedgerError):
    """Caller is not allowed to perform the operation."""
    status_code = 403
    default_code = "FORBIDDEN"


class NotFoundError(LedgerError):
    """Referenced group, user or expense does not exist."""
    status_code = 404
    default_code = "NOT_FOUND"


class ConsistencyError(LedgerError):
    """Request conflicts with the current ledger state."""
    status_code = 409
    default_code = "CONSISTENCY_ERROR"
