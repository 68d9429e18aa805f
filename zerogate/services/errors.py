"""
Error taxonomy for workflow transitions.

Each error carries its HTTP status and a stable `kind` so callers branch on
the kind, never on message text.
"""
from enum import Enum
from typing import List, Optional


class WorkflowError(Exception):
    """Base class. `completed_steps` lists what was durably done before the failure."""
    status_code = 500
    kind = "workflow_error"

    def __init__(self, message: str, completed_steps: Optional[List[str]] = None):
        self.message = message
        self.completed_steps = list(completed_steps or [])
        super().__init__(self.message)


class Unauthorized(WorkflowError):
    status_code = 401
    kind = "unauthorized"


class Forbidden(Unauthorized):
    """Authenticated, but not allowed (e.g. non-admin on an admin action)."""
    status_code = 403
    kind = "forbidden"


class NotFound(WorkflowError):
    status_code = 404
    kind = "not_found"


class InvalidTransition(WorkflowError):
    """The entity's current status does not allow the requested action."""
    status_code = 400
    kind = "invalid_transition"


class ValidationFailed(WorkflowError):
    status_code = 400
    kind = "validation_failed"

    def __init__(self, message: str, errors: Optional[List[str]] = None, completed_steps=None):
        self.errors = list(errors or [])
        super().__init__(message, completed_steps)


class NotImplementedAction(WorkflowError):
    status_code = 501
    kind = "not_implemented"


class PersistenceFailed(WorkflowError):
    kind = "persistence_failed"


class LedgerErrorKind(str, Enum):
    """Why a ledger operation failed."""
    TRANSACTION_FAILED = "transaction_failed"
    # tefALREADY / temREDUNDANT / tecDUPLICATE: the effect is already on-ledger
    ALREADY_APPLIED = "already_applied"
    MALFORMED_RESPONSE = "malformed_response"


class LedgerOperationFailed(WorkflowError):
    """
    A ledger transaction came back with a non-success engine result.

    tx_hash is set when the transaction reached the ledger, i.e. its effect
    may exist even though this call failed.
    """
    kind = "ledger_operation_failed"

    def __init__(
        self,
        message: str,
        result_code: Optional[str] = None,
        ledger_kind: LedgerErrorKind = LedgerErrorKind.TRANSACTION_FAILED,
        tx_hash: Optional[str] = None,
        completed_steps=None
    ):
        self.result_code = result_code
        self.ledger_kind = ledger_kind
        self.tx_hash = tx_hash
        super().__init__(message, completed_steps)


class CredentialIssuanceFailed(LedgerOperationFailed):
    kind = "credential_issuance_failed"


class LedgerUnavailable(WorkflowError):
    """Connectivity or configuration problem reaching the ledger."""
    kind = "ledger_unavailable"
