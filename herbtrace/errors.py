# herbtrace/errors.py
"""
Error taxonomy shared by the ledger, resolver, codec and stores.

Every error carries a stable machine-readable `kind` and a human-readable
`reason`. Only StorageError (bar DuplicateEventError) is worth retrying; the
rest are either caller bugs (wrong token, wrong order) or business-rule
violations.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class LedgerError(Exception):
    kind = "ledger_error"
    retryable = False

    def __init__(self, reason: str, **context: Any):
        super().__init__(reason)
        self.reason = reason
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"kind": self.kind, "reason": self.reason}
        if self.context:
            out["context"] = dict(self.context)
        return out


class NotFoundError(LedgerError):
    kind = "not_found"


class DuplicateStageError(LedgerError):
    kind = "duplicate_stage"


class TerminalBatchError(LedgerError):
    kind = "terminal_batch"


class OutOfOrderError(LedgerError):
    kind = "out_of_order"


class InvalidFormatError(LedgerError):
    kind = "invalid_format"


class PayloadValidationError(LedgerError):
    """A stage payload that does not fit its event type."""

    kind = "validation_error"


class StorageError(LedgerError):
    kind = "storage_error"
    retryable = True

    def __init__(self, reason: str, cause: Optional[BaseException] = None, **context: Any):
        super().__init__(reason, **context)
        self.cause = cause


class DuplicateEventError(StorageError):
    """An event id is already stored with different content; events are never overwritten."""

    kind = "duplicate_event"
    retryable = False


# kind -> HTTP status, shared by the Flask pages and the REST API
HTTP_STATUS = {
    NotFoundError.kind: 404,
    DuplicateStageError.kind: 409,
    TerminalBatchError.kind: 409,
    OutOfOrderError.kind: 409,
    InvalidFormatError.kind: 400,
    PayloadValidationError.kind: 422,
    StorageError.kind: 503,
    DuplicateEventError.kind: 409,
}


def http_status(err: LedgerError) -> int:
    return HTTP_STATUS.get(err.kind, 500)
