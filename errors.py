from __future__ import annotations

from typing import Any, Optional


class LedgerError(Exception):
    """Base for every failure the ledger reports back to a caller."""

    code = "ledger_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, *, item_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.item_id = item_id

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.item_id is not None:
            detail["itemId"] = self.item_id
        return detail


class ItemNotFound(LedgerError):
    code = "item_not_found"
    status_code = 404

    def __init__(self, item_id: str) -> None:
        super().__init__(f"Item not found: {item_id}", item_id=item_id)


class InsufficientStock(LedgerError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, item_id: str, requested: int, remaining: int) -> None:
        super().__init__(
            f"Not enough stock for item {item_id}: requested {requested}, available {remaining}",
            item_id=item_id,
        )
        self.requested = requested
        self.remaining = remaining


class DuplicateItemId(LedgerError):
    code = "duplicate_item_id"
    status_code = 409

    def __init__(self, item_id: str) -> None:
        super().__init__(f"Item ID already exists: {item_id}", item_id=item_id)


class UserNotFound(LedgerError):
    code = "user_not_found"
    status_code = 404

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class LockTimeout(LedgerError):
    code = "lock_timeout"
    status_code = 503
    retryable = True

    def __init__(self, name: str, timeout: float) -> None:
        super().__init__(f"Server busy ({name} lock not acquired within {timeout:g}s), please retry")
        self.timeout = timeout


class InvalidRequest(LedgerError):
    code = "invalid_request"
    status_code = 422


def status_for(code: Optional[str]) -> int:
    """HTTP status for a failure code carried by a BatchResult."""
    for cls in LedgerError.__subclasses__():
        if cls.code == code:
            return cls.status_code
    if code == "store_error":
        return 500
    return LedgerError.status_code
