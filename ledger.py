"""Stock ledger: the only code that changes an item's available quantity."""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

import crud
from errors import InsufficientStock, InvalidRequest, ItemNotFound

logger = logging.getLogger("app.ledger")


def _check_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidRequest(f"quantity must be a positive integer, got {quantity!r}")


def reserve(db: Session, item_id: str, quantity: int, *, commit: bool = False) -> None:
    """Take ``quantity`` units out of available stock.

    Unlimited items are left untouched. Must run inside the ledger gate.
    """
    _check_quantity(quantity)
    item = crud.get_item_row(db, item_id)
    if not item:
        raise ItemNotFound(item_id)
    if item.unlimited:
        return
    if item.available_quantity < quantity:
        raise InsufficientStock(item_id, quantity, item.available_quantity)

    item.available_quantity -= quantity
    item.updated_at = crud.utcnow()
    crud.persist(db, commit=commit)


def release(db: Session, item_id: str, quantity: int, *, commit: bool = False) -> int:
    """Put ``quantity`` units back, never above total.

    Returns how many units were discarded to stay within total (0 for a
    normal return).
    """
    _check_quantity(quantity)
    item = crud.get_item_row(db, item_id)
    if not item:
        raise ItemNotFound(item_id)
    if item.unlimited:
        return 0

    ceiling = max(item.total_quantity, item.available_quantity)
    restored = min(item.available_quantity + quantity, ceiling)
    excess = item.available_quantity + quantity - restored
    if excess:
        logger.warning(
            "over_return item_id=%s quantity=%s available=%s total=%s discarded=%s",
            item_id, quantity, item.available_quantity, item.total_quantity, excess,
        )
    item.available_quantity = restored
    item.updated_at = crud.utcnow()
    crud.persist(db, commit=commit)
    return excess
