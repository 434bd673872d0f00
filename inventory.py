"""Administrative item writes (add / edit / remove), serialised with borrows."""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

import crud
from errors import DuplicateItemId, InvalidRequest, ItemNotFound
from gate import LEDGER_GATE, SINGLE_LOCK_TIMEOUT
from models import Item, ItemIn, ItemUpdate
from quantity import Finite, Quantity, is_unlimited, parse_quantity

logger = logging.getLogger("app.inventory")


def _resolve_stock(
    current_total: Quantity,
    current_available: Quantity,
    total_raw: object,
    available_raw: object,
) -> tuple[Quantity, Quantity]:
    total = parse_quantity(total_raw) if total_raw is not None else current_total
    if is_unlimited(total):
        return total, total

    if available_raw is not None:
        available = parse_quantity(available_raw)
        if is_unlimited(available):
            raise InvalidRequest("availableQuantity cannot be Unlimited when totalQuantity is finite")
    elif is_unlimited(current_available):
        available = total
    else:
        available = Finite(min(current_available.value, total.value))

    if available.value > total.value:
        raise InvalidRequest(
            f"availableQuantity ({available.value}) cannot exceed totalQuantity ({total.value})"
        )
    return total, available


def add_item(db: Session, body: ItemIn, *, timeout: Optional[float] = SINGLE_LOCK_TIMEOUT) -> Item:
    item_id = body.item_id.strip()
    if not item_id:
        raise InvalidRequest("itemId is required")
    with LEDGER_GATE.hold(timeout):
        db.expire_all()
        if crud.item_id_exists(db, item_id):
            raise DuplicateItemId(item_id)
        row = crud.create_item_row(
            db,
            item_id=item_id,
            name=body.name,
            total=parse_quantity(body.total_quantity),
            unit=body.unit,
            location=body.location,
            image_ref=body.image_ref,
        )
        item = crud.get_item(db, row.item_id)
    logger.info("item=add item_id=%s", item_id)
    return item


def edit_item(
    db: Session,
    item_id: str,
    body: ItemUpdate,
    *,
    timeout: Optional[float] = SINGLE_LOCK_TIMEOUT,
) -> Item:
    """Overwrite item fields. Stock may be set directly; keeping it in line
    with open loans is up to the administrator."""
    data = body.model_dump(exclude_unset=True)
    with LEDGER_GATE.hold(timeout):
        db.expire_all()
        row = crud.get_item_row(db, item_id)
        if not row:
            raise ItemNotFound(item_id)

        fields = {k: v for k, v in data.items() if k not in ("total_quantity", "available_quantity")}
        if fields.get("name", "") is None:
            raise InvalidRequest("name cannot be null")
        if "total_quantity" in data or "available_quantity" in data:
            total, available = _resolve_stock(
                crud.item_total(row),
                crud.item_available(row),
                data.get("total_quantity"),
                data.get("available_quantity"),
            )
            fields.update(crud.stock_columns(total, available))
        fields["updated_at"] = crud.utcnow()

        crud.update_fields(db, "items", row.row_id, fields)
        item = crud.get_item(db, item_id)
    logger.info("item=edit item_id=%s fields=%s", item_id, ",".join(sorted(data)))
    return item


def remove_item(db: Session, item_id: str, *, timeout: Optional[float] = SINGLE_LOCK_TIMEOUT) -> None:
    """Hard delete. Transactions referencing the item are kept."""
    with LEDGER_GATE.hold(timeout):
        db.expire_all()
        row = crud.get_item_row(db, item_id)
        if not row:
            raise ItemNotFound(item_id)
        crud.delete_row(db, "items", row.row_id)
    logger.info("item=remove item_id=%s", item_id)
