"""
Return matching.

A return closes the user's *most recent* open loan of the item (LIFO by
creation order), not the oldest. Keep it that way: clients and reports rely
on which loan gets closed when the same item was borrowed more than once.
"""
from __future__ import annotations

import logging
from collections.abc import Collection
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

import crud
from orm import TransactionORM

logger = logging.getLogger("app.matcher")

UNMATCHED_DEFAULT_QUANTITY = 1
UNMATCHED_DEFAULT_REASON = "Force Return"


def find_open_transaction(
    db: Session,
    item_id: str,
    user_id: str,
    *,
    exclude: Collection[str] = (),
) -> Optional[TransactionORM]:
    stmt = (
        select(TransactionORM)
        .where(
            TransactionORM.item_id == item_id,
            TransactionORM.user_id == user_id,
            TransactionORM.status.in_(crud.OPEN_STATUSES),
        )
        .order_by(TransactionORM.row_id.desc())
    )
    if exclude:
        stmt = stmt.where(TransactionORM.transaction_id.not_in(list(exclude)))
    return db.execute(stmt).scalars().first()


def close_transaction(
    db: Session,
    tx: TransactionORM,
    *,
    condition: Optional[str],
    notes: Optional[str],
    return_proof_ref: Optional[str],
    commit: bool = False,
) -> None:
    crud.update_fields(
        db,
        "transactions",
        tx.row_id,
        {
            "status": "Returned",
            "actual_return_at": crud.utcnow(),
            "condition": condition or "",
            "notes": notes or "",
            "return_proof_ref": return_proof_ref or "",
        },
        commit=commit,
    )


def record_unmatched_return(
    db: Session,
    *,
    item_id: str,
    user_id: str,
    condition: Optional[str],
    notes: Optional[str],
    return_proof_ref: Optional[str],
    commit: bool = False,
) -> TransactionORM:
    now = crud.utcnow()
    logger.warning("unmatched_return item_id=%s user_id=%s", item_id, user_id)
    return crud.insert_row(
        db,
        "transactions",
        {
            "transaction_id": crud.new_id(),
            "item_id": item_id,
            "user_id": user_id,
            "action": "ReturnUnmatched",
            "quantity": UNMATCHED_DEFAULT_QUANTITY,
            "reason": notes or UNMATCHED_DEFAULT_REASON,
            "expected_return_at": None,
            "actual_return_at": now,
            "status": "Returned",
            "created_at": now,
            "condition": condition or "",
            "notes": notes or "",
            "borrow_proof_ref": "",
            "return_proof_ref": return_proof_ref or "",
        },
        commit=commit,
    )
