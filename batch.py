"""
Borrow / return batches.

A batch is a cart of lines submitted together. Each batch runs inside the
ledger gate as one database transaction:

* borrow: validate every line against current stock (counting earlier lines
  of the same batch), then apply. Any rejected line rejects the whole batch
  and nothing is written.
* return: resolve every line to the loan it closes first, then apply. Lines
  without an open loan are still accepted and recorded as ``ReturnUnmatched``.

Failures come back as a ``BatchResult`` with ``ok=False``; nothing is raised
past this module.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import crud
import ledger
import matcher
from config import LOCAL_TZ
from errors import InsufficientStock, InvalidRequest, ItemNotFound, LedgerError
from gate import LEDGER_GATE, SINGLE_LOCK_TIMEOUT
from models import BatchResult, BorrowLine, BorrowRequest, ReturnLine, ReturnRequest
from orm import TransactionORM
from proofs import ProofUploader, resolve_proof

logger = logging.getLogger("app.batch")


def _failure(e: LedgerError) -> BatchResult:
    return BatchResult(ok=False, error=e.message, code=e.code, item_id=e.item_id)


def _store_failure(kind: str, e: SQLAlchemyError) -> BatchResult:
    logger.exception("batch=%s store_error", kind)
    return BatchResult(ok=False, error=f"{kind.capitalize()} batch failed: {e}", code="store_error")


def _over_return_warning(item_id: str, excess: int) -> str:
    return f"Over-return for item {item_id}: {excess} unit(s) above total were not added back"

# ---------- Borrow ----------
def _validate_borrow(db: Session, request: BorrowRequest) -> None:
    if not request.user_id.strip():
        raise InvalidRequest("userId is required")
    if not request.reason.strip():
        raise InvalidRequest("reason is required")
    if not request.lines:
        raise InvalidRequest("at least one line is required")

    pending: dict[str, int] = defaultdict(int)
    for line in request.lines:
        if line.quantity < 1:
            raise InvalidRequest(f"quantity must be >= 1 for item {line.item_id}", item_id=line.item_id)
        item = crud.get_item_row(db, line.item_id)
        if not item:
            raise ItemNotFound(line.item_id)
        if item.unlimited:
            continue
        remaining = item.available_quantity - pending[line.item_id]
        if remaining < line.quantity:
            raise InsufficientStock(line.item_id, line.quantity, remaining)
        pending[line.item_id] += line.quantity


def _apply_borrow(db: Session, request: BorrowRequest, proof_refs: list[str]) -> list[str]:
    now = crud.utcnow()
    ids: list[str] = []
    for line, proof_ref in zip(request.lines, proof_refs):
        ledger.reserve(db, line.item_id, line.quantity)
        tx = crud.insert_row(
            db,
            "transactions",
            {
                "transaction_id": crud.new_id(),
                "item_id": line.item_id,
                "user_id": request.user_id,
                "action": "Borrow",
                "quantity": line.quantity,
                "reason": request.reason,
                "expected_return_at": request.expected_return_at,
                "actual_return_at": None,
                "status": "Borrowed",
                "created_at": now,
                "condition": "",
                "notes": "",
                "borrow_proof_ref": proof_ref,
                "return_proof_ref": "",
            },
            commit=False,
        )
        ids.append(tx.transaction_id)
    return ids


def borrow_batch(
    db: Session,
    request: BorrowRequest,
    *,
    uploader: Optional[ProofUploader] = None,
    timeout: Optional[float] = None,
) -> BatchResult:
    proof_refs = [
        resolve_proof(
            uploader,
            proof_ref=line.proof_ref,
            proof_data=line.proof_data,
            filename=line.proof_name or f"borrow_{line.item_id}.jpg",
        )
        for line in request.lines
    ]

    try:
        with LEDGER_GATE.hold(timeout):
            db.expire_all()
            try:
                _validate_borrow(db, request)
                ids = _apply_borrow(db, request, proof_refs)
                db.commit()
            except Exception:
                db.rollback()
                raise
    except LedgerError as e:
        logger.info("batch=borrow user_id=%s rejected code=%s item_id=%s", request.user_id, e.code, e.item_id)
        return _failure(e)
    except SQLAlchemyError as e:
        return _store_failure("borrow", e)

    logger.info("batch=borrow user_id=%s lines=%s ok", request.user_id, len(request.lines))
    return BatchResult(ok=True, transaction_ids=ids)

# ---------- Return ----------
def _resolve_returns(db: Session, request: ReturnRequest) -> list[tuple[ReturnLine, Optional[TransactionORM]]]:
    claimed: set[str] = set()
    plan = []
    for line in request.lines:
        tx = matcher.find_open_transaction(db, line.item_id, request.user_id, exclude=claimed)
        if tx is not None:
            claimed.add(tx.transaction_id)
        plan.append((line, tx))
    return plan


def return_batch(
    db: Session,
    request: ReturnRequest,
    *,
    uploader: Optional[ProofUploader] = None,
    timeout: Optional[float] = None,
) -> BatchResult:
    proof_refs = [
        resolve_proof(
            uploader,
            proof_ref=line.proof_ref,
            proof_data=line.proof_data,
            filename=line.proof_name or f"return_{line.item_id}.jpg",
        )
        for line in request.lines
    ]

    closed: list[str] = []
    unmatched: list[str] = []
    warnings: list[str] = []
    try:
        with LEDGER_GATE.hold(timeout):
            db.expire_all()
            try:
                if not request.user_id.strip():
                    raise InvalidRequest("userId is required")
                plan = _resolve_returns(db, request)

                for (line, tx), proof_ref in zip(plan, proof_refs):
                    if tx is not None:
                        item_id, quantity = tx.item_id, tx.quantity
                        matcher.close_transaction(
                            db, tx, condition=line.condition, notes=line.notes, return_proof_ref=proof_ref
                        )
                        closed.append(tx.transaction_id)
                    else:
                        item_id, quantity = line.item_id, matcher.UNMATCHED_DEFAULT_QUANTITY
                        record = matcher.record_unmatched_return(
                            db,
                            item_id=line.item_id,
                            user_id=request.user_id,
                            condition=line.condition,
                            notes=line.notes,
                            return_proof_ref=proof_ref,
                        )
                        closed.append(record.transaction_id)
                        unmatched.append(line.item_id)

                    if not crud.item_id_exists(db, item_id):
                        logger.warning("return item_id=%s item_deleted stock_unchanged", item_id)
                        continue
                    excess = ledger.release(db, item_id, quantity)
                    if excess:
                        warnings.append(_over_return_warning(item_id, excess))

                db.commit()
            except Exception:
                db.rollback()
                raise
    except LedgerError as e:
        logger.info("batch=return user_id=%s rejected code=%s", request.user_id, e.code)
        return _failure(e)
    except SQLAlchemyError as e:
        return _store_failure("return", e)

    logger.info(
        "batch=return user_id=%s lines=%s unmatched=%s ok", request.user_id, len(request.lines), len(unmatched)
    )
    return BatchResult(ok=True, transaction_ids=closed, unmatched=unmatched, warnings=warnings)

# ---------- Single-line wrappers ----------
def _invalid(e: ValidationError) -> BatchResult:
    err = e.errors()[0]
    field = ".".join(str(p) for p in err.get("loc", ()))
    return _failure(InvalidRequest(f"{field}: {err.get('msg')}"))


def borrow_one(
    db: Session,
    *,
    user_id: str,
    item_id: str,
    quantity: int,
    reason: str,
    expected_return_at: Optional[date] = None,
    proof_ref: Optional[str] = None,
    proof_data: Optional[str] = None,
    uploader: Optional[ProofUploader] = None,
    timeout: Optional[float] = SINGLE_LOCK_TIMEOUT,
) -> BatchResult:
    try:
        request = BorrowRequest(
            user_id=user_id,
            reason=reason,
            expected_return_at=expected_return_at,
            lines=[BorrowLine(item_id=item_id, quantity=quantity, proof_ref=proof_ref, proof_data=proof_data)],
        )
    except ValidationError as e:
        return _invalid(e)
    return borrow_batch(db, request, uploader=uploader, timeout=timeout)


def return_one(
    db: Session,
    *,
    user_id: str,
    item_id: str,
    condition: Optional[str] = None,
    notes: Optional[str] = None,
    proof_ref: Optional[str] = None,
    proof_data: Optional[str] = None,
    uploader: Optional[ProofUploader] = None,
    timeout: Optional[float] = SINGLE_LOCK_TIMEOUT,
) -> BatchResult:
    try:
        request = ReturnRequest(
            user_id=user_id,
            lines=[
                ReturnLine(
                    item_id=item_id, condition=condition, notes=notes, proof_ref=proof_ref, proof_data=proof_data
                )
            ],
        )
    except ValidationError as e:
        return _invalid(e)
    return return_batch(db, request, uploader=uploader, timeout=timeout)

# ---------- Overdue sweep ----------
def local_date(now: Optional[datetime] = None) -> date:
    """Calendar date at the crib (APP_TZ). Naive datetimes are taken as local already."""
    now = now or crud.utcnow()
    if now.tzinfo is not None:
        now = now.astimezone(LOCAL_TZ)
    return now.date()


def sweep_overdue(db: Session, *, now: Optional[datetime] = None, timeout: Optional[float] = None) -> int:
    """Mark Borrowed loans whose expected return date is before today (crib local date) as Overdue."""
    today = local_date(now)
    with LEDGER_GATE.hold(timeout):
        db.expire_all()
        updated = crud.mark_overdue(db, before=today, commit=True)
    logger.info("sweep=overdue before=%s updated=%s", today.isoformat(), updated)
    return updated
