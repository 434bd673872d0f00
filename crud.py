from __future__ import annotations

from datetime import datetime, timezone

from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import select, delete, update
from sqlalchemy.orm import Session

from models import ActiveBorrow, ActivityLog, Item, Transaction, User
from orm import ActivityLogORM, ItemORM, TransactionORM, UserORM
from quantity import UNLIMITED, Finite, Quantity, is_unlimited

TABLES = {
    "items": ItemORM,
    "users": UserORM,
    "transactions": TransactionORM,
    "activity_logs": ActivityLogORM,
}

OPEN_STATUSES = ("Borrowed", "Overdue")
ADMIN_LOG_LIMIT = 50

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def persist(db: Session, *, commit: bool) -> None:
    if commit:
        db.commit()
    else:
        db.flush()

def new_id() -> str:
    return str(uuid4())

def _table(table: str):
    try:
        return TABLES[table]
    except KeyError:
        raise KeyError(f"unknown table: {table}") from None

# ---------- Record store ----------
def list_rows(db: Session, table: str) -> list[Any]:
    model = _table(table)
    return list(db.execute(select(model).order_by(model.row_id.asc())).scalars().all())


def insert_row(db: Session, table: str, fields: dict[str, Any], *, commit: bool = True) -> Any:
    row = _table(table)(**fields)
    db.add(row)
    # flush either way so row_id is assigned
    persist(db, commit=commit)
    if commit:
        db.refresh(row)
    return row


def update_fields(db: Session, table: str, row_id: int, fields: dict[str, Any], *, commit: bool = True) -> bool:
    model = _table(table)
    row = db.get(model, row_id)
    if not row:
        return False
    for k, v in fields.items():
        if not hasattr(model, k):
            raise KeyError(f"unknown column {table}.{k}")
        setattr(row, k, v)
    persist(db, commit=commit)
    return True


def delete_row(db: Session, table: str, row_id: int, *, commit: bool = True) -> bool:
    model = _table(table)
    result = db.execute(delete(model).where(model.row_id == row_id))
    persist(db, commit=commit)
    return result.rowcount > 0

# ---------- Item ----------
def item_total(i: ItemORM) -> Quantity:
    return UNLIMITED if i.unlimited else Finite(i.total_quantity)

def item_available(i: ItemORM) -> Quantity:
    return UNLIMITED if i.unlimited else Finite(i.available_quantity)

def _item_to_schema(i: ItemORM) -> Item:
    if i.unlimited:
        total = available = "Unlimited"
        status = "Available"
    else:
        total, available = i.total_quantity, i.available_quantity
        status = "Available" if available > 0 else "Borrowed"
    return Item(
        item_id=i.item_id,
        name=i.name,
        total_quantity=total,
        available_quantity=available,
        unit=i.unit,
        location=i.location,
        image_ref=i.image_ref,
        status=status,
        created_at=i.created_at,
        updated_at=i.updated_at,
    )

def get_item_row(db: Session, item_id: str) -> Optional[ItemORM]:
    stmt = select(ItemORM).where(ItemORM.item_id == item_id)
    return db.execute(stmt).scalars().first()

def item_id_exists(db: Session, item_id: str) -> bool:
    return get_item_row(db, item_id) is not None

def get_item(db: Session, item_id: str) -> Optional[Item]:
    row = get_item_row(db, item_id)
    return _item_to_schema(row) if row else None

def list_items(db: Session) -> list[Item]:
    return [_item_to_schema(i) for i in list_rows(db, "items")]

def stock_columns(total: Quantity, available: Optional[Quantity] = None) -> dict[str, Any]:
    """Column values for a (total, available) pair; available defaults to total."""
    if is_unlimited(total) or (available is not None and is_unlimited(available)):
        return {"unlimited": True, "total_quantity": 0, "available_quantity": 0}
    available = available if available is not None else total
    return {
        "unlimited": False,
        "total_quantity": total.value,
        "available_quantity": available.value,
    }

def create_item_row(
    db: Session,
    *,
    item_id: str,
    name: str,
    total: Quantity,
    unit: Optional[str] = None,
    location: Optional[str] = None,
    image_ref: Optional[str] = None,
    commit: bool = True,
) -> ItemORM:
    now = utcnow()
    fields = {
        "item_id": item_id,
        "name": name,
        "unit": unit,
        "location": location,
        "image_ref": image_ref,
        "created_at": now,
        "updated_at": now,
        **stock_columns(total),
    }
    return insert_row(db, "items", fields, commit=commit)

# ---------- User ----------
def _user_to_schema(u: UserORM) -> User:
    return User(
        user_id=u.user_id,
        display_name=u.display_name,
        department=u.department,
        cohort=u.cohort,
        role=u.role,  # type: ignore[arg-type]
        has_pin=bool(u.pin),
        registered_at=u.registered_at,
    )

def get_user_row(db: Session, user_id: str) -> Optional[UserORM]:
    return db.execute(select(UserORM).where(UserORM.user_id == user_id)).scalars().first()

def get_user(db: Session, user_id: str) -> Optional[User]:
    row = get_user_row(db, user_id)
    return _user_to_schema(row) if row else None

def list_users(db: Session) -> list[User]:
    return [_user_to_schema(u) for u in list_rows(db, "users")]

def upsert_user(
    db: Session,
    user_id: str,
    *,
    display_name: str,
    department: Optional[str],
    cohort: Optional[str],
    commit: bool = True,
) -> bool:
    """Create the user or update profile fields. Returns True when created.

    role and pin are never touched here.
    """
    row = get_user_row(db, user_id)
    profile = {"display_name": display_name, "department": department, "cohort": cohort}
    if row:
        update_fields(db, "users", row.row_id, profile, commit=commit)
        return False

    insert_row(
        db,
        "users",
        {"user_id": user_id, "role": "member", "pin": None, "registered_at": utcnow(), **profile},
        commit=commit,
    )
    return True

def set_user_pin(db: Session, user_id: str, pin: str, *, commit: bool = True) -> bool:
    row = get_user_row(db, user_id)
    if not row:
        return False
    return update_fields(db, "users", row.row_id, {"pin": pin}, commit=commit)

# ---------- Transaction ----------
def _transaction_to_schema(t: TransactionORM) -> Transaction:
    return Transaction(
        transaction_id=t.transaction_id,
        item_id=t.item_id,
        user_id=t.user_id,
        action=t.action,  # type: ignore[arg-type]
        quantity=t.quantity,
        reason=t.reason,
        expected_return_at=t.expected_return_at,
        actual_return_at=t.actual_return_at,
        status=t.status,  # type: ignore[arg-type]
        created_at=t.created_at,
        condition=t.condition,
        notes=t.notes,
        borrow_proof_ref=t.borrow_proof_ref,
        return_proof_ref=t.return_proof_ref,
    )

def get_transaction(db: Session, transaction_id: str) -> Optional[Transaction]:
    stmt = select(TransactionORM).where(TransactionORM.transaction_id == transaction_id)
    row = db.execute(stmt).scalars().first()
    return _transaction_to_schema(row) if row else None

def list_transactions(
    db: Session,
    *,
    status: Optional[str] = None,
    user_id: Optional[str] = None,
    item_id: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> list[Transaction]:
    """Newest first."""
    stmt = select(TransactionORM)
    if status:
        stmt = stmt.where(TransactionORM.status == status)
    if user_id:
        stmt = stmt.where(TransactionORM.user_id == user_id)
    if item_id:
        stmt = stmt.where(TransactionORM.item_id == item_id)
    stmt = stmt.order_by(TransactionORM.row_id.desc()).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    return [_transaction_to_schema(t) for t in db.execute(stmt).scalars().all()]

def list_active_borrows(db: Session, user_id: str) -> list[ActiveBorrow]:
    stmt = (
        select(TransactionORM)
        .where(TransactionORM.user_id == user_id, TransactionORM.status.in_(OPEN_STATUSES))
        .order_by(TransactionORM.row_id.asc())
    )
    return [
        ActiveBorrow(
            transaction_id=t.transaction_id,
            item_id=t.item_id,
            quantity=t.quantity,
            status=t.status,  # type: ignore[arg-type]
            expected_return_at=t.expected_return_at,
        )
        for t in db.execute(stmt).scalars().all()
    ]

def mark_overdue(db: Session, *, before, commit: bool = True) -> int:
    """Flip Borrowed rows whose expected return date is earlier than ``before``."""
    result = db.execute(
        update(TransactionORM)
        .where(
            TransactionORM.status == "Borrowed",
            TransactionORM.expected_return_at.is_not(None),
            TransactionORM.expected_return_at < before,
        )
        .values(status="Overdue")
    )
    persist(db, commit=commit)
    return result.rowcount

# ---------- Activity log ----------
def log_activity(db: Session, action: str, actor: Optional[str], *, commit: bool = True) -> ActivityLog:
    row = insert_row(
        db,
        "activity_logs",
        {"logged_at": utcnow(), "action": action, "actor": actor},
        commit=commit,
    )
    return ActivityLog(logged_at=row.logged_at, action=row.action, actor=row.actor)

def list_activity(db: Session, limit: int = ADMIN_LOG_LIMIT) -> list[ActivityLog]:
    stmt = select(ActivityLogORM).order_by(ActivityLogORM.row_id.desc()).limit(limit)
    return [
        ActivityLog(logged_at=r.logged_at, action=r.action, actor=r.actor)
        for r in db.execute(stmt).scalars().all()
    ]
