from pydantic import BaseModel, ConfigDict, Field, BeforeValidator
from pydantic.alias_generators import to_camel
from typing import Annotated, Optional, Literal, Union
from datetime import date, datetime

from quantity import dump_quantity, parse_quantity

Role = Literal["member", "admin"]
ItemStatus = Literal["Available", "Borrowed"]
TransactionAction = Literal["Borrow", "ReturnUnmatched"]
TransactionStatus = Literal["Borrowed", "Overdue", "Returned"]


def _normalize_stock(value: object) -> object:
    return dump_quantity(parse_quantity(value))

# JSON shape of a Quantity: non-negative int or "Unlimited"
StockValue = Annotated[
    Union[int, Literal["Unlimited"]],
    BeforeValidator(_normalize_stock),
]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# ---------- Item ----------
class ItemIn(CamelModel):
    item_id: str = Field(min_length=1)
    name: str
    total_quantity: StockValue
    unit: Optional[str] = None
    location: Optional[str] = None
    image_ref: Optional[str] = None

class ItemUpdate(CamelModel):
    name: Optional[str] = None
    total_quantity: Optional[StockValue] = None
    available_quantity: Optional[StockValue] = None
    unit: Optional[str] = None
    location: Optional[str] = None
    image_ref: Optional[str] = None

class Item(ItemIn):
    available_quantity: StockValue
    status: ItemStatus = "Available"
    created_at: datetime
    updated_at: datetime

# ---------- User ----------
class UserIn(CamelModel):
    display_name: str = ""
    department: Optional[str] = None
    cohort: Optional[str] = None

class User(UserIn):
    user_id: str
    role: Role = "member"
    has_pin: bool = False
    registered_at: datetime

class UserLookup(CamelModel):
    exists: bool
    user: Optional[User] = None

class PinIn(CamelModel):
    pin: str = Field(pattern=r"^\d{4,8}$")

class PinCheck(CamelModel):
    ok: bool

# ---------- Borrow / Return ----------
class BorrowLine(CamelModel):
    item_id: str
    quantity: int = Field(ge=1)
    proof_ref: Optional[str] = None
    proof_data: Optional[str] = None
    proof_name: Optional[str] = None

class BorrowRequest(CamelModel):
    user_id: str = Field(min_length=1)
    reason: str = Field(min_length=1)
    expected_return_at: Optional[date] = None
    lines: list[BorrowLine] = Field(min_length=1)

class ReturnLine(CamelModel):
    item_id: str
    condition: Optional[str] = None
    notes: Optional[str] = None
    proof_ref: Optional[str] = None
    proof_data: Optional[str] = None
    proof_name: Optional[str] = None

class ReturnRequest(CamelModel):
    user_id: str = Field(min_length=1)
    lines: list[ReturnLine] = Field(min_length=1)

class BatchResult(CamelModel):
    ok: bool
    error: Optional[str] = None
    code: Optional[str] = None
    item_id: Optional[str] = None
    transaction_ids: list[str] = Field(default_factory=list)
    unmatched: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

# ---------- Transaction ----------
class Transaction(CamelModel):
    transaction_id: str
    item_id: str
    user_id: str
    action: TransactionAction
    quantity: int
    reason: Optional[str] = None
    expected_return_at: Optional[date] = None
    actual_return_at: Optional[datetime] = None
    status: TransactionStatus
    created_at: datetime
    condition: Optional[str] = None
    notes: Optional[str] = None
    borrow_proof_ref: Optional[str] = None
    return_proof_ref: Optional[str] = None

class ActiveBorrow(CamelModel):
    transaction_id: str
    item_id: str
    quantity: int
    status: TransactionStatus
    expected_return_at: Optional[date] = None

class SweepResult(CamelModel):
    updated: int

# ---------- Admin activity ----------
class ActivityLogIn(CamelModel):
    action: str = Field(min_length=1)
    actor: Optional[str] = None

class ActivityLog(ActivityLogIn):
    logged_at: datetime


