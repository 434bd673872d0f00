"""
Single-endpoint API kept for the existing web front-end.

The front-end posts ``{"action": "<name>", ...}`` to one URL and always gets
HTTP 200 back, either with a payload or with ``{"error": "..."}``. Field
names follow the front-end (``toolId``, ``fullName``, ``totalQty``, ...).
"""
import logging
from typing import Any, Callable, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import ValidationError
from sqlalchemy.orm import Session

import batch
import crud
import inventory
from dependencies import get_db, get_uploader
from errors import LedgerError
from models import BatchResult, BorrowLine, BorrowRequest, ItemIn, ItemUpdate, ReturnLine, ReturnRequest
from proofs import ProofUploader
from quantity import UNLIMITED_LABEL

logger = logging.getLogger("app.actions")

router = APIRouter()

Handler = Callable[[Session, dict[str, Any], Optional[ProofUploader]], dict[str, Any]]

# stock marker the front-end and its sheet data use for uncounted items
LEGACY_UNLIMITED = "จำนวนมาก"


def _legacy_date(value: Any) -> Any:
    # front-end sends either "YYYY-MM-DD" or a full ISO timestamp
    if isinstance(value, str) and len(value) > 10:
        return value[:10]
    return value or None


def _stock_in(value: Any) -> Any:
    if isinstance(value, str) and value.strip() == LEGACY_UNLIMITED:
        return UNLIMITED_LABEL
    return value


def _stock_out(value: Any) -> Any:
    return LEGACY_UNLIMITED if value == UNLIMITED_LABEL else value


def _legacy_result(result: BatchResult) -> dict[str, Any]:
    if not result.ok:
        return {"error": result.error}
    payload: dict[str, Any] = {"success": True}
    if result.unmatched:
        payload["unmatched"] = result.unmatched
    if result.warnings:
        payload["warnings"] = result.warnings
    return payload

# ---------- handlers ----------
def _get_tools(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    tools = [
        {
            "toolId": i.item_id,
            "toolName": i.name,
            "totalQty": _stock_out(i.total_quantity),
            "availableQty": _stock_out(i.available_quantity),
            "unit": i.unit or "",
            "location": i.location or "",
            "imageUrl": i.image_ref or "",
            "status": i.status,
        }
        for i in crud.list_items(db)
    ]
    return {"tools": tools}


def _check_user(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    user = crud.get_user(db, str(data.get("userId") or ""))
    if not user:
        return {"exists": False}
    return {
        "exists": True,
        "user": {
            "userId": user.user_id,
            "fullName": user.display_name,
            "department": user.department or "",
            "cohort": user.cohort or "",
            "role": user.role,
            "hasPin": user.has_pin,
        },
    }


def _register_user(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    user_id = str(data.get("userId") or "").strip()
    if not user_id:
        return {"error": "userId is required"}
    created = crud.upsert_user(
        db,
        user_id,
        display_name=data.get("fullName") or "",
        department=data.get("department"),
        cohort=data.get("cohort"),
    )
    return {"success": True} if created else {"success": True, "message": "Profile updated"}


def _borrow_lines(items: list[dict[str, Any]]) -> list[BorrowLine]:
    return [
        BorrowLine(
            item_id=str(it.get("toolId") or ""),
            quantity=it.get("quantity"),
            proof_ref=it.get("imageUrl"),
            proof_data=it.get("imageBase64"),
            proof_name=it.get("imageName"),
        )
        for it in items
    ]


def _return_lines(items: list[dict[str, Any]]) -> list[ReturnLine]:
    return [
        ReturnLine(
            item_id=str(it.get("toolId") or ""),
            condition=it.get("condition"),
            notes=it.get("notes"),
            proof_ref=it.get("imageUrl"),
            proof_data=it.get("imageBase64"),
            proof_name=it.get("imageName"),
        )
        for it in items
    ]


def _borrow_tool_batch(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    request = BorrowRequest(
        user_id=str(data.get("userId") or ""),
        reason=data.get("reason") or "",
        expected_return_at=_legacy_date(data.get("expectedReturnDate")),
        lines=_borrow_lines(data.get("items") or []),
    )
    return _legacy_result(batch.borrow_batch(db, request, uploader=uploader))


def _borrow_tool(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    result = batch.borrow_one(
        db,
        user_id=str(data.get("userId") or ""),
        item_id=str(data.get("toolId") or ""),
        quantity=data.get("quantity"),
        reason=data.get("reason") or "",
        expected_return_at=_legacy_date(data.get("expectedReturnDate")),
        proof_data=data.get("imageBase64"),
        uploader=uploader,
    )
    return _legacy_result(result)


def _return_tool_batch(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    request = ReturnRequest(
        user_id=str(data.get("userId") or ""),
        lines=_return_lines(data.get("items") or []),
    )
    return _legacy_result(batch.return_batch(db, request, uploader=uploader))


def _return_tool(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    result = batch.return_one(
        db,
        user_id=str(data.get("userId") or ""),
        item_id=str(data.get("toolId") or ""),
        condition=data.get("condition"),
        notes=data.get("notes"),
        proof_data=data.get("imageBase64"),
        uploader=uploader,
    )
    return _legacy_result(result)


def _get_user_active_borrows(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    borrows = crud.list_active_borrows(db, str(data.get("userId") or ""))
    return {"borrows": [{"toolId": b.item_id, "quantity": b.quantity, "status": b.status} for b in borrows]}


def _add_tool(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    body = ItemIn(
        item_id=str(data.get("toolId") or ""),
        name=data.get("toolName") or "",
        total_quantity=_stock_in(data.get("totalQty")),
        unit=data.get("unit"),
        location=data.get("location"),
        image_ref=data.get("imageUrl"),
    )
    inventory.add_item(db, body)
    return {"success": True}


def _update_tool(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    mapping = {
        "toolName": "name",
        "totalQty": "total_quantity",
        "availableQty": "available_quantity",
        "unit": "unit",
        "location": "location",
        "imageUrl": "image_ref",
    }
    fields = {field: data[key] for key, field in mapping.items() if key in data}
    for field in ("total_quantity", "available_quantity"):
        if field in fields:
            fields[field] = _stock_in(fields[field])
    body = ItemUpdate(**fields)
    inventory.edit_item(db, str(data.get("toolId") or ""), body)
    return {"success": True}


def _delete_tool(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    inventory.remove_item(db, str(data.get("toolId") or ""))
    return {"success": True}


def _get_transactions(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    transactions = [
        {
            "transactionId": t.transaction_id,
            "toolId": t.item_id,
            "userId": t.user_id,
            "action": t.action,
            "quantity": t.quantity,
            "reason": t.reason or "",
            "expectedReturnDate": t.expected_return_at.isoformat() if t.expected_return_at else "",
            "actualReturnDate": t.actual_return_at.isoformat() if t.actual_return_at else "",
            "status": t.status,
            "timestamp": t.created_at.isoformat(),
            "condition": t.condition or "",
            "notes": t.notes or "",
            "borrowImage": t.borrow_proof_ref or "",
            "returnImage": t.return_proof_ref or "",
        }
        for t in crud.list_transactions(db)
    ]
    return {"transactions": transactions}


def _get_users(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    users = [
        {
            "userId": u.user_id,
            "fullName": u.display_name,
            "department": u.department or "",
            "cohort": u.cohort or "",
            "registeredDate": u.registered_at.isoformat(),
            "role": u.role,
            "hasPin": u.has_pin,
        }
        for u in crud.list_users(db)
    ]
    return {"users": users}


def _update_user_pin(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    pin = str(data.get("pin") or "")
    if not (pin.isdigit() and 4 <= len(pin) <= 8):
        return {"success": False, "error": "PIN must be 4-8 digits"}
    if not crud.set_user_pin(db, str(data.get("userId") or ""), pin):
        return {"success": False, "error": "User not found"}
    return {"success": True}


def _get_admin_logs(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    logs = [
        {"time": log.logged_at.isoformat(), "action": log.action, "user": log.actor or ""}
        for log in crud.list_activity(db)
    ]
    return {"logs": logs}


def _log_admin_activity(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    action = str(data.get("logAction") or "").strip()
    if not action:
        return {"error": "logAction is required"}
    crud.log_activity(db, action, data.get("logUser"))
    return {"success": True}


def _check_overdue(db: Session, data: dict[str, Any], uploader) -> dict[str, Any]:
    return {"success": True, "updated": batch.sweep_overdue(db)}


ACTIONS: dict[str, Handler] = {
    "getTools": _get_tools,
    "checkUser": _check_user,
    "registerUser": _register_user,
    "borrowTool": _borrow_tool,
    "borrowToolBatch": _borrow_tool_batch,
    "returnTool": _return_tool,
    "returnToolBatch": _return_tool_batch,
    "getUserActiveBorrows": _get_user_active_borrows,
    "addTool": _add_tool,
    "updateTool": _update_tool,
    "deleteTool": _delete_tool,
    "getTransactions": _get_transactions,
    "getUsers": _get_users,
    "updateUserPin": _update_user_pin,
    "getAdminLogs": _get_admin_logs,
    "logAdminActivity": _log_admin_activity,
    "checkOverdue": _check_overdue,
}


@router.post("/exec")
def exec_action(
    data: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    uploader: Optional[ProofUploader] = Depends(get_uploader),
):
    handler = ACTIONS.get(str(data.get("action") or ""))
    if handler is None:
        return {"error": "Invalid action"}
    try:
        return handler(db, data, uploader)
    except LedgerError as e:
        return {"error": e.message}
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(p) for p in err.get("loc", ()))
        return {"error": f"Invalid request: {field}: {err.get('msg')}"}
