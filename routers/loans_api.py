from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

import batch
import crud
from dependencies import get_db, get_uploader
from errors import status_for
from filter_helpers import blank_to_none, normalize_limit, normalize_offset, normalize_status
from models import BatchResult, BorrowRequest, ReturnRequest, SweepResult, Transaction
from proofs import ProofUploader

router = APIRouter()


def _batch_response(result: BatchResult) -> JSONResponse:
    status_code = 200 if result.ok else status_for(result.code)
    headers = {"Retry-After": "1"} if result.code == "lock_timeout" else None
    return JSONResponse(
        status_code=status_code,
        content=result.model_dump(mode="json", by_alias=True),
        headers=headers,
    )


@router.post("/borrow", response_model=BatchResult)
def borrow_batch_api(
    body: BorrowRequest,
    db: Session = Depends(get_db),
    uploader: Optional[ProofUploader] = Depends(get_uploader),
):
    return _batch_response(batch.borrow_batch(db, body, uploader=uploader))


@router.post("/return", response_model=BatchResult)
def return_batch_api(
    body: ReturnRequest,
    db: Session = Depends(get_db),
    uploader: Optional[ProofUploader] = Depends(get_uploader),
):
    return _batch_response(batch.return_batch(db, body, uploader=uploader))


@router.get("/transactions", response_model=list[Transaction])
def list_transactions_api(
    status: Optional[str] = None,
    user_id: Optional[str] = None,
    item_id: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return crud.list_transactions(
        db,
        status=normalize_status(status),
        user_id=blank_to_none(user_id),
        item_id=blank_to_none(item_id),
        limit=normalize_limit(limit, max_value=5000) if limit is not None else None,
        offset=normalize_offset(offset),
    )


@router.post("/transactions/sweep-overdue", response_model=SweepResult)
def sweep_overdue_api(db: Session = Depends(get_db)):
    return SweepResult(updated=batch.sweep_overdue(db))
