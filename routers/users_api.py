import hmac

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import crud
from dependencies import get_db
from errors import UserNotFound
from models import ActiveBorrow, PinCheck, PinIn, User, UserIn, UserLookup

router = APIRouter()


@router.get("/users", response_model=list[User])
def list_users_api(db: Session = Depends(get_db)):
    return crud.list_users(db)


@router.get("/users/{user_id}", response_model=UserLookup)
def find_user_api(
    user_id: str,
    db: Session = Depends(get_db),
):
    user = crud.get_user(db, user_id)
    return UserLookup(exists=user is not None, user=user)


@router.put("/users/{user_id}", response_model=User)
def upsert_user_api(
    user_id: str,
    body: UserIn,
    db: Session = Depends(get_db),
):
    crud.upsert_user(
        db,
        user_id,
        display_name=body.display_name,
        department=body.department,
        cohort=body.cohort,
    )
    return crud.get_user(db, user_id)


@router.put("/users/{user_id}/pin", status_code=204)
def set_user_pin_api(
    user_id: str,
    body: PinIn,
    db: Session = Depends(get_db),
):
    if not crud.set_user_pin(db, user_id, body.pin):
        raise UserNotFound(user_id)
    return None


@router.post("/users/{user_id}/pin/verify", response_model=PinCheck)
def verify_user_pin_api(
    user_id: str,
    body: PinIn,
    db: Session = Depends(get_db),
):
    row = crud.get_user_row(db, user_id)
    if not row:
        raise UserNotFound(user_id)
    ok = bool(row.pin) and hmac.compare_digest(row.pin, body.pin)
    return PinCheck(ok=ok)


@router.get("/users/{user_id}/borrows", response_model=list[ActiveBorrow])
def list_active_borrows_api(
    user_id: str,
    db: Session = Depends(get_db),
):
    return crud.list_active_borrows(db, user_id)
