from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import crud
from dependencies import get_db
from models import ActivityLog, ActivityLogIn

router = APIRouter()


@router.get("/admin/logs", response_model=list[ActivityLog])
def list_admin_logs_api(db: Session = Depends(get_db)):
    return crud.list_activity(db)


@router.post("/admin/logs", response_model=ActivityLog, status_code=201)
def log_admin_activity_api(
    body: ActivityLogIn,
    db: Session = Depends(get_db),
):
    return crud.log_activity(db, body.action, body.actor)
