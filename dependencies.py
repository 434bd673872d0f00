from collections.abc import Generator
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from db import SessionLocal
from proofs import ProofUploader


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_uploader(request: Request) -> Optional[ProofUploader]:
    return getattr(request.app.state, "proof_uploader", None)
