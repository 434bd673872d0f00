import os
import tempfile

import pytest
from fastapi.testclient import TestClient

# ---- test DB path (db.py reads it at import time) ----
_TMP_DIR = tempfile.mkdtemp(prefix="toolcrib_test_")
os.environ["APP_DB_PATH"] = os.path.join(_TMP_DIR, "test_toolcrib.db")


@pytest.fixture(scope="session")
def app_module():
    import main

    return main


@pytest.fixture()
def client(app_module):
    def _get_db_override():
        db = app_module.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app_module.app.dependency_overrides[app_module.get_db] = _get_db_override
    with TestClient(app_module.app) as c:
        yield c
    app_module.app.dependency_overrides.clear()
    app_module.app.state.proof_uploader = None


@pytest.fixture()
def db_session(app_module):
    db = app_module.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def session_factory(app_module):
    return app_module.SessionLocal


@pytest.fixture(autouse=True)
def clean_db(app_module, db_session):
    from sqlalchemy import delete
    from orm import ActivityLogORM, ItemORM, TransactionORM, UserORM

    db_session.execute(delete(TransactionORM))
    db_session.execute(delete(ItemORM))
    db_session.execute(delete(UserORM))
    db_session.execute(delete(ActivityLogORM))
    db_session.commit()
    yield


@pytest.fixture()
def make_item(db_session):
    import crud
    from quantity import parse_quantity

    def _make(item_id, total, name=None, **kwargs):
        return crud.create_item_row(
            db_session,
            item_id=item_id,
            name=name or f"Tool {item_id}",
            total=parse_quantity(total),
            **kwargs,
        )

    return _make
