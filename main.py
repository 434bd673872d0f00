from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import logging
import time

from db import Base, SessionLocal, engine  # noqa: F401
from dependencies import get_db  # noqa: F401
from errors import LedgerError, LockTimeout
from routers import ALL_ROUTERS

import orm  # noqa: F401  (registers tables on Base)

app = FastAPI(title="Tool Crib Ledger API")
app.state.proof_uploader = None

Base.metadata.create_all(bind=engine)

# -----------------------
# Logging
# -----------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("app")

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    elapsed_ms = int((time.time() - start) * 1000)
    logger.info(
        "method=%s path=%s status=%s elapsed_ms=%s",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response

@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    headers = {"Retry-After": "1"} if isinstance(exc, LockTimeout) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.to_detail()},
        headers=headers,
    )

for router in ALL_ROUTERS:
    app.include_router(router)

@app.get("/")
def root():
    return {"message": "Tool Crib Ledger API", "docs": "/docs"}

