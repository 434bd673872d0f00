from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from config import settings


def sqlite_file(raw: str) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = (settings.ROOT_DIR / path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


DB_PATH = sqlite_file(settings.DB_PATH)

# one SQLite file shared by request threads; the ledger gate serialises stock writes
engine = create_engine(
    f"sqlite:///{DB_PATH.as_posix()}",
    connect_args={"check_same_thread": False, "timeout": settings.DB_BUSY_TIMEOUT},
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


class Base(DeclarativeBase):
    pass
