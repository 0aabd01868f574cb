# backend/stockdb/database.py
"""
Engines, sessions and the unit-of-work helper.

Ledger, audit and custody writes go through the write engine. Listing
endpoints use the read engine, which only differs once
DATABASE_READ_URL names a replica. Every service call that mutates
state wraps itself in `unit_of_work` so it commits or rolls back as one.
"""

import os
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

# DATABASE_WRITE_URL wins over DATABASE_URL; reads follow writes unless
# DATABASE_READ_URL is set. Any SQLAlchemy URL works, e.g.
# postgresql+psycopg2://stockdb_app:<password>@db:5432/stockdb
WRITE_DB_URL = os.getenv("DATABASE_WRITE_URL") or os.getenv("DATABASE_URL")
READ_DB_URL = os.getenv("DATABASE_READ_URL") or WRITE_DB_URL

if not WRITE_DB_URL:
    raise RuntimeError(
        "Set DATABASE_WRITE_URL or DATABASE_URL before importing stockdb, "
        "e.g. postgresql+psycopg2://stockdb_app:<password>@db:5432/stockdb"
    )

# Pool sizing for API workers; ignored for SQLite URLs.
POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "20"))
POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE_SEC", "1800"))


def _engine_kwargs(url: str) -> dict:
    kwargs = {"pool_pre_ping": True, "future": True}
    # SQLite uses its own pool classes which reject sizing options.
    if url.startswith("sqlite"):
        return kwargs
    kwargs.update(
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
    )
    return kwargs


# -------------------------------------------------------------------
# ENGINES
# -------------------------------------------------------------------

write_engine = create_engine(WRITE_DB_URL, **_engine_kwargs(WRITE_DB_URL))
read_engine = create_engine(READ_DB_URL, **_engine_kwargs(READ_DB_URL))

# -------------------------------------------------------------------
# SESSIONS
# -------------------------------------------------------------------

WriteSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=write_engine,
    future=True,
)

ReadSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=read_engine,
    future=True,
)

# Declarative base for all models
Base = declarative_base()


# -------------------------------------------------------------------
# UNIT OF WORK
# -------------------------------------------------------------------

_UOW_DEPTH_KEY = "stockdb_uow_depth"


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Run a block of writes as one atomic unit.

    The outermost block commits on success and rolls back on any
    exception before re-raising it. Blocks opened while another is
    active join the outer one, so a workflow step that calls into the
    ledger still commits (or fails) as a whole.
    """
    depth = db.info.get(_UOW_DEPTH_KEY, 0)
    db.info[_UOW_DEPTH_KEY] = depth + 1
    try:
        yield db
        if depth == 0:
            db.commit()
    except Exception:
        if depth == 0:
            db.rollback()
        raise
    finally:
        db.info[_UOW_DEPTH_KEY] = depth


# -------------------------------------------------------------------
# DEPENDENCIES (for FastAPI)
# -------------------------------------------------------------------

def get_write_db():
    """
    Dependency for endpoints that mutate stock, audits or custody.
    """
    db = WriteSessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_read_db():
    """
    Dependency for read-only endpoints.

    Points at the same server until DATABASE_READ_URL names a replica.
    """
    db = ReadSessionLocal()
    try:
        yield db
    finally:
        db.close()


engine = write_engine
SessionLocal = WriteSessionLocal
get_db = get_write_db
