"""
nossence.database.engine — Store Connection, Transactions & Async Helper
=========================================================================

The graph store adapter.  It owns no business logic: only engine
creation, schema creation (uniqueness constraints included), the
transaction boundary, and the bridge from asyncio into synchronous
SQLAlchemy.

The bot runs on an ``asyncio`` event loop while SQLAlchemy + psycopg2 is
**synchronous**.  Store work is therefore shipped to a thread pool:

    1. A relay event arrives (async world).
    2. The loop calls ``await run_db(writer.apply, event)``.
    3. ``run_db`` runs the function on a background thread via
       ``asyncio.to_thread()``.
    4. The event loop stays free for the other tasks.

Usage::

    from nossence.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    outcome = await run_db(writer.apply, event)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from nossence.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine() -> Engine:
    """Build a SQLAlchemy :class:`Engine` from the ``DATABASE_URL`` env var.

    * ``pool_size=5`` / ``max_overflow=10`` — ingestion, mention commands
      and the batch worker each hold at most a couple of connections.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    Raises
    ------
    RuntimeError
        If ``DATABASE_URL`` is not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all graph tables and their uniqueness constraints.

    Safe to call on every startup — ``CREATE TABLE IF NOT EXISTS`` under
    the hood.  In production the schema is managed by Alembic
    (``alembic upgrade head``); ``create_all`` covers dev/test databases.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Transaction boundary
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that commits on success and rolls back on
    exception.

    Everything executed inside one ``with`` block is one transaction::

        with get_session(engine) as session:
            session.execute(...)
            session.execute(...)
            # commit happens automatically on block exit
    """
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** store function on a background thread.

    Every store call made from the bot loops goes through this wrapper::

        result = await run_db(my_sync_db_function, arg1, arg2)

    Parameters
    ----------
    func:
        Any sync callable (typically a service method that opens a session).
    *args, **kwargs:
        Forwarded to *func*.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
