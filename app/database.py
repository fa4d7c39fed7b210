"""Engine, session factory and the request-scoped session dependency"""

import logging
import os
import time

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL

logger = logging.getLogger(__name__)

SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # Sessions are used from the threadpool and the worker threads
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 300}


engine = create_engine(DATABASE_URL, echo=False, **_engine_kwargs(DATABASE_URL))


@event.listens_for(engine, "before_cursor_execute")
def _start_timer(conn, _cursor, _statement, _parameters, _context, _executemany):
    conn.info.setdefault("query_start_time", []).append(time.time())


@event.listens_for(engine, "after_cursor_execute")
def _log_slow_query(conn, _cursor, statement, _parameters, _context, _executemany):
    elapsed = time.time() - conn.info["query_start_time"].pop(-1)
    if elapsed > SLOW_QUERY_THRESHOLD:
        logger.warning(f"🐌 Slow query ({elapsed:.2f}s): {statement[:200]}...")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
