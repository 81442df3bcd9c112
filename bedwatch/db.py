from __future__ import annotations
from contextlib import contextmanager
from typing import Callable, ContextManager, Generator
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from bedwatch.config import settings

SessionFactory = Callable[[], ContextManager[Session]]

_engine: Engine | None = None
_SessionLocal = None

def engine() -> Engine:
    global _engine, _SessionLocal
    if _engine is None:
        url = settings.database_url_app
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(url, pool_pre_ping=True, future=True, connect_args=connect_args)
        _SessionLocal = sessionmaker(bind=_engine, autocommit=False, autoflush=False, future=True)
    return _engine

def session_local():
    if _SessionLocal is None:
        engine()
    return _SessionLocal

def dispose_engine() -> None:
    """Drop the cached engine so the next call rebuilds it from settings."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None

@contextmanager
def db_session() -> Generator[Session, None, None]:
    db = session_local()()
    try:
        yield db
        db.commit()
    except BaseException:
        db.rollback()
        raise
    finally:
        db.close()
