import logging

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models.entities import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_fk(dbapi_connection, _):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Engine + session factory with an explicit connect/close lifecycle."""

    def __init__(self, url: str):
        self.url = url
        self.engine: Engine | None = None
        self.SessionLocal: sessionmaker | None = None

    def connect(self) -> None:
        is_sqlite = self.url.startswith("sqlite")
        # sync FastAPI handlers run in a thread pool
        connect_args = {"check_same_thread": False} if is_sqlite else {}
        self.engine = create_engine(self.url, connect_args=connect_args)
        if is_sqlite:
            event.listen(self.engine, "connect", _enable_sqlite_fk)

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
        )
        logger.info("Database engine created for %s", self.engine.url.render_as_string(hide_password=True))

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine, checkfirst=True)

    def session(self) -> Session:
        if self.SessionLocal is None:
            raise RuntimeError("Database is not connected")
        return self.SessionLocal()

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
            self.SessionLocal = None


# FastAPI dependency
def get_db(request: Request):
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
