"""Engine construction and the per-request session dependency."""

from typing import Any, Iterator

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from assessments.config import settings


def build_engine(url: str, echo: bool = False, **kwargs: Any) -> Engine:
    """Create an engine; SQLite connections may be used from FastAPI's threadpool."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, echo=echo, **kwargs)


engine = build_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)


def create_db_and_tables(bind: Engine = None) -> None:
    # Registers every table on the metadata
    from assessments import models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)


def get_session() -> Iterator[Session]:
    with Session(engine) as session:
        yield session
