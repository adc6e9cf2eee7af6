import logging
from typing import Generator

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

from .config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Engine for *database_url*; SQLite connections are shared across threads."""
    if database_url.startswith("sqlite"):
        # TestClient y BackgroundTasks usan hilos distintos
        return create_engine(database_url, echo=echo, connect_args={"check_same_thread": False})
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


engine = build_engine(settings.database_url, echo=settings.debug)


def init_db() -> None:
    from . import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    logger.info("Esquema verificado (%d tablas)", len(SQLModel.metadata.tables))


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
