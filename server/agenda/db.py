from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from agenda.config import settings


class Base(DeclarativeBase):
    pass


def make_engine(database_url: str) -> Engine:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)


engine: Engine | None = make_engine(settings.database_url) if settings.database_url else None
SessionLocal: sessionmaker[Session] | None = (
    sessionmaker(bind=engine, autoflush=False, expire_on_commit=False) if engine is not None else None
)
