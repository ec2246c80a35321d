from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from service_scheduler.core.config import settings


class Base(DeclarativeBase):
    pass


def make_engine(url: str):
    # SQLite (tests / local runs) hands connections across threads in the API server.
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


engine = make_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
