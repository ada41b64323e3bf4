from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from deaddrop.core.config import settings


def make_engine(url: str):
    # SQLite specific configuration for multi-threading
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
