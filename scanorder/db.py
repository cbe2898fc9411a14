from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from pathlib import Path

from .config import settings

DB_URL = settings.db_url
if DB_URL.startswith("sqlite:///./"):
    Path(DB_URL.replace("sqlite:///./", "")).parent.mkdir(parents=True, exist_ok=True)

# SQLite needs check_same_thread off for the threadpool
engine = create_engine(DB_URL, connect_args={"check_same_thread": False} if DB_URL.startswith("sqlite") else {})
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def init_db(bind=None):
    from . import models  # noqa: F401 register tables
    Base.metadata.create_all(bind=bind or engine)
