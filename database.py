import logging
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL.strip()

if not DATABASE_URL:
    store_path = Path(__file__).resolve().parent / "store.db"
    DATABASE_URL = f"sqlite:///{store_path.as_posix()}"
    logger.warning(f"DATABASE_URL is not set, using SQLite at {store_path}")

if DATABASE_URL.startswith("sqlite"):
    # Pooled connections are reused across request and scheduler threads
    engine_kwargs = {"connect_args": {"check_same_thread": False}}
else:
    engine_kwargs = {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
    }

engine = create_engine(DATABASE_URL, pool_pre_ping=True, **engine_kwargs)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()
