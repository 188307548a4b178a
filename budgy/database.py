import os

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./budgy.db")

# Handle Render's postgres:// -> postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# Seconds to wait for a connection or a locked database before failing
STORE_CONNECT_TIMEOUT = int(os.getenv("STORE_CONNECT_TIMEOUT", "10"))


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        # Store calls are dispatched to worker threads
        return {"check_same_thread": False, "timeout": STORE_CONNECT_TIMEOUT}
    if url.startswith("postgresql"):
        return {"connect_timeout": STORE_CONNECT_TIMEOUT}
    return {}


engine = create_engine(
    DATABASE_URL,
    connect_args=_connect_args(DATABASE_URL),
    pool_pre_ping=True,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_session_factory() -> sessionmaker:
    """For work that outlives the request session (background tasks)."""
    return SessionLocal


def get_db() -> Session:  # type: ignore[misc]
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
