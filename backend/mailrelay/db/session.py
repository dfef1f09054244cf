"""Database session management"""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from mailrelay.models import Base
from mailrelay.core.config import settings


def enable_sqlite_foreign_keys(sqlite_engine) -> None:
    """SQLite ignores ON DELETE rules unless foreign keys are switched on per connection"""
    @event.listens_for(sqlite_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(database_url: str = None):
    """Create an engine with a bounded connection pool.

    Pool limits only apply to server databases; SQLite (used by tests and
    local experiments) keeps SQLAlchemy's defaults.
    """
    database_url = database_url or settings.DATABASE_URL
    if database_url.startswith("sqlite"):
        sqlite_engine = create_engine(database_url, connect_args={"check_same_thread": False})
        enable_sqlite_foreign_keys(sqlite_engine)
        return sqlite_engine

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_IDLE_TIMEOUT,
        connect_args={"connect_timeout": settings.DB_CONNECT_TIMEOUT}
    )


# Create engine
engine = build_engine()

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Dependency for FastAPI endpoints"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Initialize database (create all tables)"""
    Base.metadata.create_all(bind=engine)


def close_db():
    """Release every pooled connection (called on shutdown)"""
    engine.dispose()
