"""
Jewelry Back-Office - Database Configuration
=============================================
Engine, SessionLocal, Base, and get_db dependency.
All models across all modules inherit from this Base.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from config.settings import DATABASE_URL


def make_engine(url: str):
    """Build an engine for PostgreSQL (pooled) or SQLite (development and tests)."""
    if not url.startswith("sqlite"):
        return create_engine(
            url,
            pool_size=20,
            max_overflow=40,
            pool_timeout=30,
            pool_recycle=1800,  # Refresh connections every 30 minutes
        )

    sqlite_engine = create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(sqlite_engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(sqlite_engine, "begin")
    def _sqlite_begin(conn):
        # Writers serialize at BEGIN instead of failing on lock upgrade
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return sqlite_engine


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def is_postgres(db) -> bool:
    """True when the session is bound to a PostgreSQL engine."""
    return db.get_bind().dialect.name == "postgresql"


def get_db():
    """FastAPI dependency: yields a database session, auto-closes after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
