from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from shiftwatch.core.config import settings


def create_db_engine(database_url: str) -> Engine:
    """
    Build an engine for PostgreSQL or SQLite.

    SQLite connections open every transaction with BEGIN IMMEDIATE so that
    concurrent recalculations queue on the write lock (bounded by the busy
    timeout) instead of failing on lock upgrade.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    engine = create_engine(
        database_url,
        connect_args={
            "check_same_thread": False,
            "timeout": settings.sqlite_busy_timeout,
        },
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = create_db_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """
    Session Provider: Provides a database session per request.
    Transaction management is handled explicitly in the Service Layer.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """Factory for the per-employee sessions used by parallel batch recalculation."""
    return SessionLocal


def init_db(bind: Engine = None):
    """
    Registers all domain models and initializes the database schema.
    This should be called during the application startup lifespan.
    """
    from shiftwatch import models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
