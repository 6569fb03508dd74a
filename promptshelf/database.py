from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from promptshelf.config import settings

Base = declarative_base()


def _enable_sqlite_write_serialization(engine: Engine) -> None:
    """Open every SQLite transaction with BEGIN IMMEDIATE.

    pysqlite defers BEGIN until the first DML statement, which lets two
    writers both read and then deadlock on the upgrade to a write lock.
    Taking the write lock up front turns SQLite into a single-writer store:
    concurrent transactions queue on the busy timeout instead of failing.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(database_url: str) -> Engine:
    """Create an engine configured for the backend behind database_url."""
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": settings.sqlite_busy_timeout},
            echo=settings.debug,
        )
        _enable_sqlite_write_serialization(engine)
        return engine

    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        echo=settings.debug,
    )


engine = create_db_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create missing tables and indexes."""
    import promptshelf.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
