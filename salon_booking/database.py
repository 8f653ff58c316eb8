from collections.abc import Iterator
from pathlib import Path

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base


def create_db_engine(database_url: str) -> Engine:
    """
    Build the SQLAlchemy engine for a database URL.

    SQLite gets check_same_thread=False (FastAPI runs sync routes in a
    thread pool) and foreign keys switched on for every connection.
    In-memory SQLite uses a StaticPool so every session sees one database.
    SERIALIZABLE transactions open with BEGIN IMMEDIATE, so two processes
    cannot both read a free slot and then write it.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    database = make_url(database_url).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)

    kwargs = {"connect_args": {"check_same_thread": False, "timeout": 30}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)

    @event.listens_for(engine, "connect")
    def enable_sqlite_fk(dbapi_connection, _):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def begin_sqlite_write(conn):
        # pysqlite defers BEGIN to the first write; booking transactions
        # take the database write lock before their first read instead
        if conn.get_execution_options().get("isolation_level") != "SERIALIZABLE":
            return
        # StaticPool shares one connection between sessions
        if conn.connection.dbapi_connection.in_transaction:
            return
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine)


# FastAPI dependency: one session per request, taken from app.state
def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
