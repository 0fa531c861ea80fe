from fastapi import Request
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    pass


def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    # pysqlite defers BEGIN and breaks SAVEPOINT; take over transaction control.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(connection):
        connection.exec_driver_sql("BEGIN")


def create_db_engine(database_url: str, *, echo: bool = False) -> Engine:
    is_sqlite = database_url.startswith("sqlite")
    is_memory = is_sqlite and (":memory:" in database_url or database_url.rstrip("/") == "sqlite:")

    kwargs: dict = {"echo": echo}
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
        if is_memory:
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
        kwargs["pool_recycle"] = 1800

    engine = create_engine(database_url, **kwargs)
    if is_sqlite:
        _install_sqlite_transaction_hooks(engine)
    return engine


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
