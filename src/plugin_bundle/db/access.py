import logging
from typing import Sequence

from sqlalchemy import URL, Engine, create_engine, event

from plugin_bundle.db.base_session import host_schema_translate_map

logger = logging.getLogger(__name__)


def get_engine(db_settings, fast_executemany: bool = True, echo: bool = False, pool_size=10, pool_pre_ping=True):
    """
    Creates and returns a SQLAlchemy engine based on the loaded pydantic settings.
    Supports both Windows Auth (Trusted) and SQL Auth (User/Pass) for MSSQL.
    SQLite engines are switched to transactional DDL. Host tables declared
    under the MSSQL schema are mapped to the default schema elsewhere.
    """
    engine_args = {"echo": echo}
    engine_args["pool_size"] = pool_size
    engine_args["pool_pre_ping"] = pool_pre_ping

    url_object = None

    match db_settings.type:
        case "mssql":
            query_params = {"driver": db_settings.driver}

            is_trusted = str(getattr(db_settings, "trusted_connection", "no")).lower() == "yes"

            if is_trusted:
                query_params["trusted_connection"] = "yes"
                db_user = None
                db_pass = None
            else:
                db_user = db_settings.username
                db_pass = db_settings.password

            url_object = URL.create(
                drivername="mssql+pyodbc",
                username=db_user,
                password=db_pass,
                host=db_settings.server_name,
                database=db_settings.db_name,
                query=query_params,
            )

            engine_args["fast_executemany"] = fast_executemany

        case "sqlite3":
            if db_settings.in_memory:
                url_object = "sqlite:///:memory:"
            else:
                url_object = f"sqlite:///{db_settings.db_location}"

        case _:
            raise ValueError(
                f"Unsupported DB type: {db_settings.type}"
            )

    if url_object is None:
        raise ValueError("Database URL object was not created. Check configuration.")

    engine = enable_transactional_ddl(create_engine(url_object, **engine_args))

    translate_map = host_schema_translate_map(engine.dialect.name)
    if translate_map:
        engine = engine.execution_options(schema_translate_map=translate_map)
    return engine


def enable_transactional_ddl(engine: Engine) -> Engine:
    """
    Make CREATE/ALTER/DROP on SQLite part of the surrounding transaction.

    pysqlite commits implicitly before DDL unless the driver's own
    transaction handling is switched off and BEGIN is emitted by hand.
    Must be called before the engine hands out its first connection.
    No-op for other dialects.
    """
    if engine.dialect.name != "sqlite":
        return engine

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def execute_schema_statements(engine: Engine, statements: Sequence[str]) -> int:
    """
    Apply DDL statements in order inside one transaction.

    Commits only if every statement succeeds. On any failure the transaction
    is rolled back and the original exception is re-raised, so the schema is
    left exactly as it was. An empty sequence opens no connection at all.

    Returns the number of statements executed.
    """
    if not statements:
        logger.debug("No schema statements to apply.")
        return 0

    with engine.connect() as conn:
        trans = conn.begin()
        try:
            for q in statements:
                logger.debug(f"Executing schema statement: {q}")
                conn.exec_driver_sql(q)

            trans.commit()
        except Exception:
            logger.warning(f"Schema statement failed, rolling back {len(statements)} statement(s)")
            trans.rollback()

            raise

    logger.info(f"Applied {len(statements)} schema statement(s).")
    return len(statements)
