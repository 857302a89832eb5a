import logging
from typing import Iterable, Optional
import sqlalchemy as sa
from sqlalchemy import MetaData, inspect
from sqlalchemy.schema import CreateSchema

from plugin_bundle.db.base_session import Base, host_schema
import plugin_bundle.db.models  # noqa: F401

logger = logging.getLogger(__name__)


def verify_database_state(eng: sa.Engine):
    """
    Check that all host tables and columns exist in the database.
    """
    inspector = inspect(eng)

    schema = host_schema(eng.dialect.name)
    db_tables = set(inspector.get_table_names(schema=schema))

    missing_tables = []
    missing_columns = []

    for table in Base.metadata.tables.values():
        table_name = table.name

        if table_name not in db_tables:
            missing_tables.append(table_name)
            continue

        db_cols = {c["name"] for c in inspector.get_columns(table_name, schema=schema)}

        for column in table.columns:
            if column.name not in db_cols:
                missing_columns.append(f"{table_name}.{column.name}")

    if missing_tables or missing_columns:
        logger.critical("CRITICAL: Database schema drift detected!")
        if missing_tables:
            logger.critical(f"Missing Tables: {missing_tables}")
        if missing_columns:
            logger.critical(f"Missing Columns: {missing_columns}")

        raise RuntimeError(
            "Database integrity violation. Schema does not match application version."
        )
    else:
        logger.info("Database schema validated successfully.")


def initialize_database(eng: sa.Engine, reset_tables: bool = False):
    """
    Ensures the host schema (for MSSQL) and plugin registry tables exist.
    Plugin-owned tables are never touched here.
    """
    schema = host_schema(eng.dialect.name)
    if schema:
        logger.info(f"Ensuring MSSQL schema '{schema}' exists...")
        with eng.connect() as conn:
            if not conn.dialect.has_schema(conn, schema):
                conn.execute(CreateSchema(schema))
                logger.info(f"Schema '{schema}' created.")
            conn.commit()

    if reset_tables:
        logger.info("Resetting and creating plugin registry tables...")
        Base.metadata.drop_all(eng)
        Base.metadata.create_all(eng)
    else:
        logger.info("Ensuring plugin registry tables exist (create if not present)...")
        Base.metadata.create_all(eng)

    verify_database_state(eng)


def snapshot_schema(
    eng: sa.Engine,
    table_names: Optional[Iterable[str]] = None,
    schema: Optional[str] = None,
) -> MetaData:
    """
    Reflect the live schema into a MetaData.

    With ``table_names`` only those tables are reflected (names that do not
    exist yet are ignored). Foreign keys are not followed, so tables outside
    the requested set never leak into the snapshot.
    """
    snapshot = MetaData()

    if table_names is None:
        snapshot.reflect(bind=eng, schema=schema, resolve_fks=False)
        return snapshot

    existing = set(inspect(eng).get_table_names(schema=schema))
    wanted = [name for name in table_names if name in existing]
    if wanted:
        snapshot.reflect(bind=eng, schema=schema, only=wanted, resolve_fks=False)

    return snapshot
