from typing import Dict, Optional

from sqlalchemy.orm import declarative_base, sessionmaker
from plugin_bundle.config import settings

# MSSQL keeps the host tables in their own schema.
if settings.database.type == "mssql":
    DEFAULT_SCHEMA = "pb"

    class PluginCoreBase:
        __table_args__ = {"schema": DEFAULT_SCHEMA}

    Base = declarative_base(cls=PluginCoreBase)
else:
    DEFAULT_SCHEMA = None
    Base = declarative_base()


def host_schema(dialect_name: str) -> Optional[str]:
    """Schema holding the host tables on this dialect. Only MSSQL uses one."""
    return DEFAULT_SCHEMA if dialect_name == "mssql" else None


def host_schema_translate_map(dialect_name: str) -> Optional[Dict[str, None]]:
    """
    Engine ``schema_translate_map`` for running MSSQL-configured host models
    on another dialect, e.g. ``plugin-bundle --sqlite`` on an MSSQL host.
    """
    if DEFAULT_SCHEMA and host_schema(dialect_name) is None:
        return {DEFAULT_SCHEMA: None}
    return None


def schema_fkey(key: str) -> str:
    """
    Returns a schema-qualified foreign key string if a schema is defined,
    otherwise returns the simple key.

    - MSSQL: "pb.table.column"
    - SQLite: "table.column"
    """
    if DEFAULT_SCHEMA:
        return f"{DEFAULT_SCHEMA}.{key}"
    return key


# Objects stay readable after commit so schema work can run between
# short-lived registry transactions.
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)


def make_table_args(*constraints):
    """
    Helper to build __table_args__ with optional schema.

    Usage:
        __table_args__ = make_table_args(Index(...), UniqueConstraint(...))
    """
    if DEFAULT_SCHEMA:
        return (*constraints, {"schema": DEFAULT_SCHEMA})
    if constraints:
        return constraints
    return {}
