# src/plugin_bundle/db/schema_tool.py
"""
DDL generation for plugin entity metadata.

Statements are compiled from SQLAlchemy schema constructs against the target
dialect and returned as plain strings, ready for ``execute_schema_statements``.
Nothing here touches a database.
"""
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import Index, MetaData, Table
from sqlalchemy.engine import Dialect
from sqlalchemy.schema import (
    CreateColumn,
    CreateIndex,
    CreateTable,
    DropIndex,
    DropTable,
)


class SchemaMigrationWarning(UserWarning):
    """Emitted whenever a computed schema diff is about to be applied."""


class DestructiveMigrationError(ValueError):
    """A schema diff would drop tables or columns and that was not allowed."""

    def __init__(self, statements: List[str]):
        self.statements = statements
        listing = "\n  ".join(statements)
        super().__init__(
            f"Schema diff contains {len(statements)} destructive statement(s); "
            f"review them and pass allow_destructive=True to apply:\n  {listing}"
        )


@dataclass(frozen=True)
class SchemaChange:
    sql: str
    destructive: bool = False


def _is_empty(metadata: Optional[MetaData]) -> bool:
    return metadata is None or not metadata.tables


def _index_key(index: Index) -> str:
    return str(index.name)


class SchemaTool:
    """
    Computes create, drop and migrate statement sequences for a MetaData.

    Results are deterministic for a given input: tables follow
    ``MetaData.sorted_tables`` (dependency order) and indexes are sorted by
    name.
    """

    def __init__(self, dialect: Dialect):
        self.dialect = dialect
        self._preparer = dialect.identifier_preparer

    def _compile(self, construct) -> str:
        return str(construct.compile(dialect=self.dialect)).strip()

    def _table_sql(self, table: Table) -> List[str]:
        statements = [self._compile(CreateTable(table))]
        for index in sorted(table.indexes, key=_index_key):
            statements.append(self._compile(CreateIndex(index)))
        return statements

    def get_create_schema_sql(self, metadata: Optional[MetaData]) -> List[str]:
        if _is_empty(metadata):
            return []

        statements = []
        for table in metadata.sorted_tables:
            statements.extend(self._table_sql(table))
        return statements

    def get_drop_schema_sql(self, metadata: Optional[MetaData]) -> List[str]:
        """Indexes go with their tables; dependents are dropped first."""
        if _is_empty(metadata):
            return []

        return [self._compile(DropTable(table)) for table in reversed(metadata.sorted_tables)]

    def compare(self, metadata: Optional[MetaData], installed: Optional[MetaData]) -> List[SchemaChange]:
        """
        Changes needed to move ``installed`` to the schema ``metadata`` declares.

        Every table present in ``installed`` but not declared is dropped, so
        scope the snapshot to the plugin's own tables. Column type changes
        are not detected.
        """
        declared = metadata.tables if metadata is not None else {}
        current = installed.tables if installed is not None else {}
        changes: List[SchemaChange] = []

        if metadata is not None:
            for table in metadata.sorted_tables:
                existing = current.get(table.key)
                if existing is None:
                    changes.extend(SchemaChange(sql) for sql in self._table_sql(table))
                else:
                    changes.extend(self._compare_table(table, existing))

        if installed is not None:
            for table in reversed(installed.sorted_tables):
                if table.key not in declared:
                    changes.append(SchemaChange(self._compile(DropTable(table)), destructive=True))

        return changes

    def _compare_table(self, table: Table, existing: Table) -> List[SchemaChange]:
        changes: List[SchemaChange] = []
        table_name = self._preparer.format_table(table)

        declared_indexes = {_index_key(i): i for i in table.indexes}
        existing_indexes = {_index_key(i): i for i in existing.indexes}

        # Indexes first: SQLite refuses to drop an indexed column.
        for name in sorted(set(existing_indexes) - set(declared_indexes)):
            changes.append(SchemaChange(self._compile(DropIndex(existing_indexes[name]))))

        add_keyword = "ADD" if self.dialect.name == "mssql" else "ADD COLUMN"
        existing_columns = {c.name for c in existing.columns}
        for column in table.columns:
            if column.name not in existing_columns:
                colspec = self._compile(CreateColumn(column))
                changes.append(SchemaChange(f"ALTER TABLE {table_name} {add_keyword} {colspec}"))

        declared_columns = {c.name for c in table.columns}
        for column in existing.columns:
            if column.name not in declared_columns:
                changes.append(
                    SchemaChange(
                        f"ALTER TABLE {table_name} DROP COLUMN {self._preparer.quote(column.name)}",
                        destructive=True,
                    )
                )

        for name in sorted(set(declared_indexes) - set(existing_indexes)):
            changes.append(SchemaChange(self._compile(CreateIndex(declared_indexes[name]))))

        return changes

    def get_migrate_sql(self, metadata: Optional[MetaData], installed: Optional[MetaData]) -> List[str]:
        return [change.sql for change in self.compare(metadata, installed)]
