"""
Constraint Inspector - unique index discovery and table descriptors.

Works on any SQLAlchemy dialect through the runtime inspection API, so the
output is the same whether the table lives in PostgreSQL, MySQL or SQLite.
"""
import logging
from typing import Dict, List, Optional, Union

from sqlalchemy import MetaData, Table, inspect
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from langshadow.core.exceptions import UnknownTableError
from langshadow.schemas.multilang import (
    TRACKING_COLUMNS,
    TableSchema,
    UniqueIndexDescriptor,
)
from langshadow.utils.validation import split_table_name

logger = logging.getLogger(__name__)

Bind = Union[Engine, Connection]


class ConstraintInspector:
    """
    Reads unique indexes and column layout of participating tables.

    Descriptors of tracked tables are cached and re-checked against the
    live column list on every use; the schema provisioner also calls
    invalidate() after every change it makes, and the replicator refreshes
    a descriptor when an insert hits a unique index it did not know about.
    Untracked tables are never cached, so a table provisioned by another
    process is picked up on the next call.
    """

    def __init__(self, cache: bool = True):
        self.cache_enabled = cache
        self._cache: Dict[str, TableSchema] = {}

    def list_unique_columns(self, bind: Bind, table: str) -> List[UniqueIndexDescriptor]:
        """
        Get the unique indexes of a table, primary key excluded.

        Unique constraints and unique indexes are merged and de-duplicated by
        column set; multi-column indexes stay grouped. Expression indexes are
        ignored.

        Args:
            bind: Engine or connection
            table: Table name ('products' or 'schema.products')

        Returns:
            List of descriptors; empty when introspection fails
        """
        schema, name = split_table_name(table)
        try:
            inspector = inspect(bind)
            primary = inspector.get_pk_constraint(name, schema=schema) or {}
            pk_columns = set(primary.get("constrained_columns") or [])

            reported = []
            for constraint in inspector.get_unique_constraints(name, schema=schema):
                reported.append((constraint.get("name"), constraint.get("column_names") or []))
            for index in inspector.get_indexes(name, schema=schema):
                if index.get("unique"):
                    reported.append((index.get("name"), index.get("column_names") or []))
        except (SQLAlchemyError, NotImplementedError) as e:
            logger.warning(f"Could not inspect unique indexes of '{table}': {e}")
            return []

        descriptors = []
        seen = set()
        for index_name, columns in reported:
            if not columns or any(column is None for column in columns):
                continue
            key = frozenset(columns)
            if key == pk_columns or key in seen:
                continue
            seen.add(key)
            descriptors.append(UniqueIndexDescriptor(name=index_name, columns=tuple(columns)))

        return descriptors

    def describe(self, bind: Bind, table: str) -> TableSchema:
        """
        Build the descriptor of a table.

        A cached descriptor is only reused while the live column list still
        matches it; any other process may add or drop columns.

        Raises:
            UnknownTableError: table does not exist
        """
        if self.cache_enabled and table in self._cache:
            cached = self._cache[table]
            if self._columns_unchanged(bind, cached):
                return cached
            logger.info(f"Columns of '{table}' changed, refreshing descriptor")
            self.invalidate(table)

        schema, name = split_table_name(table)
        try:
            reflected = Table(name, MetaData(), autoload_with=bind, schema=schema)
        except NoSuchTableError:
            raise UnknownTableError(f"Table '{table}' does not exist")

        descriptor = TableSchema(
            name=name,
            schema=schema,
            table=reflected,
            primary_key=[column.name for column in reflected.primary_key.columns],
            columns=[column.name for column in reflected.columns],
            unique_indexes=self.list_unique_columns(bind, table),
        )

        if self.cache_enabled and descriptor.has_tracking_columns:
            self._cache[table] = descriptor

        return descriptor

    def has_tracking_columns(self, bind: Bind, table: str) -> bool:
        """True when the table exists and has both row_id and iso. Never raises."""
        schema, name = split_table_name(table)
        try:
            inspector = inspect(bind)
            if not inspector.has_table(name, schema=schema):
                return False
            columns = {column["name"] for column in inspector.get_columns(name, schema=schema)}
        except SQLAlchemyError as e:
            logger.debug(f"Error checking tracking columns of '{table}': {e}")
            return False
        return all(column in columns for column in TRACKING_COLUMNS)

    def invalidate(self, table: Optional[str] = None) -> None:
        """Drop cached descriptors (all, or one table)."""
        if table is None:
            self._cache.clear()
        else:
            self._cache.pop(table, None)

    @staticmethod
    def _columns_unchanged(bind: Bind, cached: TableSchema) -> bool:
        try:
            live = [
                column["name"]
                for column in inspect(bind).get_columns(cached.name, schema=cached.schema)
            ]
        except SQLAlchemyError as e:
            logger.debug(f"Could not re-check columns of '{cached.qualified_name}': {e}")
            return False
        return live == cached.columns
