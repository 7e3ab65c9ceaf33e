"""
Schema Provisioner - adds or removes the row_id / iso tracking columns.

Uses Alembic operations directly against a live connection; no migration
scripts or version table are involved.
"""
import logging
from typing import Iterable, List, Optional

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import BigInteger, Column, Integer, String, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from langshadow.core.exceptions import MultiLangError, UnknownTableError
from langshadow.schemas.multilang import (
    ISO_COLUMN,
    ROW_ID_COLUMN,
    TRACKING_COLUMNS,
    ProvisionReport,
)
from langshadow.services.constraint_inspector import ConstraintInspector
from langshadow.utils.validation import split_table_name

logger = logging.getLogger(__name__)

ISO_LENGTH = 10
ROW_ID_STRING_LENGTH = 36


def row_id_index_name(table: str) -> str:
    return f"ix_{table}_{ROW_ID_COLUMN}"


class SchemaProvisioner:
    """
    Idempotent provisioning of tracking columns.

    add_columns() checks each column separately, so a half-applied previous
    run is completed instead of failing. remove_columns() is destructive and
    takes no backup.
    """

    def __init__(self, engine: Engine, inspector: Optional[ConstraintInspector] = None):
        self.engine = engine
        self.inspector = inspector or ConstraintInspector()

    def add_columns(self, table: str) -> ProvisionReport:
        """
        Add row_id (nullable, indexed) and iso (nullable, short string).

        Raises:
            UnknownTableError: table does not exist
        """
        schema, name = split_table_name(table)
        report = ProvisionReport(table=table, action="migrate")

        with self.engine.begin() as conn:
            db_inspector = inspect(conn)
            if not db_inspector.has_table(name, schema=schema):
                raise UnknownTableError(f"Table '{table}' does not exist")

            columns = {c["name"]: c for c in db_inspector.get_columns(name, schema=schema)}
            op = Operations(MigrationContext.configure(conn))

            if ROW_ID_COLUMN not in columns:
                row_id_type = self._row_id_type(db_inspector, name, schema, columns)
                op.add_column(name, Column(ROW_ID_COLUMN, row_id_type, nullable=True), schema=schema)
                report.added.append(ROW_ID_COLUMN)

            # Index is checked on its own so a run interrupted after the
            # column was added still ends up indexed
            indexed = any(
                index.get("column_names") == [ROW_ID_COLUMN]
                for index in db_inspector.get_indexes(name, schema=schema)
            ) if ROW_ID_COLUMN in columns else False
            if not indexed:
                op.create_index(row_id_index_name(name), name, [ROW_ID_COLUMN], schema=schema)

            if ISO_COLUMN not in columns:
                op.add_column(name, Column(ISO_COLUMN, String(ISO_LENGTH), nullable=True), schema=schema)
                report.added.append(ISO_COLUMN)

        self.inspector.invalidate(table)

        if report.added:
            logger.info(f"Added {', '.join(report.added)} to {table}")
        else:
            logger.info(f"{table} already has tracking columns")
        return report

    def remove_columns(self, table: str) -> ProvisionReport:
        """
        Drop the tracking columns that exist (and indexes over them).

        Raises:
            UnknownTableError: table does not exist
        """
        schema, name = split_table_name(table)
        report = ProvisionReport(table=table, action="rollback")

        with self.engine.begin() as conn:
            db_inspector = inspect(conn)
            if not db_inspector.has_table(name, schema=schema):
                raise UnknownTableError(f"Table '{table}' does not exist")

            columns = {c["name"] for c in db_inspector.get_columns(name, schema=schema)}
            present = [column for column in TRACKING_COLUMNS if column in columns]
            if not present:
                logger.info(f"{table} has no tracking columns to remove")
                return report

            op = Operations(MigrationContext.configure(conn))
            for index in db_inspector.get_indexes(name, schema=schema):
                if set(index.get("column_names") or []) & set(present):
                    op.drop_index(index["name"], table_name=name, schema=schema)

            with op.batch_alter_table(name, schema=schema) as batch:
                for column in present:
                    batch.drop_column(column)
            report.removed.extend(present)

        self.inspector.invalidate(table)
        logger.info(f"Removed {', '.join(report.removed)} from {table}")
        return report

    def migrate(self, tables: Iterable[str]) -> List[ProvisionReport]:
        """Add tracking columns to several tables; each table succeeds or fails on its own."""
        return [self._run(self.add_columns, table, "migrate") for table in tables]

    def rollback(self, tables: Iterable[str]) -> List[ProvisionReport]:
        """Remove tracking columns from several tables."""
        return [self._run(self.remove_columns, table, "rollback") for table in tables]

    def _run(self, operation, table: str, action: str) -> ProvisionReport:
        try:
            return operation(table)
        except (MultiLangError, SQLAlchemyError) as e:
            logger.error(f"Failed to {action} {table}: {e}")
            return ProvisionReport(table=table, action=action, ok=False, error=str(e))

    @staticmethod
    def _row_id_type(db_inspector, name, schema, columns):
        """row_id mirrors the primary key: integers for integer keys, strings otherwise."""
        primary = db_inspector.get_pk_constraint(name, schema=schema) or {}
        pk_columns = primary.get("constrained_columns") or []
        if len(pk_columns) == 1 and pk_columns[0] in columns:
            if isinstance(columns[pk_columns[0]]["type"], Integer):
                return BigInteger()
            return String(ROW_ID_STRING_LENGTH)
        return BigInteger()
