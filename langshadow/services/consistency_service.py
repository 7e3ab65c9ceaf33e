"""
Consistency Queries - read side of translation groups.

Every query answers from the same denormalized table. Tables without the
tracking columns are a normal state (they never opted in) and read as
empty/zero rather than raising.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import case, distinct, func, select
from sqlalchemy.engine import Connection, Engine

from langshadow.core.config import MultiLangConfig, check_locale
from langshadow.schemas.multilang import (
    ISO_COLUMN,
    ROW_ID_COLUMN,
    TableSchema,
    TranslationStats,
)
from langshadow.services.constraint_inspector import ConstraintInspector

logger = logging.getLogger(__name__)


class ConsistencyService:
    """
    Read-only queries over translation groups of one database.
    """

    def __init__(
        self,
        engine: Engine,
        config: MultiLangConfig,
        inspector: Optional[ConstraintInspector] = None
    ):
        self.engine = engine
        self.config = config
        self.inspector = inspector or ConstraintInspector()

    def _tracked_schema(self, conn: Connection, table: str) -> Optional[TableSchema]:
        """
        Descriptor of a tracked table, or None when the columns are absent.

        Raises:
            UnknownTableError: the table does not exist at all
        """
        schema = self.inspector.describe(conn, table)
        if not schema.has_tracking_columns:
            logger.debug(f"{table} has no tracking columns, returning empty result")
            return None
        return schema

    def find_in_language(self, table: str, row_id: Any, iso: str) -> Optional[Dict[str, Any]]:
        """
        Get the row of a group in one language.

        Args:
            table: Table name
            row_id: Group identifier
            iso: Language code

        Returns:
            Row as a dict, or None
        """
        check_locale(iso)
        with self.engine.connect() as conn:
            schema = self._tracked_schema(conn, table)
            if schema is None:
                return None
            t = schema.table
            row = conn.execute(
                select(t).where(t.c[ROW_ID_COLUMN] == row_id, t.c[ISO_COLUMN] == iso)
            ).mappings().first()
            return dict(row) if row else None

    def all_in_group(self, table: str, row_id: Any) -> List[Dict[str, Any]]:
        """Get every row sharing a row_id (order not significant)."""
        with self.engine.connect() as conn:
            schema = self._tracked_schema(conn, table)
            if schema is None:
                return []
            t = schema.table
            rows = conn.execute(select(t).where(t.c[ROW_ID_COLUMN] == row_id)).mappings()
            return [dict(row) for row in rows]

    def existing_languages(self, table: str, row_id: Any) -> List[str]:
        """Languages present in a group."""
        with self.engine.connect() as conn:
            schema = self._tracked_schema(conn, table)
            if schema is None:
                return []
            t = schema.table
            languages = conn.execute(
                select(t.c[ISO_COLUMN]).where(t.c[ROW_ID_COLUMN] == row_id)
            ).scalars()
            return sorted({language for language in languages if language})

    def row_id_for(self, table: str, record_id: Any) -> Optional[Any]:
        """Resolve the group of a record by its primary key."""
        with self.engine.connect() as conn:
            schema = self._tracked_schema(conn, table)
            if schema is None or schema.pk_column is None:
                return None
            return conn.execute(
                select(schema.table.c[ROW_ID_COLUMN]).where(schema.pk_column == record_id)
            ).scalar()

    def canonical_row(self, table: str, row_id: Any) -> Optional[Dict[str, Any]]:
        """
        The group's canonical row (id == row_id); falls back to the group's
        lowest primary key if the canonical row was deleted.
        """
        with self.engine.connect() as conn:
            schema = self._tracked_schema(conn, table)
            if schema is None or schema.pk_column is None:
                return None
            return self.canonical_row_on(conn, schema, row_id)

    @staticmethod
    def canonical_row_on(conn: Connection, schema: TableSchema, row_id: Any) -> Optional[Dict[str, Any]]:
        """canonical_row() on an existing connection/transaction."""
        t = schema.table
        pk_column = schema.pk_column
        row = conn.execute(
            select(t).where(t.c[ROW_ID_COLUMN] == row_id, pk_column == row_id)
        ).mappings().first()
        if row is None:
            row = conn.execute(
                select(t).where(t.c[ROW_ID_COLUMN] == row_id).order_by(pk_column).limit(1)
            ).mappings().first()
        return dict(row) if row else None

    def coverage(self, table: str) -> float:
        """
        Fraction of (group x language) slots that hold a row.

        ratio = rows in groups / (distinct groups x configured languages);
        0.0 when there are no groups. Rows without a row_id are not part of
        any group and are not counted.
        """
        with self.engine.connect() as conn:
            schema = self._tracked_schema(conn, table)
            if schema is None:
                return 0.0
            t = schema.table
            row_id = t.c[ROW_ID_COLUMN]
            total, groups = conn.execute(
                select(func.count(row_id), func.count(distinct(row_id)))
            ).one()

        if not groups:
            return 0.0
        return total / (groups * self.config.language_count)

    def incomplete_groups(self, table: str) -> List[Any]:
        """
        row_ids lacking at least one configured language.

        Only configured languages count, so a group holding an unconfigured
        iso is still incomplete while a configured one is missing. Together
        with complete_groups this covers every group.
        """
        with self.engine.connect() as conn:
            schema = self._tracked_schema(conn, table)
            if schema is None:
                return []
            t = schema.table
            configured = case((t.c[ISO_COLUMN].in_(self.config.languages), t.c[ISO_COLUMN]))
            return list(conn.execute(
                select(t.c[ROW_ID_COLUMN])
                .where(t.c[ROW_ID_COLUMN].is_not(None))
                .group_by(t.c[ROW_ID_COLUMN])
                .having(func.count(distinct(configured)) < self.config.language_count)
                .order_by(t.c[ROW_ID_COLUMN])
            ).scalars())

    def complete_groups(self, table: str) -> List[Any]:
        """row_ids that have every configured language."""
        with self.engine.connect() as conn:
            schema = self._tracked_schema(conn, table)
            if schema is None:
                return []
            t = schema.table
            return list(conn.execute(
                select(t.c[ROW_ID_COLUMN])
                .where(t.c[ROW_ID_COLUMN].is_not(None), t.c[ISO_COLUMN].in_(self.config.languages))
                .group_by(t.c[ROW_ID_COLUMN])
                .having(func.count(distinct(t.c[ISO_COLUMN])) == self.config.language_count)
                .order_by(t.c[ROW_ID_COLUMN])
            ).scalars())

    def incomplete_records(self, table: str) -> List[Dict[str, Any]]:
        """All rows belonging to incomplete groups."""
        row_ids = self.incomplete_groups(table)
        if not row_ids:
            return []
        with self.engine.connect() as conn:
            schema = self._tracked_schema(conn, table)
            t = schema.table
            rows = conn.execute(
                select(t).where(t.c[ROW_ID_COLUMN].in_(row_ids)).order_by(t.c[ROW_ID_COLUMN])
            ).mappings()
            return [dict(row) for row in rows]

    def translation_stats(self, table: str) -> TranslationStats:
        """Total rows, number of groups and rows per configured language."""
        with self.engine.connect() as conn:
            schema = self._tracked_schema(conn, table)
            if schema is None:
                return TranslationStats(table=table, tracked=False)
            t = schema.table
            total = conn.execute(select(func.count()).select_from(t)).scalar()
            groups = conn.execute(select(func.count(distinct(t.c[ROW_ID_COLUMN])))).scalar()
            per_language = dict(conn.execute(
                select(t.c[ISO_COLUMN], func.count())
                .where(t.c[ISO_COLUMN].in_(self.config.languages))
                .group_by(t.c[ISO_COLUMN])
            ).all())

        return TranslationStats(
            table=table,
            total_records=total or 0,
            unique_records=groups or 0,
            languages={language: per_language.get(language, 0) for language in self.config.languages},
            coverage=self.coverage(table),
        )
