"""
Batch Reconciler - sweeps a table and fills every language gap.

The sweep is the self-healing path: groups left partial by abandoned
replication tasks are completed here. Gaps are always derived from storage,
so re-running after a partial failure creates only what is still missing.
"""
import logging
from typing import Any, Iterable, Iterator, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from langshadow.core.config import MultiLangConfig, check_locale
from langshadow.core.exceptions import InvalidLocaleError, MultiLangError
from langshadow.core.monitoring import monitor_performance, track_error, track_metric
from langshadow.schemas.multilang import (
    ROW_ID_COLUMN,
    ReconcileReport,
    ReplicationFailure,
    ReplicationResult,
    TableSchema,
)
from langshadow.services.consistency_service import ConsistencyService
from langshadow.services.constraint_inspector import ConstraintInspector
from langshadow.services.replication_service import (
    COMPOSITE_KEY,
    TRACKING_MISSING,
    Replicator,
)

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


class Reconciler:
    """
    Idempotent sweep over one table (or one record).

    Each group is handled in its own transaction: a failing group is
    recorded in the report and the sweep moves on.
    """

    def __init__(
        self,
        engine: Engine,
        config: MultiLangConfig,
        inspector: Optional[ConstraintInspector] = None,
        replicator: Optional[Replicator] = None,
        batch_size: int = DEFAULT_BATCH_SIZE
    ):
        self.engine = engine
        self.config = config
        self.inspector = inspector or ConstraintInspector()
        self.replicator = replicator or Replicator(config, self.inspector)
        self.batch_size = batch_size

    def resolve_languages(self, languages: Optional[Sequence[str]] = None) -> List[str]:
        """
        Validate requested languages against the configured set.

        Raises:
            InvalidLocaleError: bad format or not configured
        """
        if not languages:
            return list(self.config.languages)
        resolved = []
        for language in languages:
            check_locale(language)
            if language not in self.config.languages:
                raise InvalidLocaleError(
                    f"Language {language} not found. Add it to the configured languages first."
                )
            if language not in resolved:
                resolved.append(language)
        return resolved

    @monitor_performance
    def reconcile(self, table: str, languages: Optional[Sequence[str]] = None) -> ReconcileReport:
        """
        Back-fill row_id where missing and create every missing language row.

        Args:
            table: Table name
            languages: Restrict to these configured languages (default: all)

        Returns:
            ReconcileReport with created count, group count and failures
        """
        languages = self.resolve_languages(languages)
        report = ReconcileReport(table=table, languages=languages)

        schema = self.inspector.describe(self.engine, table)
        skip_reason = self._skip_reason(schema)
        if skip_reason:
            logger.warning(f"Skipping {table}: {skip_reason}")
            report.skipped = True
            report.reason = skip_reason
            return report

        seen_groups = set()
        with self.engine.connect() as conn:
            for record_id in self._iter_record_ids(conn, schema):
                self._reconcile_one(conn, schema, record_id, languages, seen_groups, report)

        logger.info(
            f"{report.created} translations have been generated for {table} "
            f"({report.groups} groups, {len(report.failures)} failures)"
        )
        track_metric("reconcile.created", report.created, table=table)
        return report

    def reconcile_record(
        self,
        table: str,
        record_id: Any,
        languages: Optional[Sequence[str]] = None
    ) -> ReconcileReport:
        """Reconcile the group of a single record."""
        languages = self.resolve_languages(languages)
        report = ReconcileReport(table=table, languages=languages)

        schema = self.inspector.describe(self.engine, table)
        skip_reason = self._skip_reason(schema)
        if skip_reason:
            report.skipped = True
            report.reason = skip_reason
            return report

        with self.engine.connect() as conn:
            self._reconcile_one(conn, schema, record_id, languages, set(), report)
        return report

    def reconcile_all(
        self,
        tables: Optional[Iterable[str]] = None,
        languages: Optional[Sequence[str]] = None
    ) -> List[ReconcileReport]:
        """Reconcile several tables (default: every configured table)."""
        reports = []
        for table in (tables if tables is not None else self.config.tables):
            try:
                reports.append(self.reconcile(table, languages))
            except InvalidLocaleError:
                raise
            except (MultiLangError, SQLAlchemyError) as e:
                logger.error(f"Reconciliation of {table} failed: {e}")
                reports.append(ReconcileReport(
                    table=table,
                    languages=list(languages or self.config.languages),
                    failures=[ReplicationFailure(reason=str(e))],
                ))
        return reports

    # ------------------------------------------------------------------

    def _reconcile_one(
        self,
        conn: Connection,
        schema: TableSchema,
        record_id: Any,
        languages: List[str],
        seen_groups: set,
        report: ReconcileReport
    ) -> None:
        try:
            with conn.begin():
                result = self._replicate_group(conn, schema, record_id, languages, seen_groups, report)
        except (MultiLangError, SQLAlchemyError) as e:
            logger.error(f"Could not reconcile {schema.qualified_name} #{record_id}: {e}")
            track_error(
                "reconcile.group_failed",
                table=schema.qualified_name,
                record_id=record_id,
                metadata={"error": str(e)}
            )
            report.failures.append(ReplicationFailure(reason=str(e), record_id=record_id))
            return

        if result is None:
            return
        report.created += len(result.created)
        report.failures.extend(result.failures)

    def _replicate_group(
        self,
        conn: Connection,
        schema: TableSchema,
        record_id: Any,
        languages: List[str],
        seen_groups: set,
        report: ReconcileReport
    ) -> Optional[ReplicationResult]:
        t = schema.table
        row = conn.execute(select(t).where(schema.pk_column == record_id)).mappings().first()
        if row is None:
            # Deleted since the page was read
            return None

        row = dict(row)
        row_id = row.get(ROW_ID_COLUMN)
        if row_id is not None and row_id in seen_groups:
            return None

        if row_id is None:
            report.assigned += 1
        else:
            # Derive from the group's canonical row when it still exists
            row = ConsistencyService.canonical_row_on(conn, schema, row_id) or row

        result = self.replicator.replicate(conn, schema, row, languages)
        seen_groups.add(result.row_id)
        report.groups += 1
        return result

    def _iter_record_ids(self, conn: Connection, schema: TableSchema) -> Iterator[Any]:
        """Keyset pagination over the primary key; each page in its own short transaction."""
        pk_column = schema.pk_column
        last = None
        while True:
            query = select(pk_column).order_by(pk_column).limit(self.batch_size)
            if last is not None:
                query = query.where(pk_column > last)
            with conn.begin():
                page = list(conn.execute(query).scalars())
            if not page:
                return
            yield from page
            last = page[-1]

    @staticmethod
    def _skip_reason(schema: TableSchema) -> Optional[str]:
        if not schema.has_tracking_columns:
            return TRACKING_MISSING
        if schema.pk_column is None:
            return COMPOSITE_KEY
        return None
