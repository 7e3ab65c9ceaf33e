"""
MultiLang Service - programmatic API over one participating table.

Bind a table (or an ORM model) first, then work with whole translation
groups by the id of any of their rows:

    service = MultiLangService(engine, config).for_table("products")
    result = service.create_multi_language({"name": "Shoe", "slug": "shoe"})
    service.get_all_translations(result.row_id)
"""
import copy
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine

from langshadow.core.config import MultiLangConfig, check_locale
from langshadow.core.exceptions import (
    InvalidIdentifierError,
    NoTargetError,
    UnknownTableError,
)
from langshadow.schemas.multilang import (
    ISO_COLUMN,
    ROW_ID_COLUMN,
    ProvisionReport,
    ReconcileReport,
    ReplicationResult,
    TranslationStats,
)
from langshadow.services.consistency_service import ConsistencyService
from langshadow.services.constraint_inspector import ConstraintInspector
from langshadow.services.language_service import LanguageService
from langshadow.services.reconciler import DEFAULT_BATCH_SIZE, Reconciler
from langshadow.services.replication_service import Replicator
from langshadow.services.schema_provisioner import SchemaProvisioner
from langshadow.utils.validation import sanitize_attributes, validate_table_name

logger = logging.getLogger(__name__)


class MultiLangService:
    """
    Facade combining provisioning, replication, reconciliation and queries.

    Args:
        engine: SQLAlchemy engine of the database holding the tables
        config: Language configuration
        inspector: Shared ConstraintInspector (one is created if omitted)
        batch_size: Page size of reconciliation sweeps
    """

    def __init__(
        self,
        engine: Engine,
        config: MultiLangConfig,
        inspector: Optional[ConstraintInspector] = None,
        batch_size: int = DEFAULT_BATCH_SIZE
    ):
        self.engine = engine
        self.config = config
        self.inspector = inspector or ConstraintInspector()
        self.replicator = Replicator(config, self.inspector)
        self.provisioner = SchemaProvisioner(engine, self.inspector)
        self.consistency = ConsistencyService(engine, config, self.inspector)
        self.reconciler = Reconciler(
            engine, config, self.inspector, self.replicator, batch_size=batch_size
        )
        self.languages = LanguageService(config)
        self.table: Optional[str] = None

    # ------------------------------------------------------------------
    # Target selection
    # ------------------------------------------------------------------

    def for_table(self, table: str) -> "MultiLangService":
        """
        Return a copy bound to a table.

        Raises:
            InvalidIdentifierError: malformed table name
            UnknownTableError: tables are registered and this one is not
        """
        validate_table_name(table)
        if self.config.tables and table not in self.config.tables:
            raise UnknownTableError(
                f"Table '{table}' is not registered. Registered tables: {', '.join(self.config.tables)}"
            )
        bound = copy.copy(self)
        bound.table = table
        return bound

    def for_model(self, model_cls) -> "MultiLangService":
        """Return a copy bound to the table of a mapped ORM class."""
        table = model_cls.__table__
        name = f"{table.schema}.{table.name}" if table.schema else table.name
        return self.for_table(name)

    def _require_table(self) -> str:
        if self.table is None:
            raise NoTargetError("No table set. Use for_table() or for_model() first.")
        return self.table

    def _tables(self, table: Optional[str]) -> List[str]:
        if table is not None:
            return [validate_table_name(table)]
        if self.table is not None:
            return [self.table]
        return list(self.config.tables)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_multi_language(
        self,
        attributes: Mapping[str, Any],
        languages: Optional[Sequence[str]] = None,
        per_language_overrides: Optional[Mapping[str, Mapping[str, Any]]] = None
    ) -> ReplicationResult:
        """
        Create a record in several languages at once.

        Args:
            attributes: Base attributes shared by every language
            languages: Languages to create (default: all configured); the
                first becomes the canonical row
            per_language_overrides: {language: {column: value}} merged over
                the base attributes

        Returns:
            ReplicationResult whose `created` holds every inserted row
        """
        table = self._require_table()
        languages = self.reconciler.resolve_languages(languages)
        attributes = sanitize_attributes(dict(attributes))
        overrides = {
            language: sanitize_attributes(dict(values))
            for language, values in (per_language_overrides or {}).items()
        }

        with self.engine.begin() as conn:
            schema = self.inspector.describe(conn, table)
            result = self.replicator.create_group(conn, schema, attributes, languages, overrides)

        if result.skipped:
            logger.warning(f"Could not create multi-language record in {table}: {result.reason}")
        else:
            logger.info(
                f"Created {len(result.created)} rows in {table} for group {result.row_id}"
            )
        return result

    def update_all_translations(self, record_id: Any, attributes: Mapping[str, Any]) -> int:
        """
        Apply the same attributes to every row of a record's group.

        Primary key, row_id and iso are never updated. Values of unique
        columns get the per-language suffix on rows that would collide.

        Returns:
            Number of updated rows (0 when the record has no group)

        Raises:
            UniquenessExhaustedError: a row still violated a unique index
        """
        table = self._require_table()
        attributes = sanitize_attributes(dict(attributes))
        row_id = self.consistency.row_id_for(table, record_id)
        if row_id is None:
            return 0

        with self.engine.begin() as conn:
            schema = self.inspector.describe(conn, table)
            protected = set(schema.primary_key) | {ROW_ID_COLUMN, ISO_COLUMN}
            values = {
                key: value for key, value in attributes.items()
                if key in schema.columns and key not in protected
            }
            if not values:
                return 0
            updated = self.replicator.update_group(conn, schema, row_id, values)

        logger.info(f"Updated {updated} translations of group {row_id} in {table}")
        return updated

    def delete_all_translations(self, record_id: Any) -> int:
        """
        Delete every row of a record's group.

        Returns:
            Number of deleted rows
        """
        table = self._require_table()
        row_id = self.consistency.row_id_for(table, record_id)
        if row_id is None:
            return 0

        with self.engine.begin() as conn:
            schema = self.inspector.describe(conn, table)
            deleted = conn.execute(
                delete(schema.table).where(schema.column(ROW_ID_COLUMN) == row_id)
            ).rowcount

        logger.info(f"Deleted {deleted} translations of group {row_id} in {table}")
        return deleted

    def copy_to_language(
        self,
        source: Union[Any, Mapping[str, Any]],
        target_language: str,
        overrides: Optional[Mapping[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Copy a record into another language of its group.

        Args:
            source: Record id, or the record's attribute map
            target_language: Language of the new row
            overrides: Attributes replacing the copied ones

        Returns:
            The created row, or None when the source does not exist or the
            group already has the target language

        Raises:
            InvalidLocaleError: malformed target language
            UniquenessExhaustedError: unique conflicts persisted
        """
        table = self._require_table()
        check_locale(target_language)
        overrides = sanitize_attributes(dict(overrides or {}))

        with self.engine.begin() as conn:
            schema = self.inspector.describe(conn, table)
            if schema.pk_column is None:
                return None
            record_id = source.get(schema.primary_key[0]) if isinstance(source, Mapping) else source
            row = conn.execute(
                select(schema.table).where(schema.pk_column == record_id)
            ).mappings().first()
            if row is None:
                logger.debug(f"{table} #{record_id} not found, nothing to copy")
                return None
            return self.replicator.copy_row(conn, schema, dict(row), target_language, overrides)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_all_translations(self, record_id: Any) -> List[Dict[str, Any]]:
        """All rows of the group the record belongs to."""
        table = self._require_table()
        row_id = self.consistency.row_id_for(table, record_id)
        if row_id is None:
            return []
        return self.consistency.all_in_group(table, row_id)

    def find(self, row_id: Any, iso: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Row of a group in one language. An invalid or unconfigured iso
        falls back to the fallback language.
        """
        table = self._require_table()
        locale = self.languages.validate_and_get_locale(iso)
        return self.consistency.find_in_language(table, row_id, locale)

    def where(self, conditions: Mapping[str, Any], iso: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Rows in one language matching column conditions.

        The key 'id' addresses the group (row_id); list values match any
        of their elements.
        """
        table = self._require_table()
        locale = self.languages.validate_and_get_locale(iso)

        with self.engine.connect() as conn:
            schema = self.inspector.describe(conn, table)
            if not schema.has_tracking_columns:
                return []
            t = schema.table
            query = select(t).where(t.c[ISO_COLUMN] == locale)
            for key, value in conditions.items():
                if key != "id" and key not in schema.columns:
                    raise InvalidIdentifierError(f"Unknown column '{key}' in {table}")
                column = t.c[ROW_ID_COLUMN] if key == "id" else t.c[key]
                if isinstance(value, (list, tuple, set)):
                    query = query.where(column.in_(list(value)))
                else:
                    query = query.where(column == value)
            return [dict(row) for row in conn.execute(query).mappings()]

    def get_incomplete_translations(self) -> List[Dict[str, Any]]:
        return self.consistency.incomplete_records(self._require_table())

    def get_coverage(self) -> float:
        """Coverage of the bound table as a ratio between 0 and 1."""
        return self.consistency.coverage(self._require_table())

    def get_stats(self) -> TranslationStats:
        return self.consistency.translation_stats(self._require_table())

    # ------------------------------------------------------------------
    # Schema and batch operations
    # ------------------------------------------------------------------

    def migrate(self, table: Optional[str] = None) -> List[ProvisionReport]:
        """Add tracking columns to a table, the bound table, or every registered table."""
        return self.provisioner.migrate(self._tables(table))

    def rollback(self, table: Optional[str] = None) -> List[ProvisionReport]:
        """Remove tracking columns (destructive, no backup)."""
        return self.provisioner.rollback(self._tables(table))

    def generate(self, table: Optional[str] = None, locale: Optional[str] = None) -> List[ReconcileReport]:
        """
        Reconcile a table, the bound table, or every registered table.

        Args:
            table: Table to sweep
            locale: Only create rows for this configured language
        """
        languages = [locale] if locale is not None else None
        return self.reconciler.reconcile_all(self._tables(table), languages)
