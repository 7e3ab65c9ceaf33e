"""
Replication Engine - derives the missing language rows of a translation group.

Given one canonical row, every configured language without a row in the
group gets a copy of the canonical attributes with its own iso. Values in
unique-indexed columns are rewritten with a deterministic suffix ladder so
the copies never collide with the original.
"""
import logging
import secrets
import uuid
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Set

from sqlalchemy import Integer, Uuid, and_, exists, insert, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from langshadow.core.config import MultiLangConfig, check_locale
from langshadow.core.exceptions import UniquenessExhaustedError
from langshadow.core.monitoring import track_error, track_metric
from langshadow.schemas.multilang import (
    ISO_COLUMN,
    ROW_ID_COLUMN,
    TRACKING_COLUMNS,
    ReplicationFailure,
    ReplicationResult,
    TableSchema,
)
from langshadow.services.constraint_inspector import ConstraintInspector

logger = logging.getLogger(__name__)

TRACKING_MISSING = "tracking columns missing"
COMPOSITE_KEY = "composite primary key not supported"


def suffix_ladder(value: str, language: str, max_attempts: int) -> Iterator[str]:
    """
    Candidate values for a unique column, in the order they are tried:
    value, value-{lang}, value-{lang}-1, value-{lang}-2, ...
    Yields max_attempts candidates in total.
    """
    yield value
    if max_attempts >= 2:
        yield f"{value}-{language}"
    for n in range(1, max_attempts - 1):
        yield f"{value}-{language}-{n}"


def random_suffix(value: str, language: str) -> str:
    """Last-resort value once the ladder is exhausted."""
    return f"{value}-{language}-{secrets.token_hex(4)}"


class Replicator:
    """
    Creates missing language rows for translation groups.

    All writes go through the caller's connection; the caller owns the
    outer transaction. Every insert runs in its own SAVEPOINT so a failed
    language does not roll back the others.
    """

    def __init__(self, config: MultiLangConfig, inspector: Optional[ConstraintInspector] = None):
        self.config = config
        self.inspector = inspector or ConstraintInspector()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def replicate(
        self,
        conn: Connection,
        schema: TableSchema,
        canonical_row: Mapping[str, Any],
        target_languages: Optional[Sequence[str]] = None
    ) -> ReplicationResult:
        """
        Create one row per missing language for the canonical row's group.

        Args:
            conn: Connection inside a transaction
            schema: Descriptor of the table
            canonical_row: Attribute map of the canonical row (must include the primary key)
            target_languages: Languages the group should have; None means all configured

        Returns:
            ReplicationResult with created rows, benign duplicates and failures
        """
        skip_reason = self._skip_reason(schema)
        if skip_reason:
            return ReplicationResult(skipped=True, reason=skip_reason)

        languages = self._target_languages(target_languages)
        row = dict(canonical_row)
        row_id = self.resolve_row_id(conn, schema, row)
        result = ReplicationResult(row_id=row_id)
        if not languages:
            return result

        existing = self.existing_languages(conn, schema, row_id)
        missing = [language for language in languages if language not in existing]
        if not missing:
            logger.debug(f"Group {row_id} in {schema.qualified_name} already complete")
            return result

        self._replicate_languages(conn, schema, row, row_id, missing, {}, result)

        if result.created:
            track_metric("replication.created", len(result.created), table=schema.qualified_name)
        return result

    def create_group(
        self,
        conn: Connection,
        schema: TableSchema,
        attributes: Mapping[str, Any],
        languages: Optional[Sequence[str]] = None,
        overrides: Optional[Mapping[str, Mapping[str, Any]]] = None
    ) -> ReplicationResult:
        """
        Insert a brand new group: the first language row becomes the
        canonical row (row_id = its own id), the rest are derived from the
        same attributes plus per-language overrides.
        """
        skip_reason = self._skip_reason(schema)
        if skip_reason:
            return ReplicationResult(skipped=True, reason=skip_reason)

        languages = self._target_languages(languages)
        if not languages:
            return ReplicationResult()
        overrides = overrides or {}

        first = languages[0]
        values = self.build_candidate(schema, attributes, None, first, overrides.get(first))
        values = self._resolve_unique(conn, schema, values, first)
        with conn.begin_nested():
            record_id = conn.execute(insert(schema.table).values(**values)).inserted_primary_key[0]

        pk = schema.primary_key[0]
        row_id = self.row_id_value(schema, record_id)
        conn.execute(
            update(schema.table)
            .where(schema.pk_column == record_id)
            .values(**{ROW_ID_COLUMN: row_id})
        )
        canonical = {**values, pk: record_id, ROW_ID_COLUMN: row_id}

        result = ReplicationResult(row_id=row_id, created=[canonical])
        self._replicate_languages(conn, schema, attributes, row_id, languages[1:], overrides, result)
        return result

    def copy_row(
        self,
        conn: Connection,
        schema: TableSchema,
        source_row: Mapping[str, Any],
        language: str,
        overrides: Optional[Mapping[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Copy one row into another language of its group.

        Returns:
            The created row, or None if the group already has that language
            or the table is not tracked

        Raises:
            UniquenessExhaustedError: insert kept violating a unique index
        """
        if self._skip_reason(schema):
            return None
        check_locale(language)
        row = dict(source_row)
        row_id = self.resolve_row_id(conn, schema, row)
        return self._insert_language(conn, schema, row, row_id, language, overrides)

    def update_group(
        self,
        conn: Connection,
        schema: TableSchema,
        row_id: Any,
        attributes: Mapping[str, Any]
    ) -> int:
        """
        Apply the same attributes to every row of a group.

        Unique-indexed values are resolved per row with that row's language,
        so 'sneaker' lands as 'sneaker-fr' on the French row. Rows are visited
        in primary key order and a row never collides with itself.

        Returns:
            Number of updated rows

        Raises:
            UniquenessExhaustedError: a row still violated a unique index
        """
        t = schema.table
        pk = schema.primary_key[0]
        rows = conn.execute(
            select(t).where(t.c[ROW_ID_COLUMN] == row_id).order_by(schema.pk_column)
        ).mappings().all()

        updated = 0
        for row in rows:
            language = row[ISO_COLUMN] or self.config.fallback_language
            values = self._resolve_unique(
                conn, schema, {**dict(row), **attributes}, language,
                changed=set(attributes), exclude=row[pk]
            )
            try:
                with conn.begin_nested():
                    updated += conn.execute(
                        update(t)
                        .where(schema.pk_column == row[pk])
                        .values(**{key: values[key] for key in attributes})
                    ).rowcount
            except IntegrityError as e:
                raise UniquenessExhaustedError(language, 1, str(e.orig))
        return updated

    # ------------------------------------------------------------------
    # Group bookkeeping
    # ------------------------------------------------------------------

    def resolve_row_id(self, conn: Connection, schema: TableSchema, row: Dict[str, Any]) -> Any:
        """
        Back-fill row_id (and an empty iso) on a canonical row.

        An empty iso becomes the fallback language, or the first configured
        language the group lacks when a sibling already holds the fallback.
        It stays empty when the group has every language. The row dict is
        updated in place and the change is persisted.
        """
        pk = schema.primary_key[0]
        values = {}
        row_id = row.get(ROW_ID_COLUMN)
        if row_id is None:
            row_id = values[ROW_ID_COLUMN] = self.row_id_value(schema, row[pk])
        if not row.get(ISO_COLUMN):
            language = self._free_language(conn, schema, row_id)
            if language is not None:
                values[ISO_COLUMN] = language

        if values:
            conn.execute(
                update(schema.table)
                .where(schema.pk_column == row[pk])
                .values(**values)
            )
            row.update(values)
            logger.debug(f"Assigned {values} to {schema.qualified_name} #{row[pk]}")

        return row[ROW_ID_COLUMN]

    def _free_language(self, conn: Connection, schema: TableSchema, row_id: Any) -> Optional[str]:
        existing = self.existing_languages(conn, schema, row_id)
        if self.config.fallback_language not in existing:
            return self.config.fallback_language
        return next((language for language in self.config.languages if language not in existing), None)

    def existing_languages(self, conn: Connection, schema: TableSchema, row_id: Any) -> Set[str]:
        """Languages present in the group, read from storage."""
        table = schema.table
        rows = conn.execute(
            select(table.c[ISO_COLUMN]).where(table.c[ROW_ID_COLUMN] == row_id)
        ).scalars()
        return {language for language in rows if language}

    def build_candidate(
        self,
        schema: TableSchema,
        source: Mapping[str, Any],
        row_id: Any,
        language: str,
        overrides: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """Copy every attribute except the primary key and set iso/row_id."""
        values = {
            key: value for key, value in source.items()
            if key in schema.columns and key not in schema.primary_key
        }
        if overrides:
            values.update({key: value for key, value in overrides.items() if key in schema.columns})
        values[ISO_COLUMN] = language
        values[ROW_ID_COLUMN] = row_id

        pk_column = schema.pk_column
        if not isinstance(pk_column.type, Integer):
            # Integer keys come from the database; anything else gets a fresh UUID
            new_key = uuid.uuid4()
            values[pk_column.name] = new_key if isinstance(pk_column.type, Uuid) else str(new_key)
        return values

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _replicate_languages(
        self,
        conn: Connection,
        schema: TableSchema,
        source: Mapping[str, Any],
        row_id: Any,
        languages: Sequence[str],
        overrides: Mapping[str, Mapping[str, Any]],
        result: ReplicationResult
    ) -> None:
        record_id = source.get(schema.primary_key[0])
        for language in languages:
            try:
                created = self._insert_language(
                    conn, schema, source, row_id, language, overrides.get(language)
                )
            except OperationalError:
                # Connection loss / lock timeout: let the task queue retry
                raise
            except (UniquenessExhaustedError, SQLAlchemyError) as e:
                logger.warning(
                    f"Could not create '{language}' for group {row_id} in {schema.qualified_name}: {e}"
                )
                track_error(
                    "replication.insert_failed",
                    table=schema.qualified_name,
                    record_id=record_id,
                    metadata={"language": language, "error": str(e)}
                )
                result.failures.append(
                    ReplicationFailure(language=language, reason=str(e), record_id=record_id)
                )
                continue

            if created is None:
                result.existing.append(language)
            else:
                result.created.append(created)

    def _insert_language(
        self,
        conn: Connection,
        schema: TableSchema,
        source: Mapping[str, Any],
        row_id: Any,
        language: str,
        overrides: Optional[Mapping[str, Any]]
    ) -> Optional[Dict[str, Any]]:
        """
        Insert one language row. Returns None when (row_id, language) already
        exists, which covers a duplicate delivery of the same task.
        """
        candidate = self.build_candidate(schema, source, row_id, language, overrides)
        attempts = 0

        while True:
            if self._pair_exists(conn, schema, row_id, language):
                return None

            values = self._resolve_unique(conn, schema, dict(candidate), language)
            try:
                with conn.begin_nested():
                    inserted = conn.execute(insert(schema.table).values(**values))
            except IntegrityError as e:
                if self._pair_exists(conn, schema, row_id, language):
                    return None
                attempts += 1
                if attempts > self.config.conflict_retries:
                    raise UniquenessExhaustedError(language, attempts, str(e.orig))
                logger.debug(f"Unique conflict for '{language}' in group {row_id}, retry {attempts}")
                schema = self.refresh(conn, schema)
                continue

            values[schema.primary_key[0]] = inserted.inserted_primary_key[0]
            return values

    def refresh(self, conn: Connection, schema: TableSchema) -> TableSchema:
        """Re-read a descriptor; unique indexes may have been added since it was cached."""
        self.inspector.invalidate(schema.qualified_name)
        return self.inspector.describe(conn, schema.qualified_name)

    def _resolve_unique(
        self,
        conn: Connection,
        schema: TableSchema,
        values: Dict[str, Any],
        language: str,
        changed: Optional[Set[str]] = None,
        exclude: Any = None
    ) -> Dict[str, Any]:
        """
        Rewrite values that would collide on a unique index.

        Indexes containing iso are skipped (the language already makes the
        tuple distinct). Composite indexes are checked as a whole tuple and
        only their first string column is suffixed. Tuples with a NULL
        member never collide.

        Args:
            changed: Only indexes touching, and only values in, these columns
            exclude: Primary key of the row being updated, ignored by the collision check
        """
        for descriptor in schema.unique_indexes:
            if descriptor.includes_language:
                continue
            columns = descriptor.columns
            if changed is not None and not changed.intersection(columns):
                continue
            if any(values.get(column) is None for column in columns):
                continue
            target = next(
                (
                    c for c in columns
                    if isinstance(values[c], str)
                    and c not in TRACKING_COLUMNS
                    and (changed is None or c in changed)
                ),
                None
            )
            if target is None:
                continue
            values[target] = self._free_value(conn, schema, values, columns, target, language, exclude)
        return values

    def _free_value(self, conn, schema, values, columns, target, language, exclude=None) -> str:
        original = values[target]
        for candidate in suffix_ladder(original, language, self.config.max_suffix_attempts):
            key = {column: values[column] for column in columns}
            key[target] = candidate
            if not self._tuple_exists(conn, schema, key, exclude):
                return candidate

        fallback = random_suffix(original, language)
        logger.warning(
            f"Suffix ladder exhausted for {schema.qualified_name}.{target}={original!r}, using {fallback!r}"
        )
        return fallback

    def _tuple_exists(
        self,
        conn: Connection,
        schema: TableSchema,
        key: Mapping[str, Any],
        exclude: Any = None
    ) -> bool:
        table = schema.table
        condition = and_(*[table.c[column] == value for column, value in key.items()])
        if exclude is not None:
            condition = and_(condition, schema.pk_column != exclude)
        return bool(conn.execute(select(exists().where(condition))).scalar())

    def _pair_exists(self, conn: Connection, schema: TableSchema, row_id: Any, language: str) -> bool:
        return self._tuple_exists(conn, schema, {ROW_ID_COLUMN: row_id, ISO_COLUMN: language})

    def _target_languages(self, languages: Optional[Sequence[str]]) -> List[str]:
        if languages is None:
            return list(self.config.languages)
        unique = []
        for language in languages:
            check_locale(language)
            if language not in unique:
                unique.append(language)
        return unique

    @staticmethod
    def row_id_value(schema: TableSchema, record_id: Any) -> Any:
        if isinstance(schema.column(ROW_ID_COLUMN).type, Integer):
            return record_id
        return str(record_id)

    @staticmethod
    def _skip_reason(schema: TableSchema) -> Optional[str]:
        if not schema.has_tracking_columns:
            return TRACKING_MISSING
        if schema.pk_column is None:
            return COMPOSITE_KEY
        return None
