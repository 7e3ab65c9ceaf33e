"""
Creation Hook - reacts to "a new canonical record was persisted".

The hook back-fills row_id on the new record and hands a ReplicationTask to
a dispatcher (Redis queue or inline). It can be called directly with a
RecordPersisted event, or attached to SQLAlchemy ORM models so it runs on
every insert and dispatches after the session commits.
"""
import logging
from typing import Any, Callable, Optional, Protocol

import redis
from sqlalchemy import event, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, object_session
from sqlalchemy.orm.attributes import set_committed_value

from langshadow.core.config import MultiLangConfig, check_locale
from langshadow.core.exceptions import MultiLangError
from langshadow.core.monitoring import track_error
from langshadow.schemas.multilang import (
    ISO_COLUMN,
    ROW_ID_COLUMN,
    RecordPersisted,
    ReplicationResult,
    ReplicationTask,
)
from langshadow.services.constraint_inspector import ConstraintInspector
from langshadow.services.replication_service import (
    COMPOSITE_KEY,
    TRACKING_MISSING,
    Replicator,
)

logger = logging.getLogger(__name__)

PENDING_TASKS_KEY = "langshadow_pending_tasks"


class TaskDispatcher(Protocol):
    def dispatch(self, task: ReplicationTask) -> Any:
        ...


class ReplicationTaskHandler:
    """
    Executes one ReplicationTask: reads the canonical row fresh and runs the
    Replication Engine in its own transaction. Storage errors propagate so
    the queue can retry.
    """

    def __init__(
        self,
        engine: Engine,
        config: MultiLangConfig,
        inspector: Optional[ConstraintInspector] = None,
        replicator: Optional[Replicator] = None
    ):
        self.engine = engine
        self.config = config
        self.inspector = inspector or ConstraintInspector()
        self.replicator = replicator or Replicator(config, self.inspector)

    def __call__(self, task: ReplicationTask) -> ReplicationResult:
        with self.engine.begin() as conn:
            schema = self.inspector.describe(conn, task.table)
            if not schema.has_tracking_columns:
                return ReplicationResult(skipped=True, reason=TRACKING_MISSING)
            if schema.pk_column is None:
                return ReplicationResult(skipped=True, reason=COMPOSITE_KEY)

            row = conn.execute(
                select(schema.table).where(schema.pk_column == task.record_id)
            ).mappings().first()
            if row is None:
                logger.info(f"{task.table} #{task.record_id} no longer exists, dropping task {task.task_id}")
                return ReplicationResult(skipped=True, reason="record not found")

            result = self.replicator.replicate(conn, schema, dict(row), task.languages or None)

        logger.info(
            f"Task {task.task_id}: created {len(result.created)} rows for "
            f"{task.table} group {result.row_id}"
        )
        return result


class CreationHook:
    """
    Boundary between "record persisted" and replication.

    Args:
        config: Language configuration
        dispatcher: Receives ReplicationTask messages (None disables dispatch)
        inspector: Shared ConstraintInspector
        batch_context: True when running from a CLI/batch job; replication is
            then only dispatched if observe_during_console is on
        locale_provider: Returns the locale of the current request, used for
            records created without an iso
    """

    def __init__(
        self,
        config: MultiLangConfig,
        dispatcher: Optional[TaskDispatcher] = None,
        inspector: Optional[ConstraintInspector] = None,
        batch_context: bool = False,
        locale_provider: Optional[Callable[[], Optional[str]]] = None
    ):
        self.config = config
        self.dispatcher = dispatcher
        self.inspector = inspector or ConstraintInspector()
        self.batch_context = batch_context
        self.locale_provider = locale_provider
        self._session_targets = set()

    @property
    def should_dispatch(self) -> bool:
        if not self.config.auto_generate or self.dispatcher is None:
            return False
        if self.batch_context and not self.config.observe_during_console:
            return False
        return True

    def current_locale(self, preferred: Optional[str] = None) -> str:
        """Locale for a new record: explicit, then request locale, then fallback."""
        for candidate in (preferred, self.locale_provider() if self.locale_provider else None):
            if candidate and candidate in self.config.languages:
                return check_locale(candidate)
        return self.config.fallback_language

    def handle(self, conn: Connection, persisted: RecordPersisted) -> Optional[ReplicationTask]:
        """
        Assign row_id (and iso) to a new canonical record.

        Records that already carry a row_id are derived rows and never
        trigger replication. `persisted.attributes` is updated with the
        assigned values.

        Returns:
            Task to dispatch after the transaction commits, or None
        """
        schema = self.inspector.describe(conn, persisted.table)
        if not schema.has_tracking_columns or schema.pk_column is None:
            logger.debug(f"{persisted.table} is not tracked, ignoring new record")
            return None

        attributes = persisted.attributes
        if attributes.get(ROW_ID_COLUMN) is not None:
            return None

        values = {ROW_ID_COLUMN: Replicator.row_id_value(schema, persisted.record_id)}
        if not attributes.get(ISO_COLUMN):
            values[ISO_COLUMN] = self.current_locale(persisted.locale)

        conn.execute(
            update(schema.table)
            .where(schema.pk_column == persisted.record_id)
            .values(**values)
        )
        attributes.update(values)

        if not self.should_dispatch:
            return None
        return ReplicationTask(
            table=persisted.table,
            record_id=persisted.record_id,
            languages=list(self.config.languages),
        )

    def dispatch(self, task: ReplicationTask) -> None:
        """
        Hand a task to the dispatcher. Failures are logged, not raised: the
        record is already committed and the reconciler completes the group.
        """
        try:
            self.dispatcher.dispatch(task)
        except (redis.RedisError, MultiLangError, SQLAlchemyError) as e:
            logger.error(f"Could not dispatch replication for {task.table} #{task.record_id}: {e}")
            track_error(
                "replication.dispatch_failed",
                table=task.table,
                record_id=task.record_id,
                metadata={"error": str(e)}
            )

    def record_persisted(self, engine: Engine, persisted: RecordPersisted) -> Optional[ReplicationTask]:
        """Handle an event in its own transaction, dispatching after commit."""
        with engine.begin() as conn:
            task = self.handle(conn, persisted)
        if task is not None:
            self.dispatch(task)
        return task

    # ------------------------------------------------------------------
    # SQLAlchemy ORM integration
    # ------------------------------------------------------------------

    def attach(self, model_cls, session_target: Any = Session) -> None:
        """
        Run the hook for every insert of an ORM model.

        Args:
            model_cls: Mapped class with row_id / iso attributes
            session_target: Session class or sessionmaker whose commits
                release the collected tasks
        """
        event.listen(model_cls, "before_insert", self._before_insert)
        event.listen(model_cls, "after_insert", self._after_insert)

        if session_target not in self._session_targets:
            event.listen(session_target, "after_commit", self._after_commit)
            event.listen(session_target, "after_rollback", self._after_rollback)
            self._session_targets.add(session_target)

    def _before_insert(self, mapper, connection, target) -> None:
        if hasattr(target, ISO_COLUMN) and not getattr(target, ISO_COLUMN):
            setattr(target, ISO_COLUMN, self.current_locale())

    def _after_insert(self, mapper, connection, target) -> None:
        table = mapper.local_table
        table_name = f"{table.schema}.{table.name}" if table.schema else table.name
        identity = mapper.primary_key_from_instance(target)
        if len(identity) != 1:
            return

        persisted = RecordPersisted(
            table=table_name,
            record_id=identity[0],
            attributes={attr.key: getattr(target, attr.key) for attr in mapper.column_attrs},
            locale=getattr(target, ISO_COLUMN, None),
        )
        task = self.handle(connection, persisted)

        if getattr(target, ROW_ID_COLUMN, None) is None and persisted.attributes.get(ROW_ID_COLUMN) is not None:
            set_committed_value(target, ROW_ID_COLUMN, persisted.attributes[ROW_ID_COLUMN])

        if task is not None:
            session = object_session(target)
            session.info.setdefault(PENDING_TASKS_KEY, []).append(task)

    def _after_commit(self, session) -> None:
        for task in session.info.pop(PENDING_TASKS_KEY, []):
            self.dispatch(task)

    def _after_rollback(self, session) -> None:
        dropped = session.info.pop(PENDING_TASKS_KEY, None)
        if dropped:
            logger.debug(f"Discarded {len(dropped)} replication tasks after rollback")
