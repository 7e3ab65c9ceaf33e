"""
Schemas for multi-language replication: table descriptors, events,
queued tasks and operation reports.
"""
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field
from sqlalchemy import Table

ROW_ID_COLUMN = "row_id"
ISO_COLUMN = "iso"
TRACKING_COLUMNS = (ROW_ID_COLUMN, ISO_COLUMN)


@dataclass(frozen=True)
class UniqueIndexDescriptor:
    """A non-primary unique index or constraint, columns in index order."""
    name: Optional[str]
    columns: Tuple[str, ...]

    @property
    def includes_language(self) -> bool:
        return ISO_COLUMN in self.columns


@dataclass
class TableSchema:
    """Reflected description of a participating table, passed around as data."""
    name: str
    table: Table
    primary_key: List[str]
    columns: List[str]
    unique_indexes: List[UniqueIndexDescriptor] = field(default_factory=list)
    schema: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name

    @property
    def has_tracking_columns(self) -> bool:
        return all(column in self.columns for column in TRACKING_COLUMNS)

    @property
    def pk_column(self):
        """The single primary key column (None for composite keys)."""
        if len(self.primary_key) != 1:
            return None
        return self.table.c[self.primary_key[0]]

    def column(self, name: str):
        return self.table.c[name]


class RecordPersisted(BaseModel):
    """Event: a new canonical record was persisted."""
    table: str
    record_id: Any
    attributes: Dict[str, Any] = Field(default_factory=dict)
    locale: Optional[str] = None


class ReplicationTask(BaseModel):
    """Message handed to the worker pool: one canonical row to replicate."""
    task_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    table: str
    record_id: Any
    languages: List[str] = Field(default_factory=list)
    attempt: int = 0
    last_error: Optional[str] = None


class ReplicationFailure(BaseModel):
    """One language (or record) that could not be written."""
    language: Optional[str] = None
    reason: str
    record_id: Optional[Any] = None


class ReplicationResult(BaseModel):
    """Outcome of replicating one canonical row."""
    row_id: Optional[Any] = None
    created: List[Dict[str, Any]] = Field(default_factory=list)
    existing: List[str] = Field(default_factory=list)
    failures: List[ReplicationFailure] = Field(default_factory=list)
    skipped: bool = False
    reason: Optional[str] = None

    @property
    def created_languages(self) -> List[str]:
        return [row.get(ISO_COLUMN) for row in self.created]


class ReconcileReport(BaseModel):
    """Outcome of a reconciliation sweep over one table."""
    table: str
    languages: List[str] = Field(default_factory=list)
    created: int = 0
    groups: int = 0
    assigned: int = 0
    failures: List[ReplicationFailure] = Field(default_factory=list)
    skipped: bool = False
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.failures


class ProvisionReport(BaseModel):
    """Outcome of adding or removing tracking columns on one table."""
    table: str
    action: str  # migrate | rollback
    added: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)
    ok: bool = True
    error: Optional[str] = None


class TranslationStats(BaseModel):
    """Row counts for one table."""
    table: str
    total_records: int = 0
    unique_records: int = 0
    languages: Dict[str, int] = Field(default_factory=dict)
    coverage: float = 0.0
    tracked: bool = True


class CopyRequest(BaseModel):
    """Schema for copying a record into another language"""
    target_language: str
    overrides: Dict[str, Any] = Field(default_factory=dict)


class CreateGroupRequest(BaseModel):
    """Schema for creating a record in several languages"""
    attributes: Dict[str, Any]
    languages: Optional[List[str]] = None
    overrides: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
