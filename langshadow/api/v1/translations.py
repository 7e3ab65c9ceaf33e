"""
Translation Endpoints
Inspect and repair translation groups of registered tables
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.engine import Engine

from langshadow.core.config import settings
from langshadow.core.database import get_engine
from langshadow.schemas.multilang import (
    CopyRequest,
    CreateGroupRequest,
    ProvisionReport,
    ReconcileReport,
    ReplicationResult,
    TranslationStats,
)
from langshadow.services.constraint_inspector import ConstraintInspector
from langshadow.services.multilang_service import MultiLangService

router = APIRouter()

# Shared so table descriptors stay cached across requests
_inspector = ConstraintInspector()


def get_multilang_service(db_engine: Engine = Depends(get_engine)) -> MultiLangService:
    """Dependency returning an unbound MultiLangService."""
    return MultiLangService(
        db_engine,
        settings.multilang_config(),
        inspector=_inspector,
        batch_size=settings.RECONCILE_BATCH_SIZE,
    )


def _coerce_id(value: str) -> Any:
    """Path ids arrive as strings; integer keys are compared as integers."""
    return int(value) if value.isdigit() else value


@router.get("/{table}/coverage")
async def get_coverage(
    table: str,
    service: MultiLangService = Depends(get_multilang_service)
):
    """
    Translation coverage of a table.

    Returns:
        Ratio between 0 and 1 of group/language slots that hold a row
    """
    return {"table": table, "coverage": service.for_table(table).get_coverage()}


@router.get("/{table}/stats", response_model=TranslationStats)
async def get_stats(
    table: str,
    service: MultiLangService = Depends(get_multilang_service)
):
    """Row counts per configured language."""
    return service.for_table(table).get_stats()


@router.get("/{table}/incomplete")
async def get_incomplete(
    table: str,
    service: MultiLangService = Depends(get_multilang_service)
):
    """Groups missing at least one configured language."""
    bound = service.for_table(table)
    return {
        "table": table,
        "groups": service.consistency.incomplete_groups(table),
        "records": bound.get_incomplete_translations(),
    }


@router.get("/{table}/records/{record_id}/translations")
async def get_translations(
    table: str,
    record_id: str,
    service: MultiLangService = Depends(get_multilang_service)
) -> List[Dict[str, Any]]:
    """Every row in the group of a record."""
    return service.for_table(table).get_all_translations(_coerce_id(record_id))


@router.get("/{table}/groups/{row_id}")
async def find_in_language(
    table: str,
    row_id: str,
    iso: Optional[str] = None,
    service: MultiLangService = Depends(get_multilang_service)
):
    """Row of a group in one language (fallback language when iso is omitted)."""
    row = service.for_table(table).find(_coerce_id(row_id), iso)
    if row is None:
        raise HTTPException(status_code=404, detail="Translation not found")
    return row


@router.post("/{table}/groups", response_model=ReplicationResult, status_code=201)
async def create_group(
    table: str,
    request: CreateGroupRequest,
    service: MultiLangService = Depends(get_multilang_service)
):
    """Create a record in several languages at once."""
    result = service.for_table(table).create_multi_language(
        request.attributes, request.languages, request.overrides
    )
    if result.skipped:
        raise HTTPException(status_code=409, detail=result.reason)
    return result


@router.post("/{table}/records/{record_id}/copy", status_code=201)
async def copy_to_language(
    table: str,
    record_id: str,
    request: CopyRequest,
    service: MultiLangService = Depends(get_multilang_service)
):
    """Copy a record into another language of its group."""
    created = service.for_table(table).copy_to_language(
        _coerce_id(record_id), request.target_language, request.overrides
    )
    if created is None:
        raise HTTPException(
            status_code=409,
            detail=f"Record not found or already translated to {request.target_language}"
        )
    return created


@router.delete("/{table}/records/{record_id}/translations")
async def delete_translations(
    table: str,
    record_id: str,
    service: MultiLangService = Depends(get_multilang_service)
):
    """Delete every row in the group of a record."""
    deleted = service.for_table(table).delete_all_translations(_coerce_id(record_id))
    return {"table": table, "deleted": deleted}


@router.post("/{table}/generate", response_model=ReconcileReport)
async def generate(
    table: str,
    locale: Optional[str] = None,
    service: MultiLangService = Depends(get_multilang_service)
):
    """Run the reconciler over one table."""
    languages = [locale] if locale else None
    return service.for_table(table).reconciler.reconcile(table, languages)


@router.post("/{table}/migrate", response_model=ProvisionReport)
async def migrate(
    table: str,
    rollback: bool = False,
    service: MultiLangService = Depends(get_multilang_service)
):
    """Add (or with rollback=true remove) the tracking columns."""
    bound = service.for_table(table)
    reports = bound.rollback() if rollback else bound.migrate()
    return reports[0]
