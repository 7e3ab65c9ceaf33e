"""
Structured log events for replication and reconciliation.

Errors and metrics are written as single log lines keyed by table (and
record where there is one), so sweeps and workers can be followed per
table in any log collector.
"""
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import logging
import time
from functools import wraps

logger = logging.getLogger(__name__)


def _event(kind: str, name: str, table: Optional[str], **fields) -> Dict[str, Any]:
    return {
        kind: name,
        "table": table,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **fields,
    }


def track_error(
    error_type: str,
    table: Optional[str] = None,
    record_id: Optional[Any] = None,
    metadata: Optional[Dict[str, Any]] = None
):
    """
    Log a failed replication step.

    Args:
        error_type: Dotted event name, e.g. 'replication.insert_failed'
        table: Table being processed
        record_id: Primary key of the affected record
        metadata: Language, error text and similar details
    """
    event = _event("error_type", error_type, table, record_id=record_id, metadata=metadata or {})
    logger.error(f"Error tracked: {event}")


def track_metric(
    metric_name: str,
    value: float,
    table: Optional[str] = None,
    tags: Optional[Dict[str, str]] = None
):
    """Log a numeric measurement (rows created, sweep duration) for a table."""
    event = _event("metric", metric_name, table, value=value, tags=tags or {})
    logger.info(f"Metric: {event}")


def monitor_performance(func):
    """
    Time a table-level service method.

    The decorated method takes the table name as its first argument after
    self; it is attached to the duration metric and to the error event.

    Usage:
        @monitor_performance
        def reconcile(self, table, languages=None):
            ...
    """
    metric_name = f"{func.__name__}.duration"

    @wraps(func)
    def wrapper(self, table, *args, **kwargs):
        start_time = time.monotonic()
        try:
            result = func(self, table, *args, **kwargs)
        except Exception as e:
            duration = time.monotonic() - start_time
            track_error(
                f"{func.__name__}.error",
                table=table,
                metadata={"error": str(e), "duration": duration}
            )
            track_metric(metric_name, duration, table=table, tags={"status": "error"})
            raise

        track_metric(metric_name, time.monotonic() - start_time, table=table, tags={"status": "success"})
        return result

    return wrapper
