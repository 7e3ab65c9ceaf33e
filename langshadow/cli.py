"""
Command line interface.

Usage:
    langshadow migrate [--table products] [--rollback]
    langshadow generate [products] [fr]
    langshadow worker [--concurrency 4]
    langshadow serve [--host 0.0.0.0] [--port 8000]

Exit status is 0 when every table and record succeeded, 1 otherwise.
"""
import argparse
import logging
import signal
import sys
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from langshadow.core.exceptions import ConfigurationError
from langshadow.core.logging_config import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="langshadow",
        description="Multi-language shadow rows for relational tables"
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    migrate = subparsers.add_parser("migrate", help="Add (or remove) the row_id/iso columns")
    migrate.add_argument("--table", help="Only this table (default: every registered table)")
    migrate.add_argument(
        "--rollback",
        action="store_true",
        help="Drop the tracking columns instead (destructive, no backup)"
    )

    generate = subparsers.add_parser("generate", help="Create missing language rows")
    generate.add_argument("model", nargs="?", help="Table to sweep (default: every registered table)")
    generate.add_argument("locale", nargs="?", help="Only create rows for this language")

    worker = subparsers.add_parser("worker", help="Consume the replication task queue")
    worker.add_argument("--concurrency", type=int, help="Worker threads (default: WORKER_CONCURRENCY)")

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    return parser


def build_service(settings):
    """MultiLangService wired from settings."""
    from langshadow.core.database import create_db_engine
    from langshadow.services.multilang_service import MultiLangService

    return MultiLangService(
        create_db_engine(settings.DATABASE_URL),
        settings.multilang_config(),
        batch_size=settings.RECONCILE_BATCH_SIZE,
    )


def run_migrate(service, table: Optional[str], rollback: bool) -> int:
    reports = service.rollback(table) if rollback else service.migrate(table)
    if not reports:
        print("No tables registered. Set TABLES or pass --table.")
        return 1

    failed = 0
    for report in reports:
        if not report.ok:
            failed += 1
            print(f"❌ {report.table}: {report.error}")
        elif rollback:
            removed = ", ".join(report.removed) or "nothing to remove"
            print(f"✅ {report.table}: {removed}")
        else:
            added = ", ".join(report.added) or "already provisioned"
            print(f"✅ {report.table}: {added}")

    print(f"{len(reports) - failed} succeeded, {failed} failed")
    return 1 if failed else 0


def run_generate(service, table: Optional[str], locale: Optional[str]) -> int:
    reports = service.generate(table, locale)
    if not reports:
        print("No tables registered. Set TABLES or pass a table name.")
        return 1

    failed = 0
    for report in reports:
        if report.skipped:
            print(f"⏭️  {report.table}: skipped ({report.reason})")
            continue
        print(f"✅ {report.created} translations have been generated for {report.table}")
        for failure in report.failures:
            failed += 1
            target = f" #{failure.record_id}" if failure.record_id is not None else ""
            language = f" [{failure.language}]" if failure.language else ""
            print(f"❌ {report.table}{target}{language}: {failure.reason}")

    return 1 if failed else 0


def run_worker(settings, concurrency: Optional[int]) -> int:
    from langshadow.core.database import create_db_engine
    from langshadow.core.redis import get_redis_client
    from langshadow.services.creation_hook import ReplicationTaskHandler
    from langshadow.services.task_queue import RedisTaskQueue, ReplicationWorker

    queue = RedisTaskQueue(get_redis_client(), settings.TASK_QUEUE_NAME, settings.TASK_MAX_TRIES)
    handler = ReplicationTaskHandler(create_db_engine(settings.DATABASE_URL), settings.multilang_config())
    worker = ReplicationWorker(queue, handler, concurrency=concurrency or settings.WORKER_CONCURRENCY)

    def _shutdown(signum, frame):
        logger.info(f"Received signal {signum}, stopping worker")
        worker.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    worker.run()
    return 0


def run_serve(host: str, port: int) -> int:
    import uvicorn

    uvicorn.run("langshadow.main:app", host=host, port=port)
    return 0


def main(argv: Optional[List[str]] = None, service=None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    from langshadow.core.config import settings

    try:
        if args.command == "serve":
            return run_serve(args.host, args.port)
        if args.command == "worker":
            return run_worker(settings, args.concurrency)

        service = service or build_service(settings)
        if args.command == "migrate":
            return run_migrate(service, args.table, args.rollback)
        return run_generate(service, args.model, args.locale)
    except (ConfigurationError, ValidationError) as e:
        print(f"❌ Configuration error: {e}")
        return 1
    except SQLAlchemyError as e:
        logger.error(f"Database error: {e}")
        print(f"❌ Database error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
