from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any

from anisync.api.runtime_deps import build_ingestion_service
from anisync.db.session import close_engine, get_session_factory, init_schema
from anisync.errors import ConfigurationError
from anisync.logging_config import configure_logging, parse_redact_fields
from anisync.services.ingestion.types import RunAlreadyInProgressError
from anisync.services.stats import get_ingestion_stats
from anisync.settings import settings


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="anisync", description="Catalog metadata ingestion.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the catalog tables if they do not exist.")

    run_parser = subparsers.add_parser("run", help="Run one ingestion pass in the foreground.")
    run_parser.add_argument(
        "--start-id",
        type=_positive_int,
        default=None,
        help="First catalog ID to visit. Defaults to one past the highest stored ID.",
    )
    run_parser.add_argument(
        "--limit",
        type=_positive_int,
        default=None,
        help="Stop after this many successful inserts.",
    )

    subparsers.add_parser("stats", help="Print catalog and failure ledger counts.")
    return parser


async def _init_db() -> dict[str, Any]:
    try:
        await init_schema()
    finally:
        await close_engine()
    return {"status": "ok"}


async def _run(*, start_id: int | None, limit: int | None) -> dict[str, Any]:
    try:
        service = build_ingestion_service()
        summary = await service.run(start_id=start_id, limit=limit)
    finally:
        await close_engine()
    return {"status": "ok", "summary": summary.as_dict()}


async def _stats() -> dict[str, Any]:
    try:
        session_factory = get_session_factory()
        async with session_factory() as db_session:
            stats = await get_ingestion_stats(
                db_session,
                max_failure_attempts=settings.ingestion_max_failure_attempts,
            )
    finally:
        await close_engine()
    return {"status": "ok", "stats": stats.as_dict()}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(
        level=settings.log_level,
        log_format=settings.log_format,
        redact_fields=parse_redact_fields(settings.log_redact_fields),
    )

    try:
        if args.command == "init-db":
            result = asyncio.run(_init_db())
        elif args.command == "run":
            result = asyncio.run(_run(start_id=args.start_id, limit=args.limit))
        else:
            result = asyncio.run(_stats())
    except ConfigurationError as exc:
        print(json.dumps({"status": "failed", "error": str(exc)}, indent=2))
        return 2
    except RunAlreadyInProgressError as exc:
        print(json.dumps({"status": "failed", "error": str(exc)}, indent=2))
        return 3

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
