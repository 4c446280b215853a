"""CLI for calflow — initialize the store, apply actions, inspect work orders."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path


def _service():
    from calflow.config import get_settings
    from calflow.db.directory import SqlDirectory
    from calflow.db.engine import async_session_factory
    from calflow.db.repository import SqlAssignmentRequestStore, SqlRecordRepository
    from calflow.services.documents import DocumentFetcher
    from calflow.services.workflow import WorkOrderService

    settings = get_settings()
    return WorkOrderService(
        SqlRecordRepository(async_session_factory),
        directory=SqlDirectory(async_session_factory),
        requests=SqlAssignmentRequestStore(async_session_factory),
        fetcher=DocumentFetcher() if settings.documents.fetch_enabled else None,
        settings=settings,
    )


async def cmd_init_db(args):
    """Create all tables."""
    from calflow.db.engine import init_db

    await init_db()
    print("Database initialized.")


async def cmd_apply(args):
    """Run one action against the store and print the result."""
    if args.file:
        payload = json.loads(Path(args.file).read_text())
    else:
        payload = json.loads(args.data or "{}")
    if not isinstance(payload, dict):
        print("Payload must be a JSON object")
        sys.exit(1)

    result = await _service().dispatch(args.action, payload)
    print(json.dumps(result.summary(), indent=2, default=str))
    if not result.success:
        sys.exit(2)


async def cmd_show(args):
    """Print one work order with its flow history."""
    result = await _service().lookup({"reference_number": args.reference, "vin": args.vin})
    if not result.success:
        print(f"{result.error.kind}: {result.error.message}")
        sys.exit(2)

    record = result.record
    for key, value in record.summary().items():
        print(f"{key:>22}: {value}")
    print(f"{'dtc_codes':>22}: {record.dtc_codes}")
    print(f"{'short_notes':>22}: {record.short_notes}")
    print("\nFlow history:")
    for line in record.flow_history.split("\n"):
        if line.strip():
            print(f"  {line}")


async def cmd_list(args):
    """List recent work orders."""
    from calflow.db import crud
    from calflow.db.engine import async_session_factory
    from calflow.schemas.work_order import WorkOrderRecord

    async with async_session_factory() as db:
        rows = await crud.list_work_orders(db, status=args.status, technician=args.technician, limit=args.limit)
    for row in rows:
        rec = WorkOrderRecord.model_validate(row)
        print(f"{rec.reference_number:<16} {rec.vin:<18} {rec.status.value:<12} {rec.technician:<12} {rec.shop_name}")
    print(f"\n{len(rows)} work order(s)")


async def cmd_requests(args):
    """List technician assignment requests."""
    from calflow.db import crud
    from calflow.db.engine import async_session_factory
    from calflow.schemas.assignment import AssignmentRequestRecord

    async with async_session_factory() as db:
        rows = await crud.list_assignment_requests(db, status=args.status)
    for row in rows:
        req = AssignmentRequestRecord.model_validate(row)
        print(f"{req.id}  {req.status:<9} {req.requesting_tech:<12} (from {req.current_tech or '-'}) {req.reason}")
    print(f"\n{len(rows)} request(s)")


def main():
    parser = argparse.ArgumentParser(description="calflow CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    # init-db
    subparsers.add_parser("init-db", help="Create database tables")

    # apply
    ap = subparsers.add_parser("apply", help="Apply an action payload")
    ap.add_argument("action", help="Action name, e.g. shop_submit, ingest_report, tech_complete_job")
    ap.add_argument("--data", default="", help="JSON payload")
    ap.add_argument("--file", default="", help="Path to a JSON payload file")

    # show
    sh = subparsers.add_parser("show", help="Show one work order")
    sh.add_argument("reference", nargs="?", default="", help="RO/PO reference number")
    sh.add_argument("--vin", default="", help="Look up by VIN instead")

    # list
    ls = subparsers.add_parser("list", help="List recent work orders")
    ls.add_argument("--status", default=None, help="Filter by status")
    ls.add_argument("--technician", default=None, help="Filter by technician")
    ls.add_argument("--limit", type=int, default=50)

    # requests
    rq = subparsers.add_parser("requests", help="List assignment requests")
    rq.add_argument("--status", default="Pending", help="Pending, Approved or Denied")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "init-db":
        asyncio.run(cmd_init_db(args))
    elif args.command == "apply":
        asyncio.run(cmd_apply(args))
    elif args.command == "show":
        asyncio.run(cmd_show(args))
    elif args.command == "list":
        asyncio.run(cmd_list(args))
    elif args.command == "requests":
        asyncio.run(cmd_requests(args))


if __name__ == "__main__":
    main()
