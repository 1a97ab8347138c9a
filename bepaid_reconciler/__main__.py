"""
Command-line entry point.

    python -m bepaid_reconciler import export.xlsx --dry-run
    python -m bepaid_reconciler discrepancies --from 2026-01-01 --to 2026-01-31
    python -m bepaid_reconciler unlinked --last4 1234 --brand visa
    python -m bepaid_reconciler autolink --profile <id> --last4 1234 --brand visa
    python -m bepaid_reconciler purge --from 2026-01-01 --execute

Results are printed as JSON; --output also writes them to a file.
Every bulk write is a dry run unless --execute is given (imports run
unless --dry-run is given).
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, Optional

import structlog

from bepaid_reconciler.config import get_settings
from bepaid_reconciler.models.reports import AutolinkRequest, PurgeRequest
from bepaid_reconciler.orchestrator import AppComponents, create_app_components
from bepaid_reconciler.validation import TransactionValidator


logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bepaid_reconciler",
        description="Reconcile bePaid exports with the payments database",
    )
    parser.add_argument("--output", type=Path, help="Also write the JSON result to this file")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import", help="Import a CSV/XLSX export")
    p.add_argument("file", type=Path)
    p.add_argument("--include-conflicts", action="store_true", help="Also import conflicting records")
    p.add_argument("--skip-updates", action="store_true", help="Do not apply contact updates")
    p.add_argument("--no-orders", action="store_true", help="Do not create orders from product mappings")
    p.add_argument("--ghosts", action="store_true", help="Create ghost profiles for unmatched payers")
    p.add_argument("--dry-run", action="store_true", help="Classify only, write nothing")

    p = sub.add_parser("discrepancies", help="Compare file imports with orders")
    p.add_argument("--from", dest="date_from", type=date.fromisoformat, required=True)
    p.add_argument("--to", dest="date_to", type=date.fromisoformat, required=True)
    p.add_argument("--only-discrepancies", action="store_true")

    p = sub.add_parser("unlinked", help="Unlinked payments grouped by card")
    p.add_argument("--last4", help="Show the rows of one card")
    p.add_argument("--brand")

    p = sub.add_parser("autolink", help="Link a card's historical payments to a contact")
    p.add_argument("--profile", required=True)
    p.add_argument("--last4", required=True)
    p.add_argument("--brand", required=True)
    p.add_argument("--user-id")
    p.add_argument("--token", help="Provider payment token")
    p.add_argument("--limit", type=int)
    p.add_argument("--unsafe-allow-large", action="store_true")
    p.add_argument("--execute", action="store_true", help="Write the links (default: dry run)")

    p = sub.add_parser("purge", help="Soft-cancel stale file imports")
    p.add_argument("--from", dest="date_from", type=date.fromisoformat)
    p.add_argument("--to", dest="date_to", type=date.fromisoformat)
    p.add_argument("--status", dest="statuses", action="append", help="Repeatable; default pending/error/processing")
    p.add_argument("--limit", type=int)
    p.add_argument("--batch-size", type=int)
    p.add_argument("--execute", action="store_true", help="Cancel the rows (default: dry run)")

    return parser


async def run_command(args: argparse.Namespace, components: AppComponents) -> dict[str, Any]:
    """Run one subcommand and return its JSON-ready result."""
    if args.command == "import":
        flow = components.import_flow
        report, validation = await flow.analyze(args.file)
        result: dict[str, Any] = {
            "classification": report.counts(),
            "validation": TransactionValidator().get_summary(validation),
            "issues": [i.model_dump(mode="json") for i in validation.issues],
        }
        if not args.dry_run:
            summary = await flow.execute(
                report,
                include_updates=not args.skip_updates,
                include_conflicts=args.include_conflicts,
                auto_create_orders=False if args.no_orders else None,
                create_ghost_profiles=True if args.ghosts else None,
            )
            result["import"] = summary.counts()
            result["errors"] = summary.error_details
        return result

    if args.command == "discrepancies":
        report = await components.discrepancies.analyze(args.date_from, args.date_to)
        data = report.model_dump(mode="json")
        if args.only_discrepancies:
            data["items"] = [i.model_dump(mode="json") for i in report.discrepancies_only()]
        return data

    if args.command == "unlinked":
        if args.last4:
            details = await components.unlinked.details(args.last4, args.brand)
            return details.model_dump(mode="json")
        return (await components.unlinked.aggregates()).model_dump(mode="json")

    if args.command == "autolink":
        result = await components.autolinker.run(AutolinkRequest(
            profile_id=args.profile,
            card_last4=args.last4,
            card_brand=args.brand,
            user_id=args.user_id,
            provider_token=args.token,
            dry_run=not args.execute,
            limit=args.limit,
            unsafe_allow_large=args.unsafe_allow_large,
        ))
        return result.model_dump(mode="json")

    if args.command == "purge":
        request = PurgeRequest(
            date_from=args.date_from,
            date_to=args.date_to,
            dry_run=not args.execute,
            limit=args.limit,
            batch_size=args.batch_size,
        )
        if args.statuses:
            request.statuses = args.statuses
        return (await components.purger.run(request)).model_dump(mode="json")

    raise ValueError(f"Unknown command: {args.command}")


def emit(result: dict[str, Any], output: Optional[Path]) -> None:
    text = json.dumps(result, indent=2, ensure_ascii=False)
    print(text)
    if output:
        output.write_text(text, encoding="utf-8")
        print(f"\nResults written to {output}", file=sys.stderr)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "unlinked" and bool(args.last4) != bool(args.brand):
        parser.error("--last4 and --brand must be given together")

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=get_settings().app.log_level,
    )

    try:
        components = create_app_components()
        result = asyncio.run(run_command(args, components))
    except Exception as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    emit(result, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
