"""Command-line entry for parish_calendar.

Subcommands:
  serve        run the JSON API (default)
  expand       print occurrences for a date range
  context      print the assistant's upcoming-events context
  export-ics   write occurrences for a date range as iCalendar
  sync         pull every collection from the spreadsheet web app
  check-sheets test the spreadsheet web app connection
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import date
from typing import Optional

from . import _init_logging, run_server

logger = logging.getLogger(__name__)


def _date_arg(value: str) -> date:
    from .core.datetime_utils import parse_local_date

    parsed = parse_local_date(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"invalid date {value!r} (expected YYYY-MM-DD)")
    return parsed


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the parish_calendar CLI."""
    parser = argparse.ArgumentParser(
        prog="parish-calendar",
        description="East Hillfoots parish calendar service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  parish-calendar serve --port 3000
  parish-calendar expand 2024-03-01 2024-03-31 --locations Dollar
  parish-calendar export-ics 2024-03-01 2024-03-31 -o march.ics
        """,
    )
    parser.add_argument("--config", metavar="PATH", help="YAML config file")

    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="run the JSON API")
    serve.add_argument("--port", type=int, metavar="PORT", help="port (default from config)")
    serve.add_argument("--host", metavar="HOST", help="bind address (default from config)")

    expand = sub.add_parser("expand", help="print occurrences for a date range")
    expand.add_argument("start", type=_date_arg)
    expand.add_argument("end", type=_date_arg)
    expand.add_argument("--locations", help="comma-separated churches (Dollar,Muckhart)")
    expand.add_argument("--json", action="store_true", help="print JSON instead of text")

    context = sub.add_parser("context", help="print the assistant's events context")
    context.add_argument("--today", type=_date_arg, help="override today's date")

    export = sub.add_parser("export-ics", help="export occurrences as iCalendar")
    export.add_argument("start", type=_date_arg)
    export.add_argument("end", type=_date_arg)
    export.add_argument("-o", "--output", metavar="FILE", help="output file (default stdout)")

    sub.add_parser("sync", help="pull all collections from the spreadsheet")
    sub.add_parser("check-sheets", help="test the spreadsheet web app connection")

    return parser


def _build_service(config_path: Optional[str]):
    from .api.server import build_service
    from .config_loader import load_config

    config = load_config(config_path)
    return config, build_service(config)


async def _run_async(coro):
    from .core.http_client import close_all_clients

    try:
        return await coro
    finally:
        await close_all_clients()


def _cmd_expand(args: argparse.Namespace) -> int:
    from .api.routes import parse_locations
    from .domain.chat_context import format_occurrence_line

    _config, service = _build_service(args.config)
    occurrences = service.occurrences(args.start, args.end, parse_locations(args.locations))
    if args.json:
        print(json.dumps([o.to_record() for o in occurrences], indent=2))
    else:
        for occurrence in occurrences:
            print(format_occurrence_line(occurrence))
    return 0


def _cmd_context(args: argparse.Namespace) -> int:
    _config, service = _build_service(args.config)
    print(service.chat_context(args.today))
    return 0


def _cmd_export(args: argparse.Namespace) -> int:
    from .calendar.exporters import occurrences_to_ics

    config, service = _build_service(args.config)
    body = occurrences_to_ics(service.occurrences(args.start, args.end), config.timezone)
    if args.output:
        with open(args.output, "wb") as fh:
            fh.write(body)
        logger.info("Wrote %s", args.output)
    else:
        sys.stdout.write(body.decode("utf-8"))
    return 0


def _cmd_sync(args: argparse.Namespace) -> int:
    _config, service = _build_service(args.config)
    counts = asyncio.run(_run_async(service.sync_all_from_cloud()))
    print(json.dumps(counts, indent=2))
    return 0


def _cmd_check_sheets(args: argparse.Namespace) -> int:
    _config, service = _build_service(args.config)
    if service.sheets is None or not service.sheets.configured:
        print("No spreadsheet web app configured")
        return 1
    result = asyncio.run(_run_async(service.sheets.test_connection()))
    print(f"[{result.timestamp}] {result.message}")
    return 0 if result.success else 1


COMMANDS = {
    "expand": _cmd_expand,
    "context": _cmd_context,
    "export-ics": _cmd_export,
    "sync": _cmd_sync,
    "check-sheets": _cmd_check_sheets,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Run the parish_calendar CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    if args.command in (None, "serve"):
        run_server(args)
        return 0

    _init_logging(os.environ.get("PARISH_LOG_LEVEL", "WARNING"))
    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
