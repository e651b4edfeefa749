"""Command-line firearm status check against a running gateway.

Usage:
    fsenquiry-check REF123
    fsenquiry-check REF123 --serial SER456 --json
    fsenquiry-check --clear-cache

With no reference, the last query (if any) is repeated. Exit status is 0 only
when records were found.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from typing import Optional, Sequence

from fsenquiry.client.api import DEFAULT_GATEWAY_URL, EnquiryClient, EnquiryResult
from fsenquiry.client.cache import ResultCache

GATEWAY_URL_ENV = "FSENQUIRY_GATEWAY_URL"
STATE_DIR_ENV = "FSENQUIRY_STATE_DIR"

EXIT_OK = 0
EXIT_NO_RESULTS = 1
EXIT_USAGE = 2

# (header, FirearmRecord attribute)
_COLUMNS = (
    ("Application", "application_type"),
    ("Number", "application_number"),
    ("Calibre", "calibre"),
    ("Make", "make"),
    ("Serial", "serial_number"),
    ("Date", "status_date"),
    ("Status", "status"),
    ("Description", "status_description"),
    ("Next step", "next_step"),
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fsenquiry-check",
        description="Check the status of a SAPS firearm licence application",
    )
    parser.add_argument("reference", nargs="?", help="Firearm application reference number")
    parser.add_argument("--serial", default="", help="Firearm serial number (optional)")
    parser.add_argument(
        "--gateway",
        default=os.getenv(GATEWAY_URL_ENV, DEFAULT_GATEWAY_URL),
        help=f"Gateway base URL (default: ${GATEWAY_URL_ENV} or {DEFAULT_GATEWAY_URL})",
    )
    parser.add_argument("--no-cache", action="store_true", help="Skip cached results (the query is still remembered)")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("--clear-cache", action="store_true", help="Delete cached results and exit")
    return parser


def render_table(result: EnquiryResult) -> str:
    rows = [[header for header, _ in _COLUMNS]]
    rows += [[getattr(record, attr) for _, attr in _COLUMNS] for record in result.records]
    widths = [max(len(row[i]) for row in rows) for i in range(len(_COLUMNS))]

    lines = ["  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip() for row in rows]
    lines.insert(1, "  ".join("-" * width for width in widths))
    footer = f"{len(result.records)} record(s), fetched {result.fetched_at}"
    if result.from_cache:
        footer += " (cached)"
    return "\n".join(lines + ["", footer])


def render(result: EnquiryResult, as_json: bool) -> str:
    if as_json:
        return json.dumps(result.to_dict(), indent=2)
    if result.ok:
        return render_table(result)
    return result.message or result.state.value


async def _run(args: argparse.Namespace, cache: ResultCache) -> EnquiryResult:
    async with EnquiryClient(args.gateway, cache=cache, use_cache=not args.no_cache) as client:
        return await client.enquire(args.reference, args.serial)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    cache = ResultCache(os.getenv(STATE_DIR_ENV) or None)

    if args.clear_cache:
        cache.clear_all()
        print("Cache cleared")
        if not args.reference:
            return EXIT_OK

    if not args.reference:
        last = cache.get_last_query()
        if last is None:
            parser.print_usage(sys.stderr)
            print("fsenquiry-check: error: a reference number is required", file=sys.stderr)
            return EXIT_USAGE
        args.reference = last["fsref"]
        args.serial = args.serial or last["fserial"]

    result = asyncio.run(_run(args, cache))
    print(render(result, args.json))
    return EXIT_OK if result.ok else EXIT_NO_RESULTS


if __name__ == "__main__":
    sys.exit(main())
