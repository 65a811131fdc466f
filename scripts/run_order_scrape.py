"""
Run an order history scrape from the CLI and print the results as JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date
from typing import Any

from orderhistory.logging_utils import configure_logging
from orderhistory.schemas.messages import ClearCache, ScrapeRange, ScrapeTransactions, ScrapeYears
from orderhistory.services.order_history_service import OrderHistoryService

SIGNIN_POLL_SECONDS = 0.5
EXIT_SIGNIN_REQUIRED = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scrape Amazon order history.")
    commands = parser.add_subparsers(dest="command", required=True)

    years = commands.add_parser("years", help="Scrape every order of the given years.")
    years.add_argument("years", nargs="+", type=int)

    date_range = commands.add_parser("range", help="Scrape orders placed between two dates.")
    date_range.add_argument("start_date", type=date.fromisoformat)
    date_range.add_argument("end_date", type=date.fromisoformat)

    commands.add_parser("transactions", help="Scrape the card transactions feed.")
    commands.add_parser("periods", help="List the periods the order history offers.")
    commands.add_parser("clear-cache", help="Drop every cached page and transaction.")
    return parser


async def _run(args: argparse.Namespace) -> int:
    service = OrderHistoryService()
    session = service.session
    try:
        if args.command == "clear-cache":
            session.handle(ClearCache())
            print(json.dumps({"cleared": True}))
            return 0
        if args.command == "periods":
            print(json.dumps({"periods": await session.advertise_periods()}))
            return 0

        if args.command == "years":
            message: Any = ScrapeYears(years=args.years)
        elif args.command == "range":
            message = ScrapeRange(start_date=args.start_date, end_date=args.end_date)
        else:
            message = ScrapeTransactions()

        task = session.handle(message)
        signin_required = False
        while not task.done():
            await asyncio.wait({task}, timeout=SIGNIN_POLL_SECONDS)
            if session.signin_required:
                signin_required = True
                session.abort()
        results = task.result()

        if signin_required:
            print(
                "Sign-in required: export fresh cookies and set ORDER_SCRAPE_COOKIES_PATH.",
                file=sys.stderr,
            )
            return EXIT_SIGNIN_REQUIRED

        print(
            json.dumps(
                {
                    "purpose": session.purpose,
                    "statistics": session.statistics.snapshot(),
                    "results": [result.to_dict() for result in results],
                },
                indent=2,
            )
        )
        return 0
    finally:
        await service.close()


def main() -> int:
    configure_logging()
    args = _build_parser().parse_args()
    return asyncio.run(_run(args))


if __name__ == "__main__":
    raise SystemExit(main())
