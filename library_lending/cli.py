"""
cli.py

Command line front end over a CSV data directory.

Typical usage:
    library-lending seed
    library-lending books --search gatsby --available
    library-lending borrow M003 B001 --notes "for the book club"
    library-lending renew T0001 M003
    library-lending return T0001 M003 --condition FAIR
    library-lending list --user M003 --status OVERDUE
    library-lending report overdue
"""

from __future__ import annotations
import argparse
import json
import logging
import pathlib
import sys
from http import HTTPStatus
from typing import List, Optional

import pandas as pd

from . import api, reports
from .config import LendingConfig
from .engine import BorrowingEngine
from .errors import ConfigError, LendingError
from .persistence import open_library, save_library
from .seed import seed

logger = logging.getLogger("library_lending.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="library-lending",
                                     description="Library borrowing records: borrow, return, renew")
    parser.add_argument("--data-dir", help="Folder holding books.csv, members.csv and transactions.csv")
    parser.add_argument("--admin", action="store_true", help="Act with staff privileges")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("seed", help="Write sample books and members")
    p = sub.add_parser("books", help="Show or search the inventory")
    p.add_argument("--search", help="Text in title, author or ISBN")
    p.add_argument("--genre")
    p.add_argument("--author")
    shelf = p.add_mutually_exclusive_group()
    shelf.add_argument("--available", dest="available", action="store_const", const=True, default=None,
                       help="Only books with a copy on the shelf")
    shelf.add_argument("--unavailable", dest="available", action="store_const", const=False,
                       help="Only books with every copy on loan")
    p.add_argument("--sort-by", default="title")
    p.add_argument("--order", choices=["asc", "desc"], default="asc")
    p.add_argument("--page", type=int, default=1)
    p.add_argument("--limit", type=int, default=10)

    p = sub.add_parser("member", help="Activate or deactivate a member (staff only)")
    p.add_argument("action", choices=["activate", "deactivate"])
    p.add_argument("user_id")

    p = sub.add_parser("borrow", help="Borrow a book")
    p.add_argument("user_id")
    p.add_argument("book_id")
    p.add_argument("--notes")

    p = sub.add_parser("return", help="Return a borrowed book")
    p.add_argument("transaction_id")
    p.add_argument("user_id")
    p.add_argument("--condition", help="EXCELLENT, GOOD, FAIR or POOR (default GOOD)")
    p.add_argument("--notes")

    p = sub.add_parser("renew", help="Renew a loan")
    p.add_argument("transaction_id")
    p.add_argument("user_id")

    p = sub.add_parser("list", help="Borrowing history")
    p.add_argument("--user", help="Member id (required unless --admin)")
    p.add_argument("--status", choices=["BORROWED", "OVERDUE", "RETURNED"])
    p.add_argument("--sort-by", default="borrowDate")
    p.add_argument("--order", choices=["asc", "desc"], default="desc")
    p.add_argument("--page", type=int, default=1)
    p.add_argument("--limit", type=int, default=10)

    p = sub.add_parser("availability", help="Availability of one book")
    p.add_argument("book_id")

    p = sub.add_parser("borrowed", help="Current loans of a member")
    p.add_argument("user_id")

    p = sub.add_parser("report", help="Tabular reports")
    p.add_argument("kind", choices=["books", "members", "overdue"])
    return parser


def _print_response(status: HTTPStatus, body: dict) -> int:
    print(body.get("message", ""))
    if body.get("data") is not None:
        print(json.dumps(body["data"], indent=2, default=str))
    return 0 if status < 400 else 1


def _print_frame(df: pd.DataFrame) -> int:
    if df.empty:
        print("(no rows)")
    else:
        print(df.to_string(index=False))
    return 0


def run(args: argparse.Namespace, config: LendingConfig) -> int:
    data_dir = pathlib.Path(args.data_dir) if args.data_dir else config.data_dir

    if args.command == "seed":
        seed(data_dir)
        print(f"Seeded sample data into {data_dir.resolve()}")
        return 0

    ledger, members, store = open_library(data_dir)
    engine = BorrowingEngine(ledger, members, store, config=config)

    if args.command == "books":
        return _print_response(*api.search_books(engine, {
            "search": args.search, "genre": args.genre, "author": args.author,
            "available": args.available, "sortBy": args.sort_by, "sortOrder": args.order,
            "page": args.page, "limit": args.limit,
        }))
    if args.command == "member":
        if not args.admin:
            print("member requires --admin")
            return 2
        if not members.set_active(args.user_id, args.action == "activate"):
            print(f"Member not found: {args.user_id}")
            return 1
        save_library(data_dir, ledger, members)
        print(f"Member {args.user_id} {args.action}d")
        return 0
    if args.command == "report":
        if args.kind == "books":
            return _print_frame(reports.books_report(ledger))
        if args.kind == "members":
            return _print_frame(reports.members_report(members, store, engine.policy))
        return _print_frame(reports.overdue_report(store, engine.clock(), config))
    if args.command == "availability":
        return _print_response(*api.book_availability(engine, args.book_id))
    if args.command == "list":
        if not args.user and not args.admin:
            print("--user is required unless --admin is given")
            return 2
        caller = api.Caller(args.user or "", is_admin=args.admin)
        return _print_response(*api.list_transactions(engine, caller, {
            "userId": args.user, "status": args.status, "sortBy": args.sort_by,
            "sortOrder": args.order, "page": args.page, "limit": args.limit,
        }))
    if args.command == "borrowed":
        caller = api.Caller(args.user_id, is_admin=args.admin)
        return _print_response(*api.borrowed_books(engine, caller, args.user_id))

    caller = api.Caller(args.user_id, is_admin=args.admin)
    if args.command == "borrow":
        status, body = api.borrow(engine, caller, {"bookId": args.book_id, "notes": args.notes})
    elif args.command == "return":
        status, body = api.return_book(engine, caller, {"transactionId": args.transaction_id,
                                                        "condition": args.condition,
                                                        "notes": args.notes})
    else:
        status, body = api.renew(engine, caller, args.transaction_id)
    if status < 400:
        # transactions are written through; counters need an explicit save
        save_library(data_dir, ledger, members)
    return _print_response(status, body)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = LendingConfig.from_env()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    logging.basicConfig(level=config.log_level, format="%(levelname)s: %(message)s")
    try:
        return run(args, config)
    except LendingError as e:
        logger.error("LendingError bubbled to top-level | %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
