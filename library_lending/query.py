"""
query.py

Read path over the catalogue and the transaction store: filter, sort,
paginate and enrich.

Rows are assembled into a pandas DataFrame so filtering and sorting use the
same machinery as the reports. Status filtering is applied to the derived
status, so ``status="OVERDUE"`` finds loans that are past due right now.
"""

from __future__ import annotations
import datetime
import logging
import math
from typing import Dict, List, Optional

import pandas as pd

from .fees import days_overdue
from .ledger import BookLedger
from .members import MemberDirectory
from .models import TransactionStatus, derive_status
from .store import TransactionStore

logger = logging.getLogger("library_lending.query")

# public sort key -> DataFrame column
SORT_FIELDS = {
    "borrowDate": "borrow_date",
    "dueDate": "due_date",
    "returnDate": "return_date",
    "lateFee": "late_fee",
    "renewalCount": "renewal_count",
    "status": "status",
    "id": "id",
}
DEFAULT_SORT = "borrowDate"
MAX_PAGE_SIZE = 100

BOOK_SORT_FIELDS = {
    "title": "title",
    "author": "author",
    "genre": "genre",
    "id": "id",
    "availableQuantity": "available_quantity",
    "totalQuantity": "total_quantity",
}
DEFAULT_BOOK_SORT = "title"
BOOK_FRAME_COLUMNS = ["position", "id", "title", "author", "isbn", "genre",
                      "total_quantity", "available_quantity"]


def _window(page, limit):
    return max(int(page), 1), min(max(int(limit), 1), MAX_PAGE_SIZE)


def _pagination(total: int, page: int, limit: int, total_key: str) -> Dict[str, object]:
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        total_key: total,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def _case_insensitive(col: pd.Series) -> pd.Series:
    return col.str.lower() if col.dtype == object else col


# ---------------- Books ----------------
def books_frame(ledger: BookLedger) -> pd.DataFrame:
    rows = [{
        "position": position,
        "id": b.id,
        "title": b.title,
        "author": b.author,
        "isbn": b.isbn,
        "genre": b.genre,
        "total_quantity": b.total_quantity,
        "available_quantity": b.available_quantity,
    } for position, b in enumerate(ledger.books())]
    return pd.DataFrame(rows, columns=BOOK_FRAME_COLUMNS)


def search_books(ledger: BookLedger,
                 search: Optional[str] = None,
                 genre: Optional[str] = None,
                 author: Optional[str] = None,
                 available: Optional[bool] = None,
                 sort_by: str = DEFAULT_BOOK_SORT,
                 sort_order: str = "asc",
                 page: int = 1,
                 limit: int = 10) -> Dict[str, object]:
    """
    Search the catalogue.

    Args:
        search: case-insensitive substring of title, author or ISBN.
        genre: exact genre, case-insensitive.
        author: case-insensitive substring of the author.
        available: True for books with a copy on the shelf, False for none.
        sort_by: one of BOOK_SORT_FIELDS; anything else sorts by title.

    Returns:
        {"books": [...], "pagination": {...}}
    """
    page, limit = _window(page, limit)
    df = books_frame(ledger)
    mask = pd.Series(True, index=df.index)

    q = (search or "").strip()
    if q:
        mask &= (df["title"].str.contains(q, case=False, na=False, regex=False)
                 | df["author"].str.contains(q, case=False, na=False, regex=False)
                 | df["isbn"].str.contains(q, case=False, na=False, regex=False))
    g = (genre or "").strip()
    if g:
        mask &= df["genre"].str.strip().str.lower() == g.lower()
    a = (author or "").strip()
    if a:
        mask &= df["author"].str.contains(a, case=False, na=False, regex=False)
    if available is not None:
        mask &= (df["available_quantity"] > 0) == bool(available)
    df = df.loc[mask]

    column = BOOK_SORT_FIELDS.get(sort_by, BOOK_SORT_FIELDS[DEFAULT_BOOK_SORT])
    ascending = str(sort_order).lower() != "desc"
    df = df.sort_values(by=[column, "position"], ascending=[ascending, True],
                        kind="mergesort", key=_case_insensitive)

    start = (page - 1) * limit
    books = []
    for row in df.iloc[start:start + limit].to_dict(orient="records"):
        books.append({
            "id": row["id"],
            "title": row["title"],
            "author": row["author"],
            "isbn": row["isbn"],
            "genre": row["genre"],
            "totalQuantity": int(row["total_quantity"]),
            "availableQuantity": int(row["available_quantity"]),
            "isAvailable": int(row["available_quantity"]) > 0,
        })
    return {"books": books, "pagination": _pagination(len(df), page, limit, "totalBooks")}


# ---------------- Transactions ----------------
def transactions_frame(store: TransactionStore, now: datetime.datetime,
                       user_id: Optional[str] = None) -> pd.DataFrame:
    """
    One row per transaction with its derived status and days overdue.
    """
    records = store.list_by_user(user_id) if user_id is not None else store.list_all()
    rows = []
    for position, txn in enumerate(records):
        rows.append({
            "position": position,
            "id": txn.id,
            "user_id": txn.user_id,
            "book_id": txn.book_id,
            "borrow_date": txn.borrow_date,
            "due_date": txn.due_date,
            "return_date": txn.return_date,
            "late_fee": float(txn.late_fee),
            "renewal_count": txn.renewal_count,
            "status": derive_status(txn, now).value,
            "days_overdue": days_overdue(txn.due_date, txn.return_date or now),
        })
    columns = ["position", "id", "user_id", "book_id", "borrow_date", "due_date", "return_date",
               "late_fee", "renewal_count", "status", "days_overdue"]
    return pd.DataFrame(rows, columns=columns)


def list_transactions(store: TransactionStore,
                      ledger: BookLedger,
                      members: MemberDirectory,
                      now: datetime.datetime,
                      user_id: Optional[str] = None,
                      status: Optional[str] = None,
                      sort_by: str = DEFAULT_SORT,
                      sort_order: str = "desc",
                      page: int = 1,
                      limit: int = 10) -> Dict[str, object]:
    """
    Filtered, sorted, paginated listing of transactions.

    Args:
        user_id: only this member's transactions.
        status: BORROWED, OVERDUE or RETURNED, matched against the derived status.
        sort_by: one of SORT_FIELDS; anything else sorts by borrowDate.
        sort_order: "asc" or "desc".
        page: 1-based page number.
        limit: page size, capped at MAX_PAGE_SIZE.

    Returns:
        {"transactions": [...], "pagination": {...}}
    """
    page, limit = _window(page, limit)
    df = transactions_frame(store, now, user_id)

    if status:
        wanted = status.strip().upper()
        if wanted in TransactionStatus.__members__:
            df = df[df["status"] == wanted]
        else:
            logger.debug("Ignoring unknown status filter %r", status)

    column = SORT_FIELDS.get(sort_by)
    if column is None:
        column = SORT_FIELDS[DEFAULT_SORT]
    ascending = str(sort_order).lower() == "asc"
    # position keeps insertion order among equal keys
    df = df.sort_values(by=[column, "position"], ascending=[ascending, True],
                        na_position="last", kind="mergesort")

    start = (page - 1) * limit
    page_df = df.iloc[start:start + limit]

    results: List[dict] = []
    for txn_id, status_value, overdue_days in zip(page_df["id"], page_df["status"], page_df["days_overdue"]):
        txn = store.find_by_id(txn_id)
        book = ledger.get(txn.book_id)
        member = members.get(txn.user_id)
        row = txn.to_dict()
        row["status"] = status_value
        row["daysOverdue"] = int(overdue_days)
        row["book"] = book.summary() if book else None
        row["user"] = member.summary() if member else None
        results.append(row)

    return {
        "transactions": results,
        "pagination": _pagination(len(df), page, limit, "totalTransactions"),
    }
