"""
persistence.py

CSV backend for books, members and transactions.

Each collection lives in its own CSV file inside a data directory and is read
and written with pandas. Missing files start empty. Any I/O or parsing problem
surfaces as `StorageError`.
"""

from __future__ import annotations
import datetime
import logging
import os
import pathlib
from collections import Counter
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, List, Optional, Tuple

import pandas as pd

from .errors import StorageError
from .ledger import BookLedger
from .members import MemberDirectory
from .models import Book, Member, ReturnCondition, Transaction, TransactionStatus
from .store import InMemoryTransactionStore

logger = logging.getLogger("library_lending.persistence")

BOOK_COLUMNS = ["id", "title", "author", "isbn", "genre", "total_quantity", "available_quantity"]
MEMBER_COLUMNS = ["id", "name", "email", "membership_type", "is_active"]
TRANSACTION_COLUMNS = ["id", "user_id", "book_id", "borrow_date", "due_date", "return_date", "status",
                       "late_fee", "renewal_count", "notes", "return_condition", "return_notes"]

BOOKS_CSV = "books.csv"
MEMBERS_CSV = "members.csv"
TRANSACTIONS_CSV = "transactions.csv"

_TRUTHY = {"true", "1", "yes", "y"}


# ---------------- Low level ----------------
def _read_frame(path: pathlib.Path, columns: List[str]) -> pd.DataFrame:
    """
    Read a CSV as strings, adding any expected column the file lacks.
    """
    if not path.exists():
        logger.warning("CSV not found: %s (starting empty)", path)
        return pd.DataFrame(columns=columns)
    try:
        df = pd.read_csv(path, dtype=str).fillna("")
    except pd.errors.EmptyDataError:
        logger.warning("CSV is empty: %s (starting empty)", path)
        return pd.DataFrame(columns=columns)
    except (OSError, pd.errors.ParserError) as exc:
        raise StorageError(f"Could not read {path}: {exc}") from exc
    for col in columns:
        if col not in df.columns:
            df[col] = ""
    return df


def _write_frame(path: pathlib.Path, rows: List[dict], columns: List[str]) -> None:
    """
    Write rows to `path` through a temp file so readers never see half a file.
    """
    out_df = pd.DataFrame(rows, columns=columns)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        out_df.to_csv(tmp_path, index=False, columns=columns)
        os.replace(tmp_path, path)
    except OSError as exc:
        raise StorageError(f"Could not write {path}: {exc}") from exc
    logger.debug("Saved %d rows to %s", len(out_df), path)


def _records(df: pd.DataFrame, path: pathlib.Path, parse: Callable[[dict], object]) -> list:
    out = []
    for line, row in enumerate(df.to_dict(orient="records"), start=2):
        try:
            out.append(parse(row))
        except (ValueError, KeyError, InvalidOperation) as exc:
            raise StorageError(f"{path}:{line}: {exc}") from exc
    return out


def _parse_datetime(value: str) -> Optional[datetime.datetime]:
    value = (value or "").strip()
    if not value:
        return None
    parsed = datetime.datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def _format_datetime(value: Optional[datetime.datetime]) -> str:
    return value.isoformat() if value is not None else ""


# ---------------- Books ----------------
def _book_from_row(row: dict) -> Book:
    total = int(row["total_quantity"])
    available = row["available_quantity"].strip()
    return Book(
        id=row["id"].strip(),
        title=row["title"],
        author=row["author"],
        isbn=row["isbn"],
        genre=row["genre"],
        total_quantity=total,
        available_quantity=int(available) if available else None,
    )


def load_books(path: pathlib.Path) -> List[Book]:
    books = _records(_read_frame(path, BOOK_COLUMNS), path, _book_from_row)
    logger.info("Loaded %d books", len(books))
    return books


def save_books(path: pathlib.Path, books: Iterable[Book]) -> None:
    _write_frame(path, [{
        "id": b.id, "title": b.title, "author": b.author, "isbn": b.isbn, "genre": b.genre,
        "total_quantity": b.total_quantity, "available_quantity": b.available_quantity,
    } for b in books], BOOK_COLUMNS)


# ---------------- Members ----------------
def _member_from_row(row: dict) -> Member:
    active = row["is_active"].strip().lower()
    return Member(
        id=row["id"].strip(),
        name=row["name"],
        email=row["email"],
        membership_type=row["membership_type"].strip().upper() or "BASIC",
        is_active=(active in _TRUTHY) if active else True,
    )


def load_members(path: pathlib.Path) -> List[Member]:
    members = _records(_read_frame(path, MEMBER_COLUMNS), path, _member_from_row)
    logger.info("Loaded %d members", len(members))
    return members


def save_members(path: pathlib.Path, members: Iterable[Member]) -> None:
    _write_frame(path, [{
        "id": m.id, "name": m.name, "email": m.email,
        "membership_type": m.membership_type, "is_active": m.is_active,
    } for m in members], MEMBER_COLUMNS)


# ---------------- Transactions ----------------
def _transaction_from_row(row: dict) -> Transaction:
    condition = row["return_condition"].strip().upper()
    return Transaction(
        id=row["id"].strip(),
        user_id=row["user_id"].strip(),
        book_id=row["book_id"].strip(),
        borrow_date=_parse_datetime(row["borrow_date"]),
        due_date=_parse_datetime(row["due_date"]),
        return_date=_parse_datetime(row["return_date"]),
        status=TransactionStatus(row["status"].strip().upper() or "BORROWED"),
        late_fee=Decimal(row["late_fee"] or "0").quantize(Decimal("0.01")),
        renewal_count=int(row["renewal_count"] or 0),
        notes=row["notes"],
        return_condition=ReturnCondition(condition) if condition else None,
        return_notes=row["return_notes"],
    )


def _transaction_row(t: Transaction) -> dict:
    return {
        "id": t.id,
        "user_id": t.user_id,
        "book_id": t.book_id,
        "borrow_date": _format_datetime(t.borrow_date),
        "due_date": _format_datetime(t.due_date),
        "return_date": _format_datetime(t.return_date),
        "status": t.status.value,
        "late_fee": str(t.late_fee),
        "renewal_count": t.renewal_count,
        "notes": t.notes,
        "return_condition": t.return_condition.value if t.return_condition else "",
        "return_notes": t.return_notes,
    }


def load_transactions(path: pathlib.Path) -> List[Transaction]:
    transactions = _records(_read_frame(path, TRANSACTION_COLUMNS), path, _transaction_from_row)
    for t in transactions:
        if t.borrow_date is None or t.due_date is None:
            raise StorageError(f"{path}: transaction {t.id} lacks borrow_date or due_date")
    logger.info("Loaded %d transactions", len(transactions))
    return transactions


def save_transactions(path: pathlib.Path, transactions: Iterable[Transaction]) -> None:
    _write_frame(path, [_transaction_row(t) for t in transactions], TRANSACTION_COLUMNS)


class CsvTransactionStore(InMemoryTransactionStore):
    """
    In-memory store that rewrites its CSV file after every create and update.
    """

    def __init__(self, path: pathlib.Path) -> None:
        self.path = pathlib.Path(path)
        super().__init__(load_transactions(self.path))

    def flush(self) -> None:
        with self._lock:
            save_transactions(self.path, self.list_all())

    def create(self, transaction: Transaction) -> Transaction:
        with self._lock:
            created = super().create(transaction)
            try:
                self.flush()
            except StorageError:
                self._discard(created)
                raise
        return created

    def update(self, transaction_id, patch):
        with self._lock:
            previous = self.find_by_id(transaction_id)
            updated = super().update(transaction_id, patch)
            try:
                self.flush()
            except StorageError:
                super().update(transaction_id, lambda _: previous)
                raise
        return updated


# ---------------- Whole library ----------------
def open_library(data_dir: pathlib.Path) -> Tuple[BookLedger, MemberDirectory, CsvTransactionStore]:
    """
    Load the three collections from `data_dir`.

    Available counts are recomputed from the active transactions, since
    transactions.csv is written before books.csv and a failed second write
    leaves the stored counts stale.
    """
    data_dir = pathlib.Path(data_dir)
    ledger = BookLedger(load_books(data_dir / BOOKS_CSV))
    members = MemberDirectory(load_members(data_dir / MEMBERS_CSV))
    store = CsvTransactionStore(data_dir / TRANSACTIONS_CSV)
    on_loan = Counter(t.book_id for t in store.list_all(lambda t: t.is_active))
    corrected = ledger.reconcile(on_loan)
    if corrected:
        logger.warning("Corrected available counts for %d book(s): %s", len(corrected), ", ".join(corrected))
    return ledger, members, store


def save_library(data_dir: pathlib.Path, ledger: BookLedger, members: MemberDirectory,
                 store: Optional[InMemoryTransactionStore] = None) -> None:
    data_dir = pathlib.Path(data_dir)
    save_books(data_dir / BOOKS_CSV, ledger.books())
    save_members(data_dir / MEMBERS_CSV, members.members())
    if store is not None:
        save_transactions(data_dir / TRANSACTIONS_CSV, store.list_all())
    logger.info("Saved library state to %s", data_dir)
