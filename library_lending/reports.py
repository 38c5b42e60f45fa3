"""
reports.py

Tabular reports for staff, returned as pandas DataFrames.
"""

from __future__ import annotations
import datetime

import pandas as pd

from .config import LendingConfig
from .fees import late_fee
from .ledger import BookLedger
from .members import MemberDirectory
from .models import TransactionStatus
from .policy import PolicyTable
from .query import transactions_frame
from .store import TransactionStore


def books_report(ledger: BookLedger) -> pd.DataFrame:
    """
    Inventory with human-friendly availability.

    Columns: Book ID, Title, Author, Genre, Available, Total, Availability.
    """
    rows = [{
        "Book ID": b.id,
        "Title": b.title,
        "Author": b.author,
        "Genre": b.genre,
        "Available": b.available_quantity,
        "Total": b.total_quantity,
        "Availability": "Available" if b.is_available else "Not Available",
    } for b in ledger.books()]
    return pd.DataFrame(rows, columns=["Book ID", "Title", "Author", "Genre", "Available", "Total",
                                       "Availability"])


def members_report(members: MemberDirectory, store: TransactionStore,
                   policy: PolicyTable) -> pd.DataFrame:
    """
    Members with their current loans.

    Columns: Member ID, Name, Membership, Active, BorrowedCount, BorrowingLimit,
    BorrowedBooks (comma separated).
    """
    rows = []
    for m in members.members():
        borrowed = [t.book_id for t in store.list_by_user(m.id) if t.is_active]
        rows.append({
            "Member ID": m.id,
            "Name": m.name,
            "Membership": m.membership_type,
            "Active": m.is_active,
            "BorrowedCount": len(borrowed),
            "BorrowingLimit": policy.limit_for(m.membership_type),
            "BorrowedBooks": ",".join(borrowed),
        })
    return pd.DataFrame(rows, columns=["Member ID", "Name", "Membership", "Active", "BorrowedCount",
                                       "BorrowingLimit", "BorrowedBooks"])


def overdue_report(store: TransactionStore, now: datetime.datetime,
                   config: LendingConfig = LendingConfig()) -> pd.DataFrame:
    """
    Loans that are past due at `now`, most overdue first, with the fee accrued
    so far.
    """
    df = transactions_frame(store, now)
    df = df[df["status"] == TransactionStatus.OVERDUE.value].copy()
    df["accrued_fee"] = [
        str(late_fee(store.find_by_id(txn_id).due_date, now, config.fee_per_day, config.max_fee))
        for txn_id in df["id"]
    ]
    df = df.sort_values(by=["days_overdue", "position"], ascending=[False, True])
    return df[["id", "user_id", "book_id", "due_date", "days_overdue", "accrued_fee"]].reset_index(drop=True)
