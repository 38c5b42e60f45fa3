"""
models.py

Domain records for the lending engine: books, members and borrow transactions.

Transactions are immutable snapshots; the store replaces a snapshot whenever the
engine mutates one. The OVERDUE status is never stored, it is derived on demand
by `derive_status`.
"""

from __future__ import annotations
import dataclasses
import datetime
import enum
from decimal import Decimal
from typing import Dict, Optional


class MembershipType(str, enum.Enum):
    BASIC = "BASIC"
    PREMIUM = "PREMIUM"
    STUDENT = "STUDENT"


class TransactionStatus(str, enum.Enum):
    BORROWED = "BORROWED"
    OVERDUE = "OVERDUE"
    RETURNED = "RETURNED"


class ReturnCondition(str, enum.Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


ACTIVE_STATUSES = frozenset({TransactionStatus.BORROWED, TransactionStatus.OVERDUE})

ZERO_FEE = Decimal("0.00")


@dataclasses.dataclass
class Book:
    """
    A catalogue entry with its copy counters.

    `available_quantity` defaults to `total_quantity` when not given. Only the
    ledger changes the counter after creation.
    """
    id: str
    title: str
    total_quantity: int
    available_quantity: Optional[int] = None
    author: str = ""
    isbn: str = ""
    genre: str = ""

    def __post_init__(self) -> None:
        if self.total_quantity < 1:
            raise ValueError(f"total_quantity must be at least 1 (book {self.id})")
        if self.available_quantity is None:
            self.available_quantity = self.total_quantity
        if not 0 <= self.available_quantity <= self.total_quantity:
            raise ValueError(
                f"available_quantity must be within 0..{self.total_quantity} (book {self.id})")

    @property
    def is_available(self) -> bool:
        return self.available_quantity > 0

    def summary(self) -> Dict[str, str]:
        return {"id": self.id, "title": self.title}


@dataclasses.dataclass
class Member:
    id: str
    name: str
    membership_type: str = MembershipType.BASIC.value
    is_active: bool = True
    email: str = ""

    def summary(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclasses.dataclass(frozen=True)
class Transaction:
    """
    One borrow lifecycle of a book by a member.

    Attributes:
        id: transaction identifier (assigned by the store).
        user_id: owning member, never changes.
        book_id: borrowed book, never changes.
        borrow_date: creation time (UTC).
        due_date: borrow_date + loan period, pushed back on each renewal.
        status: stored status, BORROWED or RETURNED.
        late_fee: fee charged on return, two decimal places.
        renewal_count: renewals granted so far.
        return_date: set on return only.
    """
    id: str
    user_id: str
    book_id: str
    borrow_date: datetime.datetime
    due_date: datetime.datetime
    status: TransactionStatus = TransactionStatus.BORROWED
    late_fee: Decimal = ZERO_FEE
    renewal_count: int = 0
    return_date: Optional[datetime.datetime] = None
    notes: str = ""
    return_condition: Optional[ReturnCondition] = None
    return_notes: str = ""

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "bookId": self.book_id,
            "borrowDate": self.borrow_date.isoformat(),
            "dueDate": self.due_date.isoformat(),
            "returnDate": self.return_date.isoformat() if self.return_date else None,
            "status": self.status.value,
            "lateFee": str(self.late_fee),
            "renewalCount": self.renewal_count,
            "notes": self.notes,
            "returnCondition": self.return_condition.value if self.return_condition else None,
            "returnNotes": self.return_notes,
        }


def derive_status(transaction: Transaction, now: datetime.datetime) -> TransactionStatus:
    """
    Return the status a transaction has at `now`.

    RETURNED is terminal. Any other transaction is OVERDUE once `now` is past its
    due date, and BORROWED otherwise.
    """
    if transaction.status == TransactionStatus.RETURNED:
        return TransactionStatus.RETURNED
    if now > transaction.due_date:
        return TransactionStatus.OVERDUE
    return TransactionStatus.BORROWED


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)
