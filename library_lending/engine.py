"""
engine.py

Borrow, return and renew operations.

`BorrowingEngine` is the only writer of transactions and of book availability.
Each operation checks its preconditions in a fixed order, returns the first
failing one as a `Failure`, and otherwise applies its effect to the ledger and
the store while holding the locks of every entity it touches.
"""

from __future__ import annotations
import dataclasses
import datetime
import logging
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple, Union

from .config import LendingConfig
from .errors import Entity, Failure, FailureKind, not_found
from .fees import days_overdue, late_fee
from .ledger import BookLedger
from .locks import KeyedLocks
from .members import MemberDirectory
from .models import (Member, ReturnCondition, Transaction, TransactionStatus,
                     derive_status, utcnow)
from .policy import PolicyTable
from .store import TransactionStore

logger = logging.getLogger("library_lending.engine")

Clock = Callable[[], datetime.datetime]


@dataclasses.dataclass(frozen=True)
class TransactionView:
    """
    A transaction as shown to a caller: its derived status plus book and member
    summaries.
    """
    transaction: Transaction
    status: TransactionStatus
    days_overdue: int
    book: Optional[Dict[str, str]] = None
    member: Optional[Dict[str, str]] = None
    renewals_remaining: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        out = self.transaction.to_dict()
        out["status"] = self.status.value
        out["daysOverdue"] = self.days_overdue
        out["book"] = self.book
        out["user"] = self.member
        if self.renewals_remaining is not None:
            out["renewalsRemaining"] = self.renewals_remaining
        return out


Outcome = Tuple[Optional[TransactionView], Optional[Failure]]


class BorrowingEngine:
    """
    Orchestrates the transaction lifecycle.

    Args:
        ledger: book copy counters.
        members: member lookup.
        store: transaction storage.
        policy: borrowing limits and loan periods.
        config: fee rate/cap and renewal limit.
        clock: returns the current UTC time; injectable for tests.
    """

    def __init__(self,
                 ledger: BookLedger,
                 members: MemberDirectory,
                 store: TransactionStore,
                 policy: Optional[PolicyTable] = None,
                 config: Optional[LendingConfig] = None,
                 clock: Optional[Clock] = None):
        self.ledger = ledger
        self.members = members
        self.store = store
        self.policy = policy or PolicyTable()
        self.config = config or LendingConfig()
        self.clock = clock or utcnow
        self._locks = KeyedLocks()

    # -------------- Internal helpers ----------------
    def _view(self, txn: Transaction, now: datetime.datetime,
              renewals_remaining: Optional[int] = None) -> TransactionView:
        book = self.ledger.get(txn.book_id)
        member = self.members.get(txn.user_id)
        until = txn.return_date or now
        return TransactionView(
            transaction=txn,
            status=derive_status(txn, now),
            days_overdue=days_overdue(txn.due_date, until),
            book=book.summary() if book else None,
            member=member.summary() if member else None,
            renewals_remaining=renewals_remaining,
        )

    def _owned_transaction(self, transaction_id: str, caller_user_id: str,
                           privileged: bool) -> Tuple[Optional[Transaction], Optional[Failure]]:
        txn = self.store.find_by_id(transaction_id)
        if txn is None:
            return None, not_found(Entity.TRANSACTION, transaction_id)
        if txn.user_id != caller_user_id and not privileged:
            return None, Failure(FailureKind.FORBIDDEN,
                                 "Access denied. This transaction does not belong to you.",
                                 Entity.TRANSACTION)
        return txn, None

    def active_count(self, user_id: str) -> int:
        return self.store.count_active_by_user(user_id)

    # ---------------- Core operations ----------------
    def borrow(self, user_id: str, book_id: str, notes: Optional[str] = None) -> Outcome:
        """
        Lend one copy of `book_id` to `user_id`.

        Checks, first failure wins: book exists, a copy is available, member
        exists and is active, member is under the borrowing limit, member has no
        active loan of the same book.
        """
        with self._locks.hold(("book", book_id), ("member", user_id)):
            available, failure = self.ledger.is_available(book_id)
            if failure:
                return None, failure
            if not available:
                return None, Failure(FailureKind.UNAVAILABLE,
                                     f"Book {book_id} is not available for borrowing", Entity.BOOK)
            member = self.members.get(user_id)
            if member is None or not member.is_active:
                return None, not_found(Entity.MEMBER, user_id)
            limit = self.policy.limit_for(member.membership_type)
            if self.active_count(user_id) >= limit:
                return None, Failure(
                    FailureKind.LIMIT_REACHED,
                    f"Borrowing limit reached. {member.membership_type} members can borrow up to {limit} books.")
            if self.store.find_active_by_user_and_book(user_id, book_id) is not None:
                return None, Failure(FailureKind.ALREADY_BORROWED, "You have already borrowed this book")

            _, failure = self.ledger.reserve(book_id)
            if failure:
                return None, failure
            now = self.clock()
            txn = Transaction(
                id=self.store.next_id(),
                user_id=user_id,
                book_id=book_id,
                borrow_date=now,
                due_date=self.policy.due_date_from(now, member.membership_type),
                notes=notes or "",
            )
            try:
                txn = self.store.create(txn)
            except Exception:
                self.ledger.release(book_id)
                logger.exception("Could not record borrow of %s by %s; reservation released",
                                 book_id, user_id)
                raise
        logger.info("Borrowed %s to %s until %s (%s)", book_id, user_id,
                    txn.due_date.date().isoformat(), txn.id)
        return self._view(txn, now), None

    def return_book(self,
                    transaction_id: str,
                    caller_user_id: str,
                    condition: Union[ReturnCondition, str, None] = None,
                    notes: Optional[str] = None,
                    privileged: bool = False) -> Outcome:
        """
        Close a loan, charge the late fee and put the copy back on the shelf.

        `privileged` lets staff return a transaction owned by someone else.
        """
        txn = self.store.find_by_id(transaction_id)
        book_key = ("book", txn.book_id) if txn is not None else ("book", None)
        with self._locks.hold(("transaction", transaction_id), book_key):
            txn, failure = self._owned_transaction(transaction_id, caller_user_id, privileged)
            if failure:
                return None, failure
            if txn.status == TransactionStatus.RETURNED:
                return None, Failure(FailureKind.ALREADY_RETURNED, "Book has already been returned")
            return_condition, failure = _parse_condition(condition)
            if failure:
                return None, failure

            now = self.clock()
            fee = late_fee(txn.due_date, now, self.config.fee_per_day, self.config.max_fee)

            def close(current: Transaction) -> Transaction:
                return dataclasses.replace(current,
                                           status=TransactionStatus.RETURNED,
                                           return_date=now,
                                           late_fee=fee,
                                           return_condition=return_condition,
                                           return_notes=notes or "")

            txn = self.store.update(transaction_id, close)
            _, failure = self.ledger.release(txn.book_id)
            if failure:
                logger.warning("Returned %s for book %s which is no longer in the catalogue",
                               transaction_id, txn.book_id)
        logger.info("Book %s returned by %s (%s), late fee %s",
                    txn.book_id, txn.user_id, transaction_id, fee)
        return self._view(txn, now), None

    def renew(self, transaction_id: str, caller_user_id: str) -> Outcome:
        """
        Push the due date back by one loan period, counted from the current due
        date. Overdue loans must be returned instead.
        """
        with self._locks.hold(("transaction", transaction_id)):
            txn, failure = self._owned_transaction(transaction_id, caller_user_id, privileged=False)
            if failure:
                return None, failure
            if txn.status != TransactionStatus.BORROWED:
                return None, Failure(FailureKind.NOT_RENEWABLE, "Can only renew currently borrowed books")
            max_renewals = self.config.max_renewals
            if txn.renewal_count >= max_renewals:
                return None, Failure(FailureKind.RENEWAL_LIMIT_REACHED,
                                     f"Maximum renewal limit ({max_renewals}) reached")
            now = self.clock()
            if derive_status(txn, now) == TransactionStatus.OVERDUE:
                return None, Failure(FailureKind.OVERDUE,
                                     "Cannot renew overdue books. Please return the book and pay any late fees.")

            member = self.members.get(txn.user_id)
            if member is None:
                logger.warning("Member %s of %s not found, renewing on default terms",
                               txn.user_id, transaction_id)
            membership_type = member.membership_type if member else None
            new_due = self.policy.due_date_from(txn.due_date, membership_type)

            def extend(current: Transaction) -> Transaction:
                return dataclasses.replace(current, due_date=new_due,
                                           renewal_count=current.renewal_count + 1)

            txn = self.store.update(transaction_id, extend)
        logger.info("Renewed %s until %s (%d/%d)", transaction_id,
                    new_due.date().isoformat(), txn.renewal_count, max_renewals)
        return self._view(txn, now, renewals_remaining=max_renewals - txn.renewal_count), None

    # ---------------- Queries ----------------
    def view(self, transaction_id: str, caller_user_id: str, privileged: bool = False) -> Outcome:
        txn, failure = self._owned_transaction(transaction_id, caller_user_id, privileged)
        if failure:
            return None, failure
        return self._view(txn, self.clock()), None

    def member_summary(self, user_id: str) -> Tuple[Optional[dict], Optional[Failure]]:
        """
        Active loans of a member next to their borrowing limit.
        """
        member: Optional[Member] = self.members.get(user_id)
        if member is None:
            return None, not_found(Entity.MEMBER, user_id)
        now = self.clock()
        active: List[TransactionView] = [self._view(t, now) for t in self.store.list_by_user(user_id)
                                         if t.is_active]
        limit = self.policy.limit_for(member.membership_type)
        return {
            "borrowedBooks": [v.to_dict() for v in active],
            "currentBorrowedCount": len(active),
            "borrowingLimit": limit,
            "canBorrowMore": member.is_active and len(active) < limit,
            "outstandingFees": str(sum((late_fee(v.transaction.due_date, now, self.config.fee_per_day,
                                                 self.config.max_fee) for v in active), Decimal("0.00"))),
        }, None


def _parse_condition(condition) -> Tuple[Optional[ReturnCondition], Optional[Failure]]:
    if condition is None or condition == "":
        return ReturnCondition.GOOD, None
    if isinstance(condition, ReturnCondition):
        return condition, None
    try:
        return ReturnCondition(str(condition).strip().upper()), None
    except ValueError:
        choices = ", ".join(c.value for c in ReturnCondition)
        return None, Failure(FailureKind.INVALID_CONDITION,
                             f"Condition must be one of {choices}, got {condition!r}")
