"""
store.py

Transaction storage contract and its in-memory implementation.

The engine depends on `TransactionStore` only. Records are immutable
`Transaction` snapshots; `update` swaps in the snapshot returned by the patch
function and hands it back.
"""

from __future__ import annotations
import abc
import logging
import threading
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional

from .errors import StorageError
from .models import Transaction, TransactionStatus

logger = logging.getLogger("library_lending.store")

Patch = Callable[[Transaction], Transaction]


class TransactionStore(abc.ABC):

    @abc.abstractmethod
    def next_id(self) -> str:
        """Allocate an unused transaction id."""

    @abc.abstractmethod
    def create(self, transaction: Transaction) -> Transaction:
        """Insert a new record. Raises StorageError if the id is taken."""

    @abc.abstractmethod
    def find_by_id(self, transaction_id: str) -> Optional[Transaction]:
        ...

    @abc.abstractmethod
    def find_active_by_user_and_book(self, user_id: str, book_id: str) -> Optional[Transaction]:
        ...

    @abc.abstractmethod
    def list_by_user(self, user_id: str) -> List[Transaction]:
        ...

    @abc.abstractmethod
    def list_all(self, predicate: Optional[Callable[[Transaction], bool]] = None) -> List[Transaction]:
        """All records in insertion order, optionally filtered."""

    @abc.abstractmethod
    def update(self, transaction_id: str, patch: Patch) -> Transaction:
        """Replace a record with `patch(record)` and return the new snapshot."""

    def count_active_by_user(self, user_id: str) -> int:
        return sum(1 for t in self.list_by_user(user_id) if t.is_active)


class InMemoryTransactionStore(TransactionStore):
    """
    Dictionary-backed store with secondary indexes on user, book and status.
    """

    def __init__(self, transactions: Iterable[Transaction] = ()) -> None:
        self._lock = threading.RLock()
        self._records: Dict[str, Transaction] = {}
        self._by_user: Dict[str, List[str]] = defaultdict(list)
        self._by_book: Dict[str, List[str]] = defaultdict(list)
        self._by_status: Dict[TransactionStatus, set] = defaultdict(set)
        self._counter = 0
        for txn in transactions:
            self._insert(txn)

    # -------------- Internal helpers ----------------
    def _insert(self, transaction: Transaction) -> None:
        if transaction.id in self._records:
            raise StorageError(f"Duplicate transaction id: {transaction.id}")
        self._records[transaction.id] = transaction
        self._by_user[transaction.user_id].append(transaction.id)
        self._by_book[transaction.book_id].append(transaction.id)
        self._by_status[transaction.status].add(transaction.id)
        self._counter = max(self._counter, _numeric_suffix(transaction.id))

    def _discard(self, transaction: Transaction) -> None:
        self._records.pop(transaction.id, None)
        self._by_user[transaction.user_id].remove(transaction.id)
        self._by_book[transaction.book_id].remove(transaction.id)
        self._by_status[transaction.status].discard(transaction.id)

    # ---------------- Contract ----------------
    def next_id(self) -> str:
        with self._lock:
            self._counter += 1
            while f"T{self._counter:04d}" in self._records:
                self._counter += 1
            return f"T{self._counter:04d}"

    def create(self, transaction: Transaction) -> Transaction:
        with self._lock:
            self._insert(transaction)
        logger.debug("Stored transaction %s", transaction.id)
        return transaction

    def find_by_id(self, transaction_id: str) -> Optional[Transaction]:
        with self._lock:
            return self._records.get(transaction_id)

    def find_active_by_user_and_book(self, user_id: str, book_id: str) -> Optional[Transaction]:
        with self._lock:
            for txn_id in self._by_user.get(user_id, ()):
                txn = self._records[txn_id]
                if txn.book_id == book_id and txn.is_active:
                    return txn
            return None

    def list_by_user(self, user_id: str) -> List[Transaction]:
        with self._lock:
            return [self._records[i] for i in self._by_user.get(user_id, ())]

    def list_by_book(self, book_id: str) -> List[Transaction]:
        with self._lock:
            return [self._records[i] for i in self._by_book.get(book_id, ())]

    def list_by_status(self, status: TransactionStatus) -> List[Transaction]:
        with self._lock:
            ids = self._by_status.get(status, set())
            return [t for t in self._records.values() if t.id in ids]

    def list_all(self, predicate: Optional[Callable[[Transaction], bool]] = None) -> List[Transaction]:
        with self._lock:
            records = list(self._records.values())
        if predicate is None:
            return records
        return [t for t in records if predicate(t)]

    def update(self, transaction_id: str, patch: Patch) -> Transaction:
        with self._lock:
            current = self._records.get(transaction_id)
            if current is None:
                raise StorageError(f"Cannot update missing transaction: {transaction_id}")
            updated = patch(current)
            if (updated.id, updated.user_id, updated.book_id) != (current.id, current.user_id, current.book_id):
                raise StorageError(f"Patch changed the identity of transaction {transaction_id}")
            self._records[transaction_id] = updated
            if updated.status != current.status:
                self._by_status[current.status].discard(transaction_id)
                self._by_status[updated.status].add(transaction_id)
            return updated


def _numeric_suffix(transaction_id: str) -> int:
    digits = "".join(ch for ch in transaction_id if ch.isdigit())
    return int(digits) if digits else 0
