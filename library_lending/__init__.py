"""
library_lending

Borrowing records for a lending library: books, members and
borrow/return/renew transactions with membership limits, due dates and late
fees.
"""

from .config import LendingConfig
from .engine import BorrowingEngine, TransactionView
from .errors import ConfigError, Entity, Failure, FailureKind, LendingError, StorageError
from .fees import days_overdue, late_fee
from .ledger import BookLedger
from .members import MemberDirectory
from .models import (Book, Member, MembershipType, ReturnCondition, Transaction,
                     TransactionStatus, derive_status)
from .policy import PolicyTable
from .store import InMemoryTransactionStore, TransactionStore

__version__ = "1.0.0"

__all__ = [
    "Book", "BookLedger", "BorrowingEngine", "ConfigError", "Entity", "Failure", "FailureKind",
    "InMemoryTransactionStore", "LendingConfig", "LendingError", "Member", "MemberDirectory",
    "MembershipType", "PolicyTable", "ReturnCondition", "StorageError", "Transaction",
    "TransactionStatus", "TransactionStore", "TransactionView", "days_overdue", "derive_status",
    "late_fee",
]
