import datetime
import pathlib
import sys

import pytest

# Add project root to sys.path so tests run from a plain checkout too
sys.path.insert(0, str(pathlib.Path(__file__).resolve().parent.parent))

from library_lending import (Book, BookLedger, BorrowingEngine, InMemoryTransactionStore, Member,
                             MemberDirectory, Transaction)

UTC = datetime.timezone.utc


def at(year, month, day, hour=0, minute=0):
    return datetime.datetime(year, month, day, hour, minute, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + datetime.timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(at(2024, 1, 15, 10, 0))


@pytest.fixture
def ledger():
    return BookLedger([
        Book("B001", "The Great Gatsby", 5, author="F. Scott Fitzgerald"),
        Book("B002", "To Kill a Mockingbird", 4, available_quantity=2, author="Harper Lee"),
        Book("B003", "Introduction to Algorithms", 1, author="Thomas H. Cormen"),
        Book("B004", "The Catcher in the Rye", 6),
        Book("B005", "A Brief History of Time", 3),
    ])


@pytest.fixture
def members():
    return MemberDirectory([
        Member("M001", "John Doe", "PREMIUM"),
        Member("M002", "Jane Smith", "STUDENT"),
        Member("M003", "Mike Johnson", "BASIC"),
        Member("M004", "Retired Member", "BASIC", is_active=False),
        Member("M005", "Legacy Member", "GOLD"),
    ])


@pytest.fixture
def store():
    return InMemoryTransactionStore()


@pytest.fixture
def engine(ledger, members, store, clock):
    return BorrowingEngine(ledger, members, store, clock=clock)


def make_transaction(txn_id, user_id, book_id, borrow_date, due_date, **kwargs):
    return Transaction(id=txn_id, user_id=user_id, book_id=book_id,
                       borrow_date=borrow_date, due_date=due_date, **kwargs)
