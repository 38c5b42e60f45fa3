import datetime
import random
import threading
from decimal import Decimal

import pytest

from conftest import FakeClock, at, make_transaction
from library_lending import (Book, BookLedger, BorrowingEngine, Entity, FailureKind,
                             InMemoryTransactionStore, Member, MemberDirectory, ReturnCondition,
                             StorageError, TransactionStatus)


def borrow_ok(engine, user_id, book_id):
    view, failure = engine.borrow(user_id, book_id)
    assert failure is None, failure
    return view


# ---------------- Borrow ----------------
def test_premium_borrow_sets_due_date_and_decrements(engine, ledger, clock):
    view, failure = engine.borrow("M001", "B001", notes="weekend read")
    assert failure is None
    txn = view.transaction
    assert ledger.get("B001").available_quantity == 4
    assert txn.status == TransactionStatus.BORROWED
    assert txn.borrow_date == clock.now
    assert txn.due_date == clock.now + datetime.timedelta(days=30)
    assert txn.late_fee == Decimal("0.00")
    assert txn.renewal_count == 0
    assert txn.notes == "weekend read"
    assert view.book == {"id": "B001", "title": "The Great Gatsby"}
    assert view.member == {"id": "M001", "name": "John Doe"}


@pytest.mark.parametrize("user_id, days", [("M002", 21), ("M003", 14), ("M005", 14)])
def test_loan_period_follows_membership(engine, clock, user_id, days):
    view = borrow_ok(engine, user_id, "B004")
    assert view.transaction.due_date - clock.now == datetime.timedelta(days=days)


def test_borrow_unknown_book(engine):
    _, failure = engine.borrow("M001", "NOPE")
    assert failure.kind == FailureKind.NOT_FOUND
    assert failure.entity == Entity.BOOK


def test_borrow_unavailable_book(engine, ledger):
    borrow_ok(engine, "M001", "B003")
    _, failure = engine.borrow("M002", "B003")
    assert failure.kind == FailureKind.UNAVAILABLE
    assert ledger.get("B003").available_quantity == 0


def test_book_checks_come_before_member_checks(engine):
    _, failure = engine.borrow("NOBODY", "NOPE")
    assert failure.entity == Entity.BOOK


@pytest.mark.parametrize("user_id", ["NOBODY", "M004"])
def test_borrow_requires_existing_active_member(engine, ledger, user_id):
    _, failure = engine.borrow(user_id, "B001")
    assert failure.kind == FailureKind.NOT_FOUND
    assert failure.entity == Entity.MEMBER
    assert ledger.get("B001").available_quantity == 5


def test_basic_member_limit_leaves_book_untouched(engine, ledger):
    for book_id in ("B001", "B002", "B004"):
        borrow_ok(engine, "M003", book_id)
    _, failure = engine.borrow("M003", "B005")
    assert failure.kind == FailureKind.LIMIT_REACHED
    assert "BASIC" in failure.message
    assert ledger.get("B005").available_quantity == 3


def test_overdue_loans_still_count_towards_limit(engine, clock):
    for book_id in ("B001", "B002", "B004"):
        borrow_ok(engine, "M003", book_id)
    clock.advance(days=40)
    _, failure = engine.borrow("M003", "B005")
    assert failure.kind == FailureKind.LIMIT_REACHED


def test_limit_frees_up_after_return(engine):
    views = [borrow_ok(engine, "M003", b) for b in ("B001", "B002", "B004")]
    engine.return_book(views[0].transaction.id, "M003")
    borrow_ok(engine, "M003", "B005")


def test_same_book_twice_is_refused(engine, ledger):
    borrow_ok(engine, "M001", "B001")
    _, failure = engine.borrow("M001", "B001")
    assert failure.kind == FailureKind.ALREADY_BORROWED
    assert ledger.get("B001").available_quantity == 4


def test_failed_store_write_releases_reservation(ledger, members, clock):
    class BrokenStore(InMemoryTransactionStore):
        def create(self, transaction):
            raise StorageError("disk full")

    engine = BorrowingEngine(ledger, members, BrokenStore(), clock=clock)
    with pytest.raises(StorageError):
        engine.borrow("M001", "B001")
    assert ledger.get("B001").available_quantity == 5


# ---------------- Return ----------------
def test_late_return_charges_fee_and_releases_copy(ledger, members, store):
    store.create(make_transaction("T0001", "M001", "B002", at(2024, 1, 15), at(2024, 2, 14)))
    clock = FakeClock(at(2024, 2, 20))
    engine = BorrowingEngine(ledger, members, store, clock=clock)

    view, failure = engine.return_book("T0001", "M001")
    assert failure is None
    txn = view.transaction
    assert txn.status == TransactionStatus.RETURNED
    assert txn.return_date == at(2024, 2, 20)
    assert txn.late_fee == Decimal("3.00")
    assert view.days_overdue == 6
    assert view.status == TransactionStatus.RETURNED
    assert ledger.get("B002").available_quantity == 3


def test_on_time_return_is_free(engine, clock):
    view = borrow_ok(engine, "M002", "B001")
    clock.advance(days=10)
    returned, failure = engine.return_book(view.transaction.id, "M002",
                                           condition="excellent", notes="spotless")
    assert failure is None
    assert returned.transaction.late_fee == Decimal("0.00")
    assert returned.days_overdue == 0
    assert returned.transaction.return_condition == ReturnCondition.EXCELLENT
    assert returned.transaction.return_notes == "spotless"


def test_return_defaults_condition_to_good(engine):
    view = borrow_ok(engine, "M002", "B001")
    returned, _ = engine.return_book(view.transaction.id, "M002")
    assert returned.transaction.return_condition == ReturnCondition.GOOD


def test_return_rejects_unknown_condition(engine, ledger):
    view = borrow_ok(engine, "M002", "B001")
    _, failure = engine.return_book(view.transaction.id, "M002", condition="SOGGY")
    assert failure.kind == FailureKind.INVALID_CONDITION
    assert engine.store.find_by_id(view.transaction.id).status == TransactionStatus.BORROWED
    assert ledger.get("B001").available_quantity == 4


def test_return_twice_releases_once(engine, ledger):
    view = borrow_ok(engine, "M001", "B001")
    _, first = engine.return_book(view.transaction.id, "M001")
    _, second = engine.return_book(view.transaction.id, "M001")
    assert first is None
    assert second.kind == FailureKind.ALREADY_RETURNED
    assert ledger.get("B001").available_quantity == 5
    assert ledger.clamped_releases == 0


def test_return_unknown_transaction(engine):
    _, failure = engine.return_book("T9999", "M001")
    assert failure.kind == FailureKind.NOT_FOUND
    assert failure.entity == Entity.TRANSACTION


def test_return_by_someone_else_is_forbidden(engine, ledger):
    view = borrow_ok(engine, "M001", "B001")
    _, failure = engine.return_book(view.transaction.id, "M002")
    assert failure.kind == FailureKind.FORBIDDEN
    assert ledger.get("B001").available_quantity == 4


def test_privileged_caller_may_return_for_member(engine):
    view = borrow_ok(engine, "M001", "B001")
    returned, failure = engine.return_book(view.transaction.id, "STAFF", privileged=True)
    assert failure is None
    assert returned.transaction.user_id == "M001"


def test_return_of_overdue_loan(engine, ledger, clock):
    view = borrow_ok(engine, "M003", "B001")
    clock.advance(days=100)
    returned, failure = engine.return_book(view.transaction.id, "M003")
    assert failure is None
    assert returned.transaction.late_fee == Decimal("25.00")
    assert returned.days_overdue == 86
    assert ledger.get("B001").available_quantity == 5


def test_return_completes_when_book_left_catalogue(members, store, clock):
    ledger = BookLedger([Book("B001", "Gatsby", 1)])
    store.create(make_transaction("T0001", "M001", "GONE", clock.now, clock.now + datetime.timedelta(days=5)))
    engine = BorrowingEngine(ledger, members, store, clock=clock)
    view, failure = engine.return_book("T0001", "M001")
    assert failure is None
    assert view.book is None
    assert view.transaction.status == TransactionStatus.RETURNED


# ---------------- Renew ----------------
def test_renew_extends_from_old_due_date_until_limit(ledger, members, store):
    store.create(make_transaction("T0001", "M001", "B001", at(2024, 12, 2), at(2025, 1, 1)))
    clock = FakeClock(at(2024, 12, 20))
    engine = BorrowingEngine(ledger, members, store, clock=clock)

    view, failure = engine.renew("T0001", "M001")
    assert failure is None
    assert view.transaction.due_date == at(2025, 1, 31)
    assert view.transaction.renewal_count == 1
    assert view.renewals_remaining == 2

    for expected in (2, 3):
        view, failure = engine.renew("T0001", "M001")
        assert failure is None
        assert view.transaction.renewal_count == expected
    assert view.transaction.due_date == at(2025, 1, 1) + datetime.timedelta(days=90)

    _, failure = engine.renew("T0001", "M001")
    assert failure.kind == FailureKind.RENEWAL_LIMIT_REACHED
    assert store.find_by_id("T0001").renewal_count == 3


def test_renew_overdue_loan_is_refused(engine, clock):
    view = borrow_ok(engine, "M002", "B001")
    clock.advance(days=22)
    _, failure = engine.renew(view.transaction.id, "M002")
    assert failure.kind == FailureKind.OVERDUE
    assert engine.store.find_by_id(view.transaction.id).renewal_count == 0


def test_renew_on_due_date_is_allowed(engine, clock):
    view = borrow_ok(engine, "M002", "B001")
    clock.now = view.transaction.due_date
    renewed, failure = engine.renew(view.transaction.id, "M002")
    assert failure is None
    assert renewed.transaction.due_date == view.transaction.due_date + datetime.timedelta(days=21)


def test_renewal_limit_checked_before_overdue(ledger, members, store):
    store.create(make_transaction("T0001", "M001", "B001", at(2024, 1, 1), at(2024, 1, 31),
                                  renewal_count=3))
    engine = BorrowingEngine(ledger, members, store, clock=FakeClock(at(2024, 3, 1)))
    _, failure = engine.renew("T0001", "M001")
    assert failure.kind == FailureKind.RENEWAL_LIMIT_REACHED


def test_renew_returned_loan(engine):
    view = borrow_ok(engine, "M001", "B001")
    engine.return_book(view.transaction.id, "M001")
    _, failure = engine.renew(view.transaction.id, "M001")
    assert failure.kind == FailureKind.NOT_RENEWABLE


def test_renew_checks_owner(engine):
    view = borrow_ok(engine, "M001", "B001")
    _, failure = engine.renew(view.transaction.id, "M003")
    assert failure.kind == FailureKind.FORBIDDEN
    _, failure = engine.renew("T9999", "M001")
    assert failure.kind == FailureKind.NOT_FOUND


def test_renew_without_member_record_uses_basic_period(ledger, store, clock):
    store.create(make_transaction("T0001", "GONE", "B001", clock.now, clock.now + datetime.timedelta(days=3)))
    engine = BorrowingEngine(ledger, MemberDirectory(), store, clock=clock)
    view, failure = engine.renew("T0001", "GONE")
    assert failure is None
    assert view.transaction.due_date == clock.now + datetime.timedelta(days=17)


# ---------------- Queries ----------------
def test_member_summary(engine, clock):
    borrow_ok(engine, "M003", "B001")
    view = borrow_ok(engine, "M003", "B002")
    engine.return_book(view.transaction.id, "M003")
    clock.advance(days=16)
    summary, failure = engine.member_summary("M003")
    assert failure is None
    assert summary["currentBorrowedCount"] == 1
    assert summary["borrowingLimit"] == 3
    assert summary["canBorrowMore"] is True
    assert summary["borrowedBooks"][0]["status"] == "OVERDUE"
    assert summary["outstandingFees"] == "1.00"


def test_member_summary_unknown(engine):
    _, failure = engine.member_summary("NOBODY")
    assert failure.kind == FailureKind.NOT_FOUND


def test_view_derives_overdue(engine, clock):
    view = borrow_ok(engine, "M003", "B001")
    clock.advance(days=15)
    seen, failure = engine.view(view.transaction.id, "M003")
    assert failure is None
    assert seen.status == TransactionStatus.OVERDUE
    assert seen.transaction.status == TransactionStatus.BORROWED
    assert seen.days_overdue == 1


# ---------------- Invariants ----------------
def test_random_sequences_keep_counters_and_limits(ledger, members, store, clock):
    engine = BorrowingEngine(ledger, members, store, clock=clock)
    rng = random.Random(7)
    users = ["M001", "M002", "M003", "M005"]
    books = ["B001", "B002", "B003", "B004", "B005"]
    totals = {b.id: b.total_quantity for b in ledger.books()}

    for _ in range(400):
        action = rng.choice(["borrow", "borrow", "return", "renew", "tick"])
        if action == "borrow":
            engine.borrow(rng.choice(users), rng.choice(books))
        elif action == "tick":
            clock.advance(days=rng.randint(0, 5))
        else:
            candidates = store.list_all()
            if candidates:
                txn = rng.choice(candidates)
                if action == "return":
                    engine.return_book(txn.id, txn.user_id)
                else:
                    engine.renew(txn.id, txn.user_id)

        for book in ledger.books():
            assert 0 <= book.available_quantity <= totals[book.id]
        for user_id in users:
            member = members.get(user_id)
            assert engine.active_count(user_id) <= engine.policy.limit_for(member.membership_type)

    assert ledger.clamped_releases == 0


def test_concurrent_borrows_of_last_copy(ledger, members, store, clock):
    for i in range(8):
        members.register(Member(f"X{i}", f"Reader {i}", "PREMIUM"))
    engine = BorrowingEngine(ledger, members, store, clock=clock)
    results = []
    barrier = threading.Barrier(8)

    def worker(user_id):
        barrier.wait()
        results.append(engine.borrow(user_id, "B003"))

    threads = [threading.Thread(target=worker, args=(f"X{i}",)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [view for view, failure in results if failure is None]
    assert len(winners) == 1
    assert ledger.get("B003").available_quantity == 0
    assert all(failure.kind == FailureKind.UNAVAILABLE for view, failure in results if failure)
