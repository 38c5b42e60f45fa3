"""
ledger.py

Per-book copy counters.

The ledger is the only place `available_quantity` changes. Every operation
returns a ``(value, failure)`` pair where exactly one side is set.
"""

from __future__ import annotations
import dataclasses
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import Entity, Failure, FailureKind, not_found
from .locks import KeyedLocks
from .models import Book

logger = logging.getLogger("library_lending.ledger")


class BookLedger:
    """
    Holds every book and its total/available counts.

    Callers outside the ledger receive copies of `Book`, so the counters can only
    move through `reserve` and `release`.
    """

    def __init__(self, books: Iterable[Book] = ()) -> None:
        self._books: Dict[str, Book] = {}
        self._locks = KeyedLocks()
        self.clamped_releases = 0
        for book in books:
            self.add_book(book)

    # ---------------- Catalogue ----------------
    def add_book(self, book: Book) -> bool:
        """
        Register a book. Returns False if the id is already taken.
        """
        with self._locks.hold(book.id):
            if book.id in self._books:
                logger.debug("Attempt to add existing book: %s", book.id)
                return False
            self._books[book.id] = dataclasses.replace(book)
        logger.info("Added book %s (%d copies)", book.id, book.total_quantity)
        return True

    def get(self, book_id: str) -> Optional[Book]:
        with self._locks.hold(book_id):
            book = self._books.get(book_id)
            return dataclasses.replace(book) if book is not None else None

    def books(self) -> List[Book]:
        return [dataclasses.replace(b) for b in list(self._books.values())]

    # ---------------- Counters ----------------
    def reserve(self, book_id: str) -> Tuple[Optional[Book], Optional[Failure]]:
        """
        Take one copy off the shelf.

        Fails with NotFound for an unknown id and Unavailable when no copy is left.
        """
        with self._locks.hold(book_id):
            book = self._books.get(book_id)
            if book is None:
                return None, not_found(Entity.BOOK, book_id)
            if book.available_quantity <= 0:
                return None, Failure(FailureKind.UNAVAILABLE,
                                     f"Book '{book.title}' ({book_id}) is not available for borrowing",
                                     Entity.BOOK)
            book.available_quantity -= 1
            logger.debug("Reserved copy of %s (%d/%d left)", book_id,
                         book.available_quantity, book.total_quantity)
            return dataclasses.replace(book), None

    def release(self, book_id: str) -> Tuple[Optional[Book], Optional[Failure]]:
        """
        Put one copy back on the shelf, never beyond the total.

        A release on a full shelf means some caller released twice; the counter is
        left at the total and the event is logged and counted in
        `clamped_releases`.
        """
        with self._locks.hold(book_id):
            book = self._books.get(book_id)
            if book is None:
                return None, not_found(Entity.BOOK, book_id)
            if book.available_quantity >= book.total_quantity:
                self.clamped_releases += 1
                logger.warning("Release of %s would exceed total copies (%d); clamped",
                               book_id, book.total_quantity)
            else:
                book.available_quantity += 1
            return dataclasses.replace(book), None

    def reconcile(self, on_loan: Mapping[str, int]) -> List[str]:
        """
        Reset each book's available count to total minus copies on loan.

        `on_loan` maps book id to its number of active transactions; books not
        listed have none. Returns the ids whose stored count was corrected.
        """
        corrected = []
        for book_id in list(self._books):
            with self._locks.hold(book_id):
                book = self._books[book_id]
                loaned = on_loan.get(book_id, 0)
                expected = max(book.total_quantity - loaned, 0)
                if loaned > book.total_quantity:
                    logger.warning("Book %s has %d active loans but only %d copies",
                                   book_id, loaned, book.total_quantity)
                if book.available_quantity != expected:
                    logger.warning("Book %s available count %d disagrees with %d active loans; reset to %d",
                                   book_id, book.available_quantity, loaned, expected)
                    book.available_quantity = expected
                    corrected.append(book_id)
        return corrected

    def is_available(self, book_id: str) -> Tuple[Optional[bool], Optional[Failure]]:
        with self._locks.hold(book_id):
            book = self._books.get(book_id)
            if book is None:
                return None, not_found(Entity.BOOK, book_id)
            return book.is_available, None

    def availability(self, book_id: str) -> Tuple[Optional[dict], Optional[Failure]]:
        """
        Availability summary of a single book for display.
        """
        book = self.get(book_id)
        if book is None:
            return None, not_found(Entity.BOOK, book_id)
        return {
            "bookId": book.id,
            "title": book.title,
            "isAvailable": book.is_available,
            "availableQuantity": book.available_quantity,
            "totalQuantity": book.total_quantity,
            "status": "Available" if book.is_available else "Not Available",
        }, None
