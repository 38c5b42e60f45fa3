"""
seed.py

Sample catalogue and members for a fresh data directory.
"""

from __future__ import annotations
import logging
import pathlib
from typing import List

from .ledger import BookLedger
from .members import MemberDirectory
from .models import Book, Member
from .persistence import save_library
from .store import InMemoryTransactionStore

logger = logging.getLogger("library_lending.seed")


def sample_books() -> List[Book]:
    return [
        Book("B001", "The Great Gatsby", 5, author="F. Scott Fitzgerald",
             isbn="978-0-7432-7356-5", genre="Fiction"),
        Book("B002", "To Kill a Mockingbird", 4, author="Harper Lee",
             isbn="978-0-06-112008-4", genre="Fiction"),
        Book("B003", "Introduction to Algorithms", 3, author="Thomas H. Cormen",
             isbn="978-0-262-03384-8", genre="Technology"),
        Book("B004", "The Catcher in the Rye", 6, author="J.D. Salinger",
             isbn="978-0-316-76948-0", genre="Fiction"),
        Book("B005", "A Brief History of Time", 3, author="Stephen Hawking",
             isbn="978-0-553-10953-5", genre="Science"),
    ]


def sample_members() -> List[Member]:
    return [
        Member("M001", "John Doe", "PREMIUM", email="john@library.com"),
        Member("M002", "Jane Smith", "STUDENT", email="jane@library.com"),
        Member("M003", "Mike Johnson", "BASIC", email="mike@library.com"),
        Member("M004", "Sarah Wilson", "PREMIUM", email="sarah@library.com"),
        Member("M005", "David Brown", "STUDENT", email="david@library.com"),
    ]


def seed(data_dir: pathlib.Path) -> None:
    """
    Write the sample books and members, and an empty transaction file, to
    `data_dir`, replacing whatever is there.
    """
    save_library(pathlib.Path(data_dir), BookLedger(sample_books()), MemberDirectory(sample_members()),
                 InMemoryTransactionStore())
    logger.info("Seeded %s", data_dir)
