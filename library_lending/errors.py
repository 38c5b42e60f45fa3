"""
errors.py

Failure taxonomy for the lending engine.

Business-rule rejections are plain values (`Failure`) handed back next to the
result, e.g. ``txn, failure = engine.borrow(...)``. Faults of the storage or
configuration layer are exceptions rooted at `LendingError`.
"""

from __future__ import annotations
import dataclasses
import enum
from http import HTTPStatus
from typing import Optional


class FailureKind(str, enum.Enum):
    NOT_FOUND = "NotFound"
    UNAVAILABLE = "Unavailable"
    LIMIT_REACHED = "LimitReached"
    ALREADY_BORROWED = "AlreadyBorrowed"
    ALREADY_RETURNED = "AlreadyReturned"
    RENEWAL_LIMIT_REACHED = "RenewalLimitReached"
    OVERDUE = "Overdue"
    NOT_RENEWABLE = "NotRenewable"
    FORBIDDEN = "Forbidden"
    INVALID_CONDITION = "InvalidCondition"
    INTERNAL = "Internal"


class Entity(str, enum.Enum):
    BOOK = "Book"
    MEMBER = "Member"
    TRANSACTION = "Transaction"


_STATUS_BY_KIND = {
    FailureKind.NOT_FOUND: HTTPStatus.NOT_FOUND,
    FailureKind.FORBIDDEN: HTTPStatus.FORBIDDEN,
    FailureKind.INTERNAL: HTTPStatus.INTERNAL_SERVER_ERROR,
}


@dataclasses.dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str
    entity: Optional[Entity] = None

    @property
    def http_status(self) -> HTTPStatus:
        return _STATUS_BY_KIND.get(self.kind, HTTPStatus.BAD_REQUEST)

    def to_dict(self) -> dict:
        out = {"code": self.kind.value, "message": self.message}
        if self.entity is not None:
            out["entity"] = self.entity.value
        return out


def not_found(entity: Entity, key: str) -> Failure:
    return Failure(FailureKind.NOT_FOUND, f"{entity.value} not found: {key}", entity)


class LendingError(Exception):
    """Base exception for faults outside the business rules."""


class StorageError(LendingError):
    """The storage backend could not read or write a collection."""


class ConfigError(LendingError):
    """A configuration value is missing or malformed."""
