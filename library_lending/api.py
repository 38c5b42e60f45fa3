"""
api.py

Boundary between a transport layer and the engine.

Each handler takes the engine, the authenticated caller and a plain request
body, and returns ``(HTTPStatus, body)`` where body is
``{"success": bool, "message": str, "data": ...}``. Business failures keep
their own message; storage faults are logged and answered with a 500.
"""

from __future__ import annotations
import dataclasses
import functools
import logging
from http import HTTPStatus
from typing import Any, Callable, Dict, Optional, Tuple

from . import query
from .engine import BorrowingEngine
from .errors import Failure, LendingError

logger = logging.getLogger("library_lending.api")

Response = Tuple[HTTPStatus, Dict[str, Any]]


@dataclasses.dataclass(frozen=True)
class Caller:
    user_id: str
    is_admin: bool = False


def _ok(message: str, data: Any, status: HTTPStatus = HTTPStatus.OK) -> Response:
    return status, {"success": True, "message": message, "data": data}


def _fail(failure: Failure) -> Response:
    return failure.http_status, {"success": False, "message": failure.message, "error": failure.to_dict()}


def _bad_request(message: str) -> Response:
    return HTTPStatus.BAD_REQUEST, {"success": False, "message": message}


def _guarded(handler: Callable[..., Response]) -> Callable[..., Response]:
    @functools.wraps(handler)
    def wrapper(*args, **kwargs) -> Response:
        try:
            return handler(*args, **kwargs)
        except LendingError as exc:
            logger.exception("Internal error in %s: %s", handler.__name__, exc)
            return HTTPStatus.INTERNAL_SERVER_ERROR, {
                "success": False,
                "message": "Internal error",
                "error": {"code": "Internal", "message": str(exc)},
            }
    return wrapper


@_guarded
def borrow(engine: BorrowingEngine, caller: Caller, body: Optional[Dict[str, Any]]) -> Response:
    body = body or {}
    book_id = body.get("bookId")
    if not book_id:
        return _bad_request("bookId is required")
    view, failure = engine.borrow(caller.user_id, str(book_id), body.get("notes"))
    if failure:
        return _fail(failure)
    return _ok("Book borrowed successfully", {"transaction": view.to_dict()}, HTTPStatus.CREATED)


@_guarded
def return_book(engine: BorrowingEngine, caller: Caller, body: Optional[Dict[str, Any]]) -> Response:
    body = body or {}
    transaction_id = body.get("transactionId")
    if not transaction_id:
        return _bad_request("transactionId is required")
    view, failure = engine.return_book(str(transaction_id), caller.user_id,
                                       condition=body.get("condition"),
                                       notes=body.get("notes"),
                                       privileged=caller.is_admin)
    if failure:
        return _fail(failure)
    return _ok("Book returned successfully", {"transaction": view.to_dict()})


@_guarded
def renew(engine: BorrowingEngine, caller: Caller, transaction_id: str) -> Response:
    view, failure = engine.renew(str(transaction_id), caller.user_id)
    if failure:
        return _fail(failure)
    return _ok("Book renewed successfully", {
        "transaction": view.to_dict(),
        "newDueDate": view.transaction.due_date.isoformat(),
        "renewalsRemaining": view.renewals_remaining,
    })


@_guarded
def list_transactions(engine: BorrowingEngine, caller: Caller, params: Optional[Dict[str, Any]] = None) -> Response:
    """
    Borrowing history. Members only see their own records; admins may filter by
    any userId.
    """
    params = params or {}
    user_id = params.get("userId") if caller.is_admin else caller.user_id
    try:
        page = int(params.get("page", 1))
        limit = int(params.get("limit", 10))
    except (TypeError, ValueError):
        return _bad_request("page and limit must be integers")
    data = query.list_transactions(
        engine.store, engine.ledger, engine.members, engine.clock(),
        user_id=user_id,
        status=params.get("status"),
        sort_by=params.get("sortBy", query.DEFAULT_SORT),
        sort_order=params.get("sortOrder", "desc"),
        page=page,
        limit=limit,
    )
    return _ok("Transactions retrieved successfully", data)


_FLAGS = {"true": True, "1": True, "yes": True, "false": False, "0": False, "no": False}


@_guarded
def search_books(engine: BorrowingEngine, params: Optional[Dict[str, Any]] = None) -> Response:
    """
    Catalogue search. Open to any caller.
    """
    params = params or {}
    try:
        page = int(params.get("page", 1))
        limit = int(params.get("limit", 10))
    except (TypeError, ValueError):
        return _bad_request("page and limit must be integers")
    available = params.get("available")
    if available is not None and not isinstance(available, bool):
        flag = _FLAGS.get(str(available).strip().lower())
        if flag is None:
            return _bad_request("available must be true or false")
        available = flag
    data = query.search_books(
        engine.ledger,
        search=params.get("search"),
        genre=params.get("genre"),
        author=params.get("author"),
        available=available,
        sort_by=params.get("sortBy", query.DEFAULT_BOOK_SORT),
        sort_order=params.get("sortOrder", "asc"),
        page=page,
        limit=limit,
    )
    return _ok("Books retrieved successfully", data)


@_guarded
def book_availability(engine: BorrowingEngine, book_id: str) -> Response:
    data, failure = engine.ledger.availability(str(book_id))
    if failure:
        return _fail(failure)
    return _ok("Availability retrieved successfully", data)


@_guarded
def borrowed_books(engine: BorrowingEngine, caller: Caller, user_id: str) -> Response:
    if caller.user_id != user_id and not caller.is_admin:
        return HTTPStatus.FORBIDDEN, {
            "success": False,
            "message": "Access denied. You can only view your own borrowed books.",
        }
    data, failure = engine.member_summary(user_id)
    if failure:
        return _fail(failure)
    return _ok("Borrowed books retrieved successfully", data)
