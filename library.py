"""Catalog, patron registry and circulation rules.

``Library`` sits on top of an ``EntityStore``.  It is the only component that
moves a book between *Available* and *Checked Out*, and it answers every
question that needs the ledger: which checkouts are still open, which of
those are overdue, and the dashboard aggregates built from them.  All views
are recomputed from the store on each call.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Union

from entities import (
    BOOK_CATEGORIES,
    Book,
    BookStatus,
    CheckoutTransaction,
    MembershipStatus,
    Patron,
    ReturnTransaction,
    TransactionType,
    _LedgerEntry,
)
from store import EntityStore

logger = logging.getLogger(__name__)

_DAY = timedelta(days=1)


class LibraryError(Exception):
    """Base class for rule violations reported by the library."""


class ValidationError(LibraryError):
    """The request is well-formed but its values are unacceptable (e.g. duplicate ISBN)."""


class NotFoundError(LibraryError):
    """A referenced book or patron does not exist."""


class InvalidStateError(LibraryError):
    """The operation is not allowed from the book's current status."""


@dataclass
class OverdueCheckout:
    checkout: CheckoutTransaction
    days_late: int
    book: Optional[Book] = None
    patron: Optional[Patron] = None


@dataclass
class Activity:
    transaction: _LedgerEntry
    book: Optional[Book] = None
    patron: Optional[Patron] = None


@dataclass
class CurrentLoan:
    checkout: CheckoutTransaction
    book: Optional[Book]
    days_overdue: int


@dataclass
class PatronSummary:
    patron: Patron
    total_transactions: int
    checkouts: int
    returns: int
    current_loans: List[CurrentLoan] = field(default_factory=list)


def normalize_isbn(raw: Optional[str]) -> str:
    """Drop spaces and hyphens so scanned and typed ISBNs compare equal."""
    if raw is None:
        return ""
    return raw.replace("-", "").replace(" ", "").strip().upper()


def to_datetime(value: Union[date, datetime]) -> datetime:
    """Coerce a due date to naive local time.

    Plain dates mean midnight; aware datetimes are shifted to local time so
    they compare with the clock.
    """
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min)
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def _newest_first(entries: List[_LedgerEntry]) -> List[_LedgerEntry]:
    return sorted(entries, key=lambda t: (t.timestamp, t.id), reverse=True)


class Library:
    """Business rules over an entity store."""

    def __init__(self, store: EntityStore) -> None:
        self.store = store

    def now(self) -> datetime:
        return self.store.clock()

    def close(self) -> None:
        self.store.close()

    # ------------------------- Catalog ------------------------- #
    def list_books(self, category: Optional[str] = None, status: Optional[str] = None,
                   q: Optional[str] = None) -> List[Book]:
        books = self.store.get_all_books()
        if category:
            books = [b for b in books if b.category == category]
        if status:
            books = [b for b in books if b.status == status]
        if q:
            needle = q.strip().lower()
            isbn_needle = normalize_isbn(q)
            books = [
                b for b in books
                if needle in b.title.lower()
                or needle in b.author.lower()
                or (isbn_needle and isbn_needle in b.isbn)
            ]
        return books

    def find_book(self, book_id: int) -> Optional[Book]:
        return self.store.get_book(book_id)

    def find_book_by_isbn(self, isbn: str) -> Optional[Book]:
        return self.store.get_book_by_isbn(normalize_isbn(isbn))

    def add_book(self, data: Dict[str, Any]) -> Book:
        """Catalog a new book and record a *New Book* transaction."""
        payload = dict(data)
        payload["isbn"] = normalize_isbn(payload.get("isbn"))
        if not payload["isbn"]:
            raise ValidationError("ISBN cannot be empty.")
        if self.store.get_book_by_isbn(payload["isbn"]):
            raise ValidationError(f"Book with ISBN {payload['isbn']} already exists.")
        payload.setdefault("status", BookStatus.AVAILABLE.value)
        if payload["status"] is None:
            payload["status"] = BookStatus.AVAILABLE.value
        if payload["status"] == BookStatus.CHECKED_OUT.value:
            raise InvalidStateError("A new book cannot start as Checked Out; use checkout")
        payload["times_checked_out"] = 0
        payload["last_borrowed"] = None

        book = self.store.create_book(payload)
        self.store.create_transaction({
            "transaction_type": TransactionType.NEW_BOOK.value,
            "book_id": book.id,
        })
        logger.info("Book %s added: %s", book.id, book.title)
        return book

    def update_book(self, book_id: int, changes: Dict[str, Any]) -> Book:
        """Apply an admin edit.

        The *Checked Out* status is owned by circulation: an edit may neither
        set it nor clear it.
        """
        book = self.store.get_book(book_id)
        if book is None:
            raise NotFoundError("Book not found")
        changes = dict(changes)

        if "isbn" in changes:
            changes["isbn"] = normalize_isbn(changes["isbn"])
            if not changes["isbn"]:
                raise ValidationError("ISBN cannot be empty.")
            other = self.store.get_book_by_isbn(changes["isbn"])
            if other is not None and other.id != book_id:
                raise ValidationError(f"Book with ISBN {changes['isbn']} already exists.")

        new_status = changes.get("status")
        if new_status is not None and new_status != book.status:
            checked_out = BookStatus.CHECKED_OUT.value
            if checked_out in (new_status, book.status):
                raise InvalidStateError(
                    f"Cannot change status from {book.status} to {new_status}; use checkout/return"
                )

        for managed in ("id", "added_date", "times_checked_out", "last_borrowed"):
            changes.pop(managed, None)
        return self.store.update_book(book_id, changes)

    def remove_book(self, book_id: int) -> bool:
        removed = self.store.delete_book(book_id)
        if removed:
            logger.info("Book %s removed; its ledger entries are kept", book_id)
        return removed

    # ------------------------- Patrons ------------------------- #
    def list_patrons(self, status: Optional[str] = None, q: Optional[str] = None) -> List[Patron]:
        patrons = self.store.get_all_patrons()
        if status:
            patrons = [p for p in patrons if p.membership_status == status]
        if q:
            needle = q.strip().lower()
            patrons = [
                p for p in patrons
                if needle in p.name.lower() or needle in p.contact_info.lower()
            ]
        return patrons

    def find_patron(self, patron_id: int) -> Optional[Patron]:
        return self.store.get_patron(patron_id)

    def register_patron(self, data: Dict[str, Any]) -> Patron:
        """Register a patron and record a *New Patron* transaction."""
        payload = dict(data)
        if payload.get("membership_status") is None:
            payload["membership_status"] = MembershipStatus.ACTIVE.value
        patron = self.store.create_patron(payload)
        self.store.create_transaction({
            "transaction_type": TransactionType.NEW_PATRON.value,
            "patron_id": patron.id,
        })
        logger.info("Patron %s registered: %s", patron.id, patron.name)
        return patron

    def update_patron(self, patron_id: int, changes: Dict[str, Any]) -> Patron:
        changes = {k: v for k, v in changes.items() if k not in ("id", "registered_date")}
        patron = self.store.update_patron(patron_id, changes)
        if patron is None:
            raise NotFoundError("Patron not found")
        return patron

    def remove_patron(self, patron_id: int) -> bool:
        removed = self.store.delete_patron(patron_id)
        if removed:
            logger.info("Patron %s removed; its ledger entries are kept", patron_id)
        return removed

    # ------------------------- Circulation ------------------------- #
    def checkout(self, book_id: int, patron_id: int, due_date: Union[date, datetime],
                 notes: Optional[str] = None) -> CheckoutTransaction:
        """Lend an *Available* book to a patron."""
        book = self.store.get_book(book_id)
        if book is None:
            raise NotFoundError("Book not found")
        if book.status != BookStatus.AVAILABLE.value:
            logger.warning("Checkout refused for book %s: status is %s", book_id, book.status)
            raise InvalidStateError("Book is not available for checkout")
        if self.store.get_patron(patron_id) is None:
            raise NotFoundError("Patron not found")

        return self._record({
            "transaction_type": TransactionType.CHECKOUT.value,
            "book_id": book_id,
            "patron_id": patron_id,
            "checkout_date": self.now(),
            "due_date": to_datetime(due_date),
            "notes": notes,
        })

    def return_book(self, book_id: int, notes: Optional[str] = None) -> ReturnTransaction:
        """Close the open checkout of a *Checked Out* book."""
        book = self.store.get_book(book_id)
        if book is None:
            raise NotFoundError("Book not found")
        if book.status != BookStatus.CHECKED_OUT.value:
            logger.warning("Return refused for book %s: status is %s", book_id, book.status)
            raise InvalidStateError("Book is not checked out")
        checkout = self.open_checkout_for(book_id)
        if checkout is None:
            raise InvalidStateError("No active checkout found for this book")

        return self._record({
            "transaction_type": TransactionType.RETURN.value,
            "book_id": book_id,
            "patron_id": checkout.patron_id,
            "checkout_date": checkout.checkout_date,
            "checkout_id": checkout.id,
            "return_date": self.now(),
            "notes": notes,
        })

    def import_transaction(self, data: Dict[str, Any]) -> _LedgerEntry:
        """Append a historical entry and apply its status effect, skipping preconditions."""
        return self._record(data)

    def _record(self, data: Dict[str, Any]) -> _LedgerEntry:
        entry = self.store.create_transaction(data)
        book_id = getattr(entry, "book_id", None)
        book = self.store.get_book(book_id) if book_id is not None else None
        if book is None:
            return entry

        if entry.transaction_type == TransactionType.CHECKOUT.value:
            self.store.update_book(book.id, {
                "status": BookStatus.CHECKED_OUT.value,
                "times_checked_out": (book.times_checked_out or 0) + 1,
                "last_borrowed": entry.checkout_date,
            })
            logger.info("Book %s checked out to patron %s, due %s",
                        book.id, entry.patron_id, entry.due_date.date())
        elif entry.transaction_type == TransactionType.RETURN.value:
            self.store.update_book(book.id, {"status": BookStatus.AVAILABLE.value})
            logger.info("Book %s returned by patron %s", book.id, entry.patron_id)
        return entry

    # ------------------------- Derived views ------------------------- #
    def open_checkouts(self) -> List[CheckoutTransaction]:
        """Checkouts that no Return refers to, oldest first."""
        ledger = self.store.get_all_transactions()
        closed = {
            t.checkout_id for t in ledger
            if t.transaction_type == TransactionType.RETURN.value and t.checkout_id is not None
        }
        return [
            t for t in ledger
            if t.transaction_type == TransactionType.CHECKOUT.value and t.id not in closed
        ]

    def open_checkout_for(self, book_id: int) -> Optional[CheckoutTransaction]:
        candidates = [t for t in self.open_checkouts() if t.book_id == book_id]
        if not candidates:
            return None
        return max(candidates, key=lambda t: (t.timestamp, t.id))

    @staticmethod
    def days_late(due_date: datetime, now: datetime) -> int:
        """Whole days elapsed since ``due_date``; 0 if not yet due."""
        if now <= due_date:
            return 0
        return math.floor((now - due_date) / _DAY)

    def overdue(self, now: Optional[datetime] = None) -> List[OverdueCheckout]:
        """Open checkouts past their due date, most late first."""
        now = now or self.now()
        items = [
            OverdueCheckout(
                checkout=t,
                days_late=self.days_late(t.due_date, now),
                book=self.store.get_book(t.book_id),
                patron=self.store.get_patron(t.patron_id),
            )
            for t in self.open_checkouts()
            if t.due_date < now
        ]
        items.sort(key=lambda o: (o.checkout.due_date, o.checkout.id))
        return items

    def dashboard_metrics(self) -> Dict[str, int]:
        books = self.store.get_all_books()
        patrons = self.store.get_all_patrons()
        return {
            "totalBooks": len(books),
            "booksCheckedOut": sum(1 for b in books if b.status == BookStatus.CHECKED_OUT.value),
            "activePatrons": sum(1 for p in patrons if p.membership_status == MembershipStatus.ACTIVE.value),
            "overdueBooks": len(self.overdue()),
        }

    def category_stats(self) -> List[Dict[str, Any]]:
        counts: Dict[str, int] = {}
        for book in self.store.get_all_books():
            counts[book.category] = counts.get(book.category, 0) + 1
        return [
            {"category": category, "count": counts[category]}
            for category in BOOK_CATEGORIES
            if counts.get(category)
        ]

    def _enrich(self, entry: _LedgerEntry) -> Activity:
        book_id = getattr(entry, "book_id", None)
        patron_id = getattr(entry, "patron_id", None)
        return Activity(
            transaction=entry,
            book=self.store.get_book(book_id) if book_id is not None else None,
            patron=self.store.get_patron(patron_id) if patron_id is not None else None,
        )

    def recent_activity(self, limit: int = 5) -> List[Activity]:
        if limit <= 0:
            return []
        entries = _newest_first(self.store.get_all_transactions())[:limit]
        return [self._enrich(t) for t in entries]

    def transactions(self, transaction_type: Optional[str] = None, start: Optional[datetime] = None,
                     end: Optional[datetime] = None) -> List[_LedgerEntry]:
        """The ledger in id order, optionally narrowed by type and timestamp range."""
        entries = self.store.get_all_transactions()
        if transaction_type:
            entries = [t for t in entries if t.transaction_type == transaction_type]
        if start is not None:
            start = to_datetime(start)
            entries = [t for t in entries if t.timestamp >= start]
        if end is not None:
            end = to_datetime(end)
            entries = [t for t in entries if t.timestamp <= end]
        return entries

    def transactions_for_book(self, book_id: int) -> List[_LedgerEntry]:
        return _newest_first(self.store.transactions.filter(
            lambda t: getattr(t, "book_id", None) == book_id
        ))

    def transactions_for_patron(self, patron_id: int) -> List[_LedgerEntry]:
        if self.store.get_patron(patron_id) is None:
            return []
        return _newest_first(self.store.transactions.filter(
            lambda t: getattr(t, "patron_id", None) == patron_id
        ))

    def patron_summary(self, patron_id: int) -> PatronSummary:
        patron = self.store.get_patron(patron_id)
        if patron is None:
            raise NotFoundError("Patron not found")
        history = self.transactions_for_patron(patron_id)
        now = self.now()
        loans = [
            CurrentLoan(
                checkout=t,
                book=self.store.get_book(t.book_id),
                days_overdue=self.days_late(t.due_date, now),
            )
            for t in self.open_checkouts()
            if t.patron_id == patron_id
        ]
        return PatronSummary(
            patron=patron,
            total_transactions=len(history),
            checkouts=sum(1 for t in history if t.transaction_type == TransactionType.CHECKOUT.value),
            returns=sum(1 for t in history if t.transaction_type == TransactionType.RETURN.value),
            current_loans=loans,
        )

    def get_statistics(self) -> Dict[str, Any]:
        """Get library statistics."""
        return {
            "total_books": len(self.store.books),
            "total_patrons": len(self.store.patrons),
            "total_transactions": len(self.store.transactions),
            "open_checkouts": len(self.open_checkouts()),
            "overdue": len(self.overdue()),
        }
