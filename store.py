"""In-memory entity store.

Holds books, patrons, users and the transaction ledger, each keyed by an
auto-incrementing integer id.  The store enforces nothing beyond unique
generated ids: there are no foreign keys, so deleting a book or patron leaves
the ledger entries that reference it untouched.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

from entities import Book, Patron, TRANSACTION_VARIANTS, User, _LedgerEntry

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
T = TypeVar("T")


class Collection(Generic[T]):
    """Id-keyed map of one entity type."""

    def __init__(self, model: Type[T], clock: Clock, timestamp_field: Optional[str] = None) -> None:
        self.model = model
        self._clock = clock
        self._timestamp_field = timestamp_field
        self._items: Dict[int, T] = {}
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._items)

    def all(self) -> List[T]:
        return list(self._items.values())

    def get(self, item_id: int) -> Optional[T]:
        return self._items.get(item_id)

    def find(self, predicate: Callable[[T], bool]) -> Optional[T]:
        return next((item for item in self._items.values() if predicate(item)), None)

    def filter(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self._items.values() if predicate(item)]

    def create(self, data: Dict[str, Any]) -> T:
        """Validate ``data`` into a new entity with the next id and a creation stamp."""
        payload = dict(data)
        payload["id"] = self._next_id
        if self._timestamp_field:
            payload[self._timestamp_field] = self._clock()
        item = self.model.model_validate(payload)
        self._items[item.id] = item
        self._next_id += 1
        return item

    def update(self, item_id: int, changes: Dict[str, Any]) -> Optional[T]:
        """Merge ``changes`` into an existing entity; None when the id is unknown."""
        existing = self._items.get(item_id)
        if existing is None:
            return None
        merged = existing.model_dump()
        merged.update(changes)
        item = self.model.model_validate(merged)
        self._items[item_id] = item
        return item

    def delete(self, item_id: int) -> bool:
        return self._items.pop(item_id, None) is not None

    def clear(self) -> None:
        self._items.clear()
        self._next_id = 1


class Ledger:
    """Append-only list of transactions."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._entries: Dict[int, _LedgerEntry] = {}
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._entries)

    def all(self) -> List[_LedgerEntry]:
        return list(self._entries.values())

    def get(self, entry_id: int) -> Optional[_LedgerEntry]:
        return self._entries.get(entry_id)

    def filter(self, predicate: Callable[[_LedgerEntry], bool]) -> List[_LedgerEntry]:
        return [entry for entry in self._entries.values() if predicate(entry)]

    def append(self, data: Dict[str, Any]) -> _LedgerEntry:
        """Record a new entry.  ``data["transaction_type"]`` picks the variant."""
        kind = data.get("transaction_type")
        variant = TRANSACTION_VARIANTS.get(kind)
        if variant is None:
            raise ValueError(f"Unsupported transaction type: {kind!r}")
        payload = dict(data)
        payload["id"] = self._next_id
        payload["timestamp"] = self._clock()
        entry = variant.model_validate(payload)
        self._entries[entry.id] = entry
        self._next_id += 1
        return entry

    def clear(self) -> None:
        self._entries.clear()
        self._next_id = 1


class EntityStore:
    """Owns every collection of the application.

    Constructed explicitly and handed to whoever needs it.  Starts empty;
    ``seed.seed_sample_data`` fills it.  ``close()`` discards everything,
    there is nothing to flush.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock: Clock = clock or datetime.now
        self.books: Collection[Book] = Collection(Book, self.clock, "added_date")
        self.patrons: Collection[Patron] = Collection(Patron, self.clock, "registered_date")
        self.users: Collection[User] = Collection(User, self.clock)
        self.transactions = Ledger(self.clock)

    def is_empty(self) -> bool:
        return not (self.books or self.patrons or self.users or self.transactions)

    def close(self) -> None:
        logger.info(
            "Discarding store: %d books, %d patrons, %d transactions",
            len(self.books), len(self.patrons), len(self.transactions),
        )
        for collection in (self.books, self.patrons, self.users, self.transactions):
            collection.clear()

    # ------------------------- Books ------------------------- #
    def get_all_books(self) -> List[Book]:
        return self.books.all()

    def get_book(self, book_id: int) -> Optional[Book]:
        return self.books.get(book_id)

    def get_book_by_isbn(self, isbn: str) -> Optional[Book]:
        return self.books.find(lambda b: b.isbn == isbn)

    def create_book(self, data: Dict[str, Any]) -> Book:
        return self.books.create(data)

    def update_book(self, book_id: int, changes: Dict[str, Any]) -> Optional[Book]:
        return self.books.update(book_id, changes)

    def delete_book(self, book_id: int) -> bool:
        return self.books.delete(book_id)

    # ------------------------- Patrons ------------------------- #
    def get_all_patrons(self) -> List[Patron]:
        return self.patrons.all()

    def get_patron(self, patron_id: int) -> Optional[Patron]:
        return self.patrons.get(patron_id)

    def create_patron(self, data: Dict[str, Any]) -> Patron:
        return self.patrons.create(data)

    def update_patron(self, patron_id: int, changes: Dict[str, Any]) -> Optional[Patron]:
        return self.patrons.update(patron_id, changes)

    def delete_patron(self, patron_id: int) -> bool:
        return self.patrons.delete(patron_id)

    # ------------------------- Transactions ------------------------- #
    def get_all_transactions(self) -> List[_LedgerEntry]:
        return self.transactions.all()

    def get_transaction(self, transaction_id: int) -> Optional[_LedgerEntry]:
        return self.transactions.get(transaction_id)

    def create_transaction(self, data: Dict[str, Any]) -> _LedgerEntry:
        return self.transactions.append(data)

    # ------------------------- Users ------------------------- #
    def get_user(self, user_id: int) -> Optional[User]:
        return self.users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self.users.find(lambda u: u.username == username)

    def create_user(self, data: Dict[str, Any]) -> User:
        if self.get_user_by_username(data.get("username", "")) is not None:
            raise ValueError(f"User {data.get('username')!r} already exists.")
        return self.users.create(data)
