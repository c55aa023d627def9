"""Domain models for the library circulation service.

Books, patrons and users are pydantic models whose attributes are snake_case
in Python and camelCase on the wire.  Ledger entries form a discriminated
union keyed on ``transactionType`` so that each kind of transaction only
carries the fields that belong to it: a checkout always has a due date, a
patron registration never references a book, and so on.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BookCategory(str, Enum):
    FICTION = "Fiction"
    NON_FICTION = "Non-Fiction"
    REFERENCE = "Reference"
    PERIODICALS = "Periodicals"
    OTHER = "Other"


class BookStatus(str, Enum):
    AVAILABLE = "Available"
    CHECKED_OUT = "Checked Out"
    RESERVED = "Reserved"
    PROCESSING = "Processing"
    LOST = "Lost"
    DAMAGED = "Damaged"


class MembershipStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    SUSPENDED = "Suspended"


class TransactionType(str, Enum):
    CHECKOUT = "Checkout"
    RETURN = "Return"
    NEW_BOOK = "New Book"
    NEW_PATRON = "New Patron"
    # Reference value only; overdue-ness is computed, never recorded.
    OVERDUE = "Overdue"


BOOK_CATEGORIES: List[str] = [c.value for c in BookCategory]
BOOK_STATUS: List[str] = [s.value for s in BookStatus]
MEMBERSHIP_STATUS: List[str] = [s.value for s in MembershipStatus]
TRANSACTION_TYPES: List[str] = [t.value for t in TransactionType]


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase aliases, enum values stored as strings."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)


class Book(CamelModel):
    id: int
    isbn: str
    title: str
    author: str
    publisher: str
    publication_date: str
    category: BookCategory
    description: Optional[str] = None
    status: BookStatus = BookStatus.AVAILABLE
    added_date: datetime
    times_checked_out: int = 0
    last_borrowed: Optional[datetime] = None


class Patron(CamelModel):
    id: int
    name: str
    contact_info: str
    membership_status: MembershipStatus = MembershipStatus.ACTIVE
    registered_date: datetime


class UserProfile(CamelModel):
    """What the API reveals about a staff account."""

    id: int
    username: str
    name: str
    role: str = "staff"


class User(UserProfile):
    # Plaintext; this is a demo-grade credential table.
    password: str

    def profile(self) -> UserProfile:
        return UserProfile(id=self.id, username=self.username, name=self.name, role=self.role)


# --- Ledger entries ---

class _LedgerEntry(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, use_enum_values=True, extra="forbid"
    )

    id: int
    notes: Optional[str] = None
    timestamp: datetime


class CheckoutTransaction(_LedgerEntry):
    transaction_type: Literal["Checkout"] = "Checkout"
    book_id: int
    patron_id: int
    checkout_date: datetime
    due_date: datetime


class ReturnTransaction(_LedgerEntry):
    transaction_type: Literal["Return"] = "Return"
    book_id: int
    patron_id: Optional[int] = None
    checkout_date: Optional[datetime] = None
    return_date: datetime
    # Id of the Checkout this entry closes.  Only historical entries lack it.
    checkout_id: Optional[int] = None


class NewBookTransaction(_LedgerEntry):
    transaction_type: Literal["New Book"] = "New Book"
    book_id: int


class NewPatronTransaction(_LedgerEntry):
    transaction_type: Literal["New Patron"] = "New Patron"
    patron_id: int


Transaction = Annotated[
    Union[CheckoutTransaction, ReturnTransaction, NewBookTransaction, NewPatronTransaction],
    Field(discriminator="transaction_type"),
]

TRANSACTION_VARIANTS: Dict[str, Type[_LedgerEntry]] = {
    TransactionType.CHECKOUT.value: CheckoutTransaction,
    TransactionType.RETURN.value: ReturnTransaction,
    TransactionType.NEW_BOOK.value: NewBookTransaction,
    TransactionType.NEW_PATRON.value: NewPatronTransaction,
}
