"""Sample dataset loaded on startup in place of a database."""

import logging
from datetime import timedelta

from library import Library

logger = logging.getLogger(__name__)

SAMPLE_USERS = [
    {"username": "admin", "password": "password", "name": "Administrator", "role": "admin"},
    {"username": "staff", "password": "password", "name": "John Doe", "role": "staff"},
]

SAMPLE_BOOKS = [
    {
        "isbn": "9780743273565",
        "title": "The Great Gatsby",
        "author": "F. Scott Fitzgerald",
        "publisher": "Scribner",
        "publication_date": "1925",
        "category": "Fiction",
        "description": "Set in the Jazz Age on Long Island, this novel depicts narrator Nick Carraway's "
                       "interactions with mysterious millionaire Jay Gatsby and Gatsby's obsession to "
                       "reunite with his former lover, Daisy Buchanan.",
        "status": "Available",
    },
    {
        "isbn": "9780061120084",
        "title": "To Kill a Mockingbird",
        "author": "Harper Lee",
        "publisher": "HarperCollins",
        "publication_date": "1960",
        "category": "Fiction",
        "description": "The story of young Scout Finch and her father, attorney Atticus Finch, who defends "
                       "a Black man accused of raping a white woman in the American South.",
        "status": "Available",
    },
    {
        "isbn": "9781501173219",
        "title": "The Silent Patient",
        "author": "Alex Michaelides",
        "publisher": "Celadon Books",
        "publication_date": "2019",
        "category": "Fiction",
        "description": "A psychological thriller about a woman who shoots her husband and then never "
                       "speaks another word.",
        "status": "Available",
    },
    {
        "isbn": "9780451524935",
        "title": "1984",
        "author": "George Orwell",
        "publisher": "Signet Classics",
        "publication_date": "1949",
        "category": "Fiction",
        "description": "A dystopian novel set in a totalitarian society ruled by the Party, which has total "
                       "control over every aspect of people's lives.",
        "status": "Checked Out",
    },
    {
        "isbn": "9780062315007",
        "title": "The Alchemist",
        "author": "Paulo Coelho",
        "publisher": "HarperOne",
        "publication_date": "1988",
        "category": "Fiction",
        "description": "A philosophical novel about a young Andalusian shepherd who dreams of finding a "
                       "worldly treasure.",
        "status": "Checked Out",
    },
    {
        "isbn": "9780399590504",
        "title": "Educated",
        "author": "Tara Westover",
        "publisher": "Random House",
        "publication_date": "2018",
        "category": "Non-Fiction",
        "description": "A memoir about a woman who leaves her survivalist family and goes on to earn a PhD "
                       "from Cambridge University.",
        "status": "Checked Out",
    },
    {
        "isbn": "9780062316097",
        "title": "Sapiens",
        "author": "Yuval Noah Harari",
        "publisher": "Harper",
        "publication_date": "2015",
        "category": "Non-Fiction",
        "description": "A brief history of humankind, exploring the evolution of humans from the Stone Age "
                       "to the 21st century.",
        "status": "Checked Out",
    },
]

SAMPLE_PATRONS = [
    {"name": "Maria Santos", "contact_info": "maria.santos@example.com"},
    {"name": "James Wilson", "contact_info": "james.wilson@example.com"},
    {"name": "Ana Reyes", "contact_info": "ana.reyes@example.com"},
    {"name": "Emily Johnson", "contact_info": "emily.johnson@example.com"},
    {"name": "Michael Brown", "contact_info": "michael.brown@example.com"},
    {"name": "David Lee", "contact_info": "david.lee@example.com"},
    {"name": "Robert Chen", "contact_info": "robert.chen@example.com"},
]


def _sample_transactions(now):
    return [
        {"transaction_type": "Checkout", "book_id": 1, "patron_id": 1,
         "checkout_date": now, "due_date": now + timedelta(days=14)},
        {"transaction_type": "Return", "book_id": 2, "patron_id": 2,
         "checkout_date": now - timedelta(days=1), "return_date": now},
        {"transaction_type": "New Book", "book_id": 3},
        {"transaction_type": "New Patron", "patron_id": 7},
        {"transaction_type": "Checkout", "book_id": 4, "patron_id": 3,
         "checkout_date": now - timedelta(days=21), "due_date": now - timedelta(days=7)},
        {"transaction_type": "Checkout", "book_id": 5, "patron_id": 4,
         "checkout_date": now - timedelta(days=16), "due_date": now - timedelta(days=8)},
        {"transaction_type": "Checkout", "book_id": 6, "patron_id": 5,
         "checkout_date": now - timedelta(days=12), "due_date": now - timedelta(days=5)},
        {"transaction_type": "Checkout", "book_id": 7, "patron_id": 6,
         "checkout_date": now - timedelta(days=10), "due_date": now - timedelta(days=3)},
    ]


def seed_sample_data(library: Library) -> None:
    """Fill an empty store with the demo dataset.

    Books and patrons are restored as-is rather than registered, so the only
    ledger entries are the eight historical transactions below.
    """
    store = library.store
    if not store.is_empty():
        raise RuntimeError("Refusing to seed a store that already holds data.")

    for user in SAMPLE_USERS:
        store.create_user(user)
    for book in SAMPLE_BOOKS:
        store.create_book(book)
    for patron in SAMPLE_PATRONS:
        store.create_patron({**patron, "membership_status": "Active"})
    for entry in _sample_transactions(library.now()):
        library.import_transaction(entry)

    logger.info(
        "Seeded %d users, %d books, %d patrons, %d transactions",
        len(store.users), len(store.books), len(store.patrons), len(store.transactions),
    )
