import pytest

from seed import SAMPLE_BOOKS, SAMPLE_PATRONS, seed_sample_data


def test_seed_contents(seeded):
    store = seeded.store
    assert len(store.books) == len(SAMPLE_BOOKS) == 7
    assert len(store.patrons) == len(SAMPLE_PATRONS) == 7
    assert len(store.transactions) == 8
    assert {u.username for u in store.users.all()} == {"admin", "staff"}


def test_seed_restores_circulation_state(seeded, clock):
    book = seeded.find_book(1)
    assert book.status == "Checked Out"
    assert book.times_checked_out == 1
    assert book.last_borrowed == clock.current
    assert seeded.find_book(2).status == "Available"


def test_seed_refuses_non_empty_store(seeded):
    with pytest.raises(RuntimeError):
        seed_sample_data(seeded)
    assert len(seeded.store.transactions) == 8
