from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from api import create_app
from library import Library
from seed import seed_sample_data
from store import EntityStore


class FrozenClock:
    """Clock that only moves when a test says so."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 5, 1, 10, 0, 0))


@pytest.fixture
def store(clock):
    # Each test gets its own store so no state leaks between tests
    store = EntityStore(clock=clock)
    yield store
    store.close()


@pytest.fixture
def lib(store):
    return Library(store)


@pytest.fixture
def seeded(lib):
    seed_sample_data(lib)
    return lib


@pytest.fixture
def app(seeded):
    return create_app(library=seeded)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def new_book():
    """Request body for a book that is not in the sample data."""
    return {
        "isbn": "111",
        "title": "Dune",
        "author": "Frank Herbert",
        "publisher": "Chilton Books",
        "publicationDate": "1965",
        "category": "Fiction",
    }
