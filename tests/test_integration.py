import pytest

pytestmark = pytest.mark.integration

API = "/api"


def _open_book_ids(client):
    return {t["bookId"] for t in client.get(f"{API}/transactions/open").json()}


def _assert_statuses_follow_ledger(client):
    open_ids = _open_book_ids(client)
    for book in client.get(f"{API}/books").json():
        assert (book["status"] == "Checked Out") == (book["id"] in open_ids), book


def test_full_circulation_cycle(client, new_book, clock):
    """Catalog a book, register a patron, lend the book, let it go overdue and bring it back."""
    book = client.post(f"{API}/books", json=new_book).json()
    patron = client.post(f"{API}/patrons", json={"name": "Lena Park", "contactInfo": "lena@example.com"}).json()

    checkout = client.post(f"{API}/circulation/checkout",
                           json={"bookId": book["id"], "patronId": patron["id"], "dueDate": "2024-05-08"})
    assert checkout.status_code == 201
    _assert_statuses_follow_ledger(client)
    assert client.get(f"{API}/dashboard/metrics").json()["booksCheckedOut"] == 6

    clock.advance(days=9)
    overdue = {o["bookId"]: o["daysLate"] for o in client.get(f"{API}/transactions/overdue").json()}
    assert overdue[book["id"]] == 2
    assert overdue[4] == 16

    returned = client.post(f"{API}/circulation/return", json={"bookId": book["id"]})
    assert returned.status_code == 201
    assert returned.json()["checkoutId"] == checkout.json()["id"]
    _assert_statuses_follow_ledger(client)

    history = client.get(f"{API}/transactions/book/{book['id']}").json()
    assert [t["transactionType"] for t in history] == ["Return", "Checkout", "New Book"]

    summary = client.get(f"{API}/patrons/{patron['id']}/summary").json()
    assert (summary["checkouts"], summary["returns"], summary["currentLoans"]) == (1, 1, [])


def test_failed_operations_leave_no_trace(client):
    before_ledger = client.get(f"{API}/transactions").json()
    before_books = client.get(f"{API}/books").json()

    assert client.post(f"{API}/circulation/checkout",
                       json={"bookId": 4, "patronId": 1, "dueDate": "2024-06-01"}).status_code == 400
    assert client.post(f"{API}/circulation/checkout",
                       json={"bookId": 2, "patronId": 404, "dueDate": "2024-06-01"}).status_code == 404
    assert client.post(f"{API}/circulation/return", json={"bookId": 3}).status_code == 400

    assert client.get(f"{API}/transactions").json() == before_ledger
    assert client.get(f"{API}/books").json() == before_books


def test_patron_deletion_orphans_history(client):
    assert client.delete(f"{API}/patrons/3").status_code == 204

    assert client.get(f"{API}/transactions/patron/3").json() == []
    book_history = client.get(f"{API}/transactions/book/4").json()
    assert book_history[0]["patronId"] == 3

    overdue = next(o for o in client.get(f"{API}/transactions/overdue").json() if o["bookId"] == 4)
    assert overdue["patron"] is None
    assert overdue["book"]["title"] == "1984"

    returned = client.post(f"{API}/circulation/return", json={"bookId": 4}).json()
    assert returned["patronId"] == 3
