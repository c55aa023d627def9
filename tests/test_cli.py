import json

import httpx
import pytest
from fastapi.testclient import TestClient
from typer.testing import CliRunner

import main
from main import app as cli
from ui_helpers import OUTPUT_MODE_ENV

runner = CliRunner()


@pytest.fixture(autouse=True)
def api_client(app, monkeypatch):
    # Route the CLI's HTTP calls into the in-process app
    monkeypatch.setattr(main, "_client", lambda: TestClient(app))
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")


def test_metrics(seeded):
    result = runner.invoke(cli, ["metrics"])
    assert result.exit_code == 0
    assert "Total Books: 7" in result.stdout
    assert "Checked Out: 5" in result.stdout
    assert "Overdue: 4" in result.stdout


def test_metrics_json(seeded):
    result = runner.invoke(cli, ["--output", "json", "metrics"])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {
        "totalBooks": 7, "booksCheckedOut": 5, "activePatrons": 7, "overdueBooks": 4,
    }


def test_categories(seeded):
    result = runner.invoke(cli, ["categories"])
    assert result.exit_code == 0
    assert result.stdout.splitlines() == ["Fiction | 5", "Non-Fiction | 2"]


def test_categories_empty_library(seeded):
    for book in seeded.list_books():
        seeded.remove_book(book.id)
    result = runner.invoke(cli, ["categories"])
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_overdue(seeded):
    result = runner.invoke(cli, ["overdue"])
    assert result.exit_code == 0
    lines = result.stdout.splitlines()
    assert lines[0].startswith("The Alchemist | Emily Johnson")
    assert lines[1] == "1984 | Ana Reyes | 2024-04-24 | 7"


def test_overdue_none(seeded):
    for book_id in (4, 5, 6, 7):
        seeded.return_book(book_id)
    result = runner.invoke(cli, ["overdue"])
    assert result.exit_code == 0
    assert "No overdue books." in result.stdout


def test_recent_rich(seeded):
    result = runner.invoke(cli, ["--output", "rich", "recent", "--limit", "3"])
    assert result.exit_code == 0
    assert "Recent Activity" in result.stdout
    assert "Checkout" in result.stdout


def test_books_search(seeded):
    result = runner.invoke(cli, ["books", "--q", "gatsby"])
    assert result.exit_code == 0
    assert result.stdout.strip() == "1 | 9780743273565 | The Great Gatsby | F. Scott Fitzgerald | Checked Out"


def test_checkout_and_return(seeded):
    result = runner.invoke(cli, ["checkout", "2", "1", "--days", "7", "--notes", "desk"])
    assert result.exit_code == 0
    assert "Book 2 checked out to patron 1, due" in result.stdout
    assert "(transaction 9)" in result.stdout
    assert seeded.find_book(2).status == "Checked Out"

    result = runner.invoke(cli, ["return", "2"])
    assert result.exit_code == 0
    assert "Book 2 returned (transaction 10)." in result.stdout
    assert seeded.find_book(2).status == "Available"


def test_checkout_unavailable_book(seeded):
    result = runner.invoke(cli, ["checkout", "4", "1"])
    assert result.exit_code == 1
    assert "Error: Book is not available for checkout" in result.stdout


def test_return_unknown_book(seeded):
    result = runner.invoke(cli, ["return", "999"])
    assert result.exit_code == 1
    assert "Error: Book not found" in result.stdout


def test_api_unreachable(monkeypatch):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    monkeypatch.setattr(main, "_client", lambda: httpx.Client(transport=httpx.MockTransport(refuse),
                                                              base_url="http://127.0.0.1:9"))
    result = runner.invoke(cli, ["metrics"])
    assert result.exit_code == 1
    assert "Could not reach the API" in result.stdout
