"""Staff command line for the circulation service.

Report and circulation commands talk to a running API over HTTP; ``serve``
starts one.
"""

import os
import subprocess
import sys
from datetime import date, timedelta
from typing import Any, Dict, Optional

import httpx
import typer

from config import settings
from ui_helpers import print_metrics, print_rows, set_output_mode

app = typer.Typer(help="Library circulation CLI")


def _client() -> httpx.Client:
    return httpx.Client(base_url=settings.base_url, timeout=10.0)


def _api(method: str, path: str, **kwargs: Any) -> Any:
    """Call the API and return the decoded body; exit with code 1 on any failure."""
    client = _client()
    try:
        response = client.request(method, f"{settings.api_prefix}{path}", **kwargs)
    except httpx.HTTPError as exc:
        print(f"Could not reach the API at {settings.base_url}: {exc}")
        raise typer.Exit(code=1)
    finally:
        client.close()

    if response.status_code >= 400:
        try:
            detail = response.json().get("detail", response.text)
        except ValueError:
            detail = response.text
        print(f"Error: {detail}")
        raise typer.Exit(code=1)
    if response.status_code == 204 or not response.content:
        return None
    return response.json()


def _name(record: Optional[Dict[str, Any]], key: str, fallback: str = "unknown") -> str:
    return record.get(key, fallback) if record else fallback


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global options for the CLI (e.g. output mode)."""
    if output:
        set_output_mode(output)


@app.command("metrics")
def cli_metrics():
    """Show the dashboard figures."""
    metrics = _api("GET", "/dashboard/metrics")
    print_metrics(
        metrics,
        [("Total Books", "totalBooks"), ("Checked Out", "booksCheckedOut"),
         ("Active Patrons", "activePatrons"), ("Overdue", "overdueBooks")],
        title="Dashboard",
    )


@app.command("categories")
def cli_categories():
    """Show how many books each category holds."""
    stats = _api("GET", "/dashboard/category-stats")
    print_rows(stats, [("Category", "category"), ("Books", "count")],
               title="Categories", empty_message="No books in library.")


@app.command("overdue")
def cli_overdue():
    """List overdue checkouts, most late first."""
    items = _api("GET", "/transactions/overdue")
    rows = [
        {
            "book": _name(item.get("book"), "title"),
            "patron": _name(item.get("patron"), "name"),
            "due": (item.get("dueDate") or "")[:10],
            "daysLate": item.get("daysLate"),
        }
        for item in items
    ]
    print_rows(rows, [("Book", "book"), ("Patron", "patron"), ("Due", "due"), ("Days Late", "daysLate")],
               title="Overdue", empty_message="No overdue books.")


@app.command("recent")
def cli_recent(limit: int = typer.Option(settings.recent_activity_limit, "--limit", "-n", min=1)):
    """Show the latest ledger entries."""
    items = _api("GET", "/transactions/recent", params={"limit": limit})
    rows = [
        {
            "when": (item.get("timestamp") or "")[:16].replace("T", " "),
            "type": item.get("transactionType"),
            "book": _name(item.get("book"), "title", "-"),
            "patron": _name(item.get("patron"), "name", "-"),
        }
        for item in items
    ]
    print_rows(rows, [("When", "when"), ("Type", "type"), ("Book", "book"), ("Patron", "patron")],
               title="Recent Activity", empty_message="No activity yet.")


@app.command("books")
def cli_books(
    q: Optional[str] = typer.Option(None, "--q", help="Title, author or ISBN search"),
    category: Optional[str] = typer.Option(None, "--category"),
    status: Optional[str] = typer.Option(None, "--status"),
):
    """List the catalog."""
    params = {k: v for k, v in {"q": q, "category": category, "status": status}.items() if v}
    books = _api("GET", "/books", params=params)
    print_rows(books, [("ID", "id"), ("ISBN", "isbn"), ("Title", "title"), ("Author", "author"),
                       ("Status", "status")],
               title="Books", empty_message="No books in library.")


@app.command("checkout")
def cli_checkout(
    book_id: int,
    patron_id: int,
    days: int = typer.Option(settings.default_loan_days, "--days", min=1, help="Loan period in days"),
    notes: Optional[str] = typer.Option(None, "--notes"),
):
    """Check a book out to a patron."""
    due = date.today() + timedelta(days=days)
    body = {"bookId": book_id, "patronId": patron_id, "dueDate": due.isoformat()}
    if notes:
        body["notes"] = notes
    transaction = _api("POST", "/circulation/checkout", json=body)
    print(f"Book {book_id} checked out to patron {patron_id}, due {due.isoformat()} "
          f"(transaction {transaction['id']}).")


@app.command("return")
def cli_return(book_id: int, notes: Optional[str] = typer.Option(None, "--notes")):
    """Return a checked-out book."""
    body: Dict[str, Any] = {"bookId": book_id}
    if notes:
        body["notes"] = notes
    transaction = _api("POST", "/circulation/return", json=body)
    print(f"Book {book_id} returned (transaction {transaction['id']}).")


@app.command("serve")
def cli_serve(timeout: int = typer.Option(0, "--timeout", help="Seconds to run before shutting down (0 = no timeout)")):
    """Start the API with uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    print(f"Starting API on {settings.base_url}{settings.api_prefix}")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    if timeout and timeout > 0:
        start_new_session = os.name != "nt"
        proc = subprocess.Popen(args, start_new_session=start_new_session)
        try:
            proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait(timeout=3)
    else:
        subprocess.run(args)


if __name__ == "__main__":
    app()
