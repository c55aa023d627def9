import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response, Security
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from auth import SessionManager, authenticate, current_user, require_session, session_cookie
from config import settings
from entities import (
    BOOK_CATEGORIES,
    BOOK_STATUS,
    TRANSACTION_TYPES,
    Book,
    BookCategory,
    BookStatus,
    CamelModel,
    CheckoutTransaction,
    MembershipStatus,
    Patron,
    ReturnTransaction,
    Transaction,
    TransactionType,
    User,
    UserProfile,
)
from library import (
    InvalidStateError,
    Library,
    LibraryError,
    NotFoundError,
    ValidationError,
    to_datetime,
)
from seed import seed_sample_data
from store import EntityStore

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


# --- Models ---
class BookCreateModel(CamelModel):
    isbn: str = Field(min_length=1)
    title: str = Field(min_length=1)
    author: str = Field(min_length=1)
    publisher: str = Field(min_length=1)
    publication_date: str = Field(min_length=1)
    category: BookCategory
    description: Optional[str] = None
    status: BookStatus = BookStatus.AVAILABLE


class BookUpdateModel(CamelModel):
    isbn: Optional[str] = Field(None, min_length=1)
    title: Optional[str] = Field(None, min_length=1)
    author: Optional[str] = Field(None, min_length=1)
    publisher: Optional[str] = Field(None, min_length=1)
    publication_date: Optional[str] = Field(None, min_length=1)
    category: Optional[BookCategory] = None
    description: Optional[str] = None
    status: Optional[BookStatus] = None


class PatronCreateModel(CamelModel):
    name: str = Field(min_length=1)
    contact_info: str = Field(min_length=1)
    membership_status: MembershipStatus = MembershipStatus.ACTIVE


class PatronUpdateModel(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    contact_info: Optional[str] = Field(None, min_length=1)
    membership_status: Optional[MembershipStatus] = None


class CheckoutRequest(CamelModel):
    book_id: int
    patron_id: int
    due_date: datetime
    notes: Optional[str] = None

    @field_validator("due_date", mode="before")
    @classmethod
    def _date_only_means_midnight(cls, value: Any) -> Any:
        if isinstance(value, str) and len(value) == 10:
            return datetime.combine(date.fromisoformat(value), time.min)
        return value

    @field_validator("due_date")
    @classmethod
    def _local_time(cls, value: datetime) -> datetime:
        return to_datetime(value)


class ReturnRequest(CamelModel):
    book_id: int
    notes: Optional[str] = None


class LoginRequest(BaseModel):
    username: str
    password: str


class DashboardMetrics(CamelModel):
    total_books: int
    books_checked_out: int
    active_patrons: int
    overdue_books: int


class CategoryStat(BaseModel):
    category: str
    count: int


class OverdueModel(CheckoutTransaction):
    """An open checkout past its due date, with the book and patron it concerns."""

    days_late: int
    book: Optional[Book] = None
    patron: Optional[Patron] = None


class CurrentLoanModel(CamelModel):
    checkout: CheckoutTransaction
    book: Optional[Book] = None
    days_overdue: int


class PatronSummaryModel(CamelModel):
    patron: Patron
    total_transactions: int
    checkouts: int
    returns: int
    current_loans: List[CurrentLoanModel]


# --- Helpers ---
def get_library(request: Request) -> Library:
    return request.app.state.library


def _updates(model: BaseModel, nullable: tuple = ()) -> Dict[str, Any]:
    """Fields the client actually sent, dropping nulls for required attributes."""
    return {
        key: value
        for key, value in model.model_dump(exclude_unset=True).items()
        if value is not None or key in nullable
    }


def _activity_payload(activity) -> Dict[str, Any]:
    payload = activity.transaction.model_dump(by_alias=True)
    payload["book"] = activity.book.model_dump(by_alias=True) if activity.book else None
    payload["patron"] = activity.patron.model_dump(by_alias=True) if activity.patron else None
    return payload


_ERROR_STATUS = {
    NotFoundError: 404,
    InvalidStateError: 400,
    ValidationError: 400,
}


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(LibraryError)
    async def _library_error(request: Request, exc: LibraryError):
        status = next((code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)), 400)
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# --- Routers ---
router = APIRouter(dependencies=[Depends(require_session)])
auth_router = APIRouter(prefix="/auth")


@router.get("/books", response_model=List[Book])
def list_books(
    category: Optional[BookCategory] = Query(None, description="Filter by category"),
    status: Optional[BookStatus] = Query(None, description="Filter by status"),
    q: Optional[str] = Query(None, description="Title, author or ISBN search"),
    library: Library = Depends(get_library),
):
    """List the catalog, optionally filtered."""
    return library.list_books(
        category=category.value if category else None,
        status=status.value if status else None,
        q=q,
    )


@router.get("/books/isbn/{isbn}", response_model=Book)
def get_book_by_isbn(isbn: str, library: Library = Depends(get_library)):
    """Look a book up by ISBN (used by the scanner)."""
    book = library.find_book_by_isbn(isbn)
    if not book:
        raise HTTPException(status_code=404, detail="Book not found")
    return book


@router.get("/books/{book_id}", response_model=Book)
def get_book(book_id: int, library: Library = Depends(get_library)):
    book = library.find_book(book_id)
    if not book:
        raise HTTPException(status_code=404, detail="Book not found")
    return book


@router.post("/books", response_model=Book, status_code=201)
def add_book(payload: BookCreateModel, library: Library = Depends(get_library)):
    """Catalog a new book; records a New Book transaction."""
    return library.add_book(payload.model_dump())


@router.put("/books/{book_id}", response_model=Book)
def update_book(book_id: int, update: BookUpdateModel, library: Library = Depends(get_library)):
    return library.update_book(book_id, _updates(update, nullable=("description",)))


@router.delete("/books/{book_id}", status_code=204)
def delete_book(book_id: int, library: Library = Depends(get_library)):
    if not library.remove_book(book_id):
        raise HTTPException(status_code=404, detail="Book not found")
    return Response(status_code=204)


@router.get("/patrons", response_model=List[Patron])
def list_patrons(
    status: Optional[MembershipStatus] = Query(None, description="Filter by membership status"),
    q: Optional[str] = Query(None, description="Name or contact search"),
    library: Library = Depends(get_library),
):
    return library.list_patrons(status=status.value if status else None, q=q)


@router.get("/patrons/{patron_id}", response_model=Patron)
def get_patron(patron_id: int, library: Library = Depends(get_library)):
    patron = library.find_patron(patron_id)
    if not patron:
        raise HTTPException(status_code=404, detail="Patron not found")
    return patron


@router.get("/patrons/{patron_id}/summary", response_model=PatronSummaryModel)
def get_patron_summary(patron_id: int, library: Library = Depends(get_library)):
    """Patron detail view: activity counts and current loans."""
    summary = library.patron_summary(patron_id)
    return PatronSummaryModel(
        patron=summary.patron,
        total_transactions=summary.total_transactions,
        checkouts=summary.checkouts,
        returns=summary.returns,
        current_loans=[
            CurrentLoanModel(checkout=loan.checkout, book=loan.book, days_overdue=loan.days_overdue)
            for loan in summary.current_loans
        ],
    )


@router.post("/patrons", response_model=Patron, status_code=201)
def register_patron(payload: PatronCreateModel, library: Library = Depends(get_library)):
    """Register a patron; records a New Patron transaction."""
    return library.register_patron(payload.model_dump())


@router.put("/patrons/{patron_id}", response_model=Patron)
def update_patron(patron_id: int, update: PatronUpdateModel, library: Library = Depends(get_library)):
    return library.update_patron(patron_id, _updates(update))


@router.delete("/patrons/{patron_id}", status_code=204)
def delete_patron(patron_id: int, library: Library = Depends(get_library)):
    if not library.remove_patron(patron_id):
        raise HTTPException(status_code=404, detail="Patron not found")
    return Response(status_code=204)


@router.get("/transactions", response_model=List[Transaction])
def list_transactions(
    transaction_type: Optional[TransactionType] = Query(None, alias="type", description="Transaction type"),
    start: Optional[date] = Query(None, description="First day to include"),
    end: Optional[date] = Query(None, description="Last day to include"),
    library: Library = Depends(get_library),
):
    """The ledger, optionally narrowed for reports."""
    return library.transactions(
        transaction_type=transaction_type.value if transaction_type else None,
        start=datetime.combine(start, time.min) if start else None,
        end=datetime.combine(end, time.max) if end else None,
    )


@router.get("/transactions/recent")
def recent_transactions(
    limit: Optional[int] = Query(None, ge=1, le=settings.max_recent_activity_limit),
    library: Library = Depends(get_library),
):
    """Latest ledger entries with the book and patron they refer to, when still present."""
    activity = library.recent_activity(limit or settings.recent_activity_limit)
    return JSONResponse(content=jsonable_encoder([_activity_payload(a) for a in activity]))


@router.get("/transactions/overdue", response_model=List[OverdueModel])
def overdue_transactions(library: Library = Depends(get_library)):
    return [
        OverdueModel(**item.checkout.model_dump(), days_late=item.days_late, book=item.book, patron=item.patron)
        for item in library.overdue()
    ]


@router.get("/transactions/open", response_model=List[CheckoutTransaction])
def open_checkouts(library: Library = Depends(get_library)):
    return library.open_checkouts()


@router.get("/transactions/book/{book_id}", response_model=List[Transaction])
def book_transactions(book_id: int, library: Library = Depends(get_library)):
    return library.transactions_for_book(book_id)


@router.get("/transactions/patron/{patron_id}", response_model=List[Transaction])
def patron_transactions(patron_id: int, library: Library = Depends(get_library)):
    return library.transactions_for_patron(patron_id)


@router.get("/transactions/{transaction_id}", response_model=Transaction)
def get_transaction(transaction_id: int, library: Library = Depends(get_library)):
    entry = library.store.get_transaction(transaction_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return entry


@router.post("/circulation/checkout", response_model=CheckoutTransaction, status_code=201)
def checkout(payload: CheckoutRequest, library: Library = Depends(get_library)):
    return library.checkout(payload.book_id, payload.patron_id, payload.due_date, payload.notes)


@router.post("/circulation/return", response_model=ReturnTransaction, status_code=201)
def return_book(payload: ReturnRequest, library: Library = Depends(get_library)):
    return library.return_book(payload.book_id, payload.notes)


@router.get("/dashboard/metrics", response_model=DashboardMetrics)
def dashboard_metrics(library: Library = Depends(get_library)):
    return DashboardMetrics(**library.dashboard_metrics())


@router.get("/dashboard/category-stats", response_model=List[CategoryStat])
def category_stats(library: Library = Depends(get_library)):
    return library.category_stats()


@router.get("/reference/categories", response_model=List[str])
def reference_categories():
    return BOOK_CATEGORIES


@router.get("/reference/statuses", response_model=List[str])
def reference_statuses():
    return BOOK_STATUS


@router.get("/reference/transaction-types", response_model=List[str])
def reference_transaction_types():
    return TRANSACTION_TYPES


# --- Auth ---
@auth_router.post("/login", response_model=UserProfile)
def login(payload: LoginRequest, request: Request, response: Response):
    user = authenticate(get_library(request).store, payload.username, payload.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = request.app.state.sessions.create(user)
    response.set_cookie(settings.session_cookie_name, token, httponly=True, samesite="lax")
    logger.info("User %s logged in", user.username)
    return user.profile()


@auth_router.post("/logout")
def logout(request: Request, response: Response, token: Optional[str] = Security(session_cookie)):
    response.delete_cookie(settings.session_cookie_name)
    if request.app.state.sessions.destroy(token):
        return {"message": "Logged out successfully"}
    return {"message": "No active session"}


@auth_router.get("/me", response_model=UserProfile)
def me(user: User = Depends(current_user)):
    return user.profile()


# --- Application ---
def create_app(library: Optional[Library] = None, seed: Optional[bool] = None) -> FastAPI:
    """Build the API around ``library``; a fresh (optionally seeded) one by default."""
    if library is None:
        library = Library(EntityStore())
        if settings.seed_sample_data if seed is None else seed:
            seed_sample_data(library)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("%s %s starting (%s)", settings.app_name, settings.app_version, settings.environment)
        try:
            yield
        finally:
            app.state.sessions.clear()
            app.state.library.close()

    app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug,
                  lifespan=lifespan)
    app.state.library = library
    app.state.sessions = SessionManager()

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    @app.get("/health")
    def health():
        """Lightweight liveness probe."""
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "totalBooks": len(app.state.library.store.books),
        }

    _register_error_handlers(app)
    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(auth_router, prefix=settings.api_prefix)
    return app


app = create_app()
