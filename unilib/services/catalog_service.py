import math
import re

from sqlalchemy import asc, desc, func, or_, select
from sqlalchemy.orm import Session, selectinload

from unilib.core.errors import BusinessRuleError, ConflictError, NotFoundError
from unilib.core.logging import get_logger
from unilib.db.models import (
    Author,
    Book,
    BookAuthor,
    BookCopy,
    CopyStatus,
    Publisher,
    Subject,
)
from unilib.schemas.book import BookCopyUpdate, BookCreate, BookUpdate

logger = get_logger("services.catalog")

SORTABLE_FIELDS = {
    "title": Book.title,
    "publication_year": Book.publication_year,
    "available_copies": Book.available_copies,
    "created_at": Book.created_at,
}


def _books_query(db: Session):
    return (
        db.query(Book)
        .options(
            selectinload(Book.author_links).selectinload(BookAuthor.author),
            selectinload(Book.subjects),
            selectinload(Book.publisher),
        )
        .filter(Book.is_deleted.is_(False))
    )


def get_book_or_404(db: Session, book_id: int) -> Book:
    book = _books_query(db).filter(Book.id == book_id).first()
    if not book:
        raise NotFoundError("Book not found")
    return book


def _copy_prefix(title: str) -> str:
    letters = re.sub(r"[^A-Za-z]", "", title).upper()
    return (letters[:3] or "BK").ljust(3, "X")


def _add_copies(db: Session, book: Book, start: int, count: int) -> None:
    prefix = _copy_prefix(book.title)
    for n in range(start, start + count):
        db.add(
            BookCopy(
                book_id=book.id,
                copy_number=f"{prefix}-{n:03d}",
                barcode=f"{book.id}-{n:03d}",
                status=CopyStatus.AVAILABLE,
            )
        )


def _check_isbn(db: Session, isbn_13: str | None, isbn_10: str | None, exclude_id: int | None = None):
    for column, value in ((Book.isbn_13, isbn_13), (Book.isbn_10, isbn_10)):
        if not value:
            continue
        query = db.query(Book.id).filter(column == value)
        if exclude_id is not None:
            query = query.filter(Book.id != exclude_id)
        if query.first():
            raise ConflictError("ISBN already exists")


def _set_authors(db: Session, book: Book, author_ids: list[int]) -> None:
    authors = db.query(Author).filter(Author.id.in_(author_ids)).all() if author_ids else []
    found = {a.id for a in authors}
    missing = [a for a in author_ids if a not in found]
    if missing:
        raise NotFoundError(f"Author not found: {missing[0]}")

    book.author_links.clear()
    db.flush()
    for order, author_id in enumerate(dict.fromkeys(author_ids), start=1):
        book.author_links.append(BookAuthor(author_id=author_id, author_order=order))


def _set_subjects(db: Session, book: Book, subject_ids: list[int]) -> None:
    subjects = db.query(Subject).filter(Subject.id.in_(subject_ids)).all() if subject_ids else []
    if len(subjects) != len(set(subject_ids)):
        raise NotFoundError("Subject not found")
    book.subjects = subjects


def create_book(db: Session, payload: BookCreate) -> Book:
    """Alta de un título junto con sus `total_copies` copias físicas."""
    if not db.query(Publisher.id).filter(Publisher.id == payload.publisher_id).first():
        raise NotFoundError("Publisher not found")
    _check_isbn(db, payload.isbn_13, payload.isbn_10)

    data = payload.model_dump(exclude={"author_ids", "subject_ids"})
    book = Book(**data, available_copies=payload.total_copies)
    db.add(book)
    db.flush()

    _set_authors(db, book, payload.author_ids)
    _set_subjects(db, book, payload.subject_ids)
    _add_copies(db, book, 1, payload.total_copies)

    db.commit()

    logger.info(
        "Book created",
        extra={
            "operation": "book_create",
            "resource": "book",
            "book_id": book.id,
            "total_copies": book.total_copies,
        },
    )
    return get_book_or_404(db, book.id)


def update_book(db: Session, book_id: int, payload: BookUpdate) -> Book:
    book = get_book_or_404(db, book_id)
    update_data = payload.model_dump(exclude_unset=True)

    author_ids = update_data.pop("author_ids", None)
    subject_ids = update_data.pop("subject_ids", None)
    new_total = update_data.pop("total_copies", None)

    if "publisher_id" in update_data:
        if not db.query(Publisher.id).filter(Publisher.id == update_data["publisher_id"]).first():
            raise NotFoundError("Publisher not found")
    _check_isbn(db, update_data.get("isbn_13"), update_data.get("isbn_10"), exclude_id=book.id)

    for field, value in update_data.items():
        setattr(book, field, value)

    if new_total is not None and new_total != book.total_copies:
        if new_total < book.total_copies:
            # Sólo se agregan copias; dar de baja es por copia
            raise BusinessRuleError("total_copies can only be increased")
        extra = new_total - book.total_copies
        existing = db.query(func.count(BookCopy.id)).filter(BookCopy.book_id == book.id).scalar() or 0
        _add_copies(db, book, existing + 1, extra)
        book.total_copies = new_total
        book.available_copies += extra

    if author_ids is not None:
        _set_authors(db, book, author_ids)
    if subject_ids is not None:
        _set_subjects(db, book, subject_ids)

    db.commit()

    logger.info(
        "Book updated",
        extra={
            "operation": "book_update",
            "resource": "book",
            "book_id": book.id,
            "fields": sorted(payload.model_dump(exclude_unset=True).keys()),
        },
    )
    return get_book_or_404(db, book.id)


def delete_book(db: Session, book_id: int) -> None:
    book = get_book_or_404(db, book_id)
    book.is_deleted = True
    db.commit()

    logger.info(
        "Book deleted",
        extra={"operation": "book_delete", "resource": "book", "book_id": book_id},
    )


def search_books(
    db: Session,
    query: str | None = None,
    subject: str | None = None,
    author: str | None = None,
    language: str | None = None,
    availability: str = "all",
    sort_by: str = "title",
    sort_order: str = "asc",
    page: int = 1,
    limit: int = 12,
) -> dict:
    q = _books_query(db)

    if query:
        term = f"%{query}%"
        author_match = (
            select(BookAuthor.book_id)
            .join(Author, Author.id == BookAuthor.author_id)
            .where(Author.full_name.ilike(term))
        )
        q = q.filter(
            or_(
                Book.title.ilike(term),
                Book.subtitle.ilike(term),
                Book.id.in_(author_match),
            )
        )

    if subject:
        q = q.filter(Book.subjects.any(Subject.name == subject))

    if author:
        q = q.filter(Book.author_links.any(BookAuthor.author.has(Author.full_name == author)))

    if language:
        q = q.filter(Book.language == language)

    if availability == "available":
        q = q.filter(Book.available_copies > 0)
    elif availability == "unavailable":
        q = q.filter(Book.available_copies == 0)

    total_count = q.count()

    column = SORTABLE_FIELDS.get(sort_by, Book.title)
    direction = desc if sort_order.lower() == "desc" else asc
    q = q.order_by(direction(column), asc(Book.id))

    page = max(page, 1)
    books = q.offset((page - 1) * limit).limit(limit).all()
    total_pages = math.ceil(total_count / limit) if limit else 0

    return {
        "books": books,
        "pagination": {
            "current_page": page,
            "total_pages": total_pages,
            "total_count": total_count,
            "has_next_page": page < total_pages,
            "has_previous_page": page > 1,
        },
    }


def get_filter_options(db: Session) -> dict:
    languages = [
        row[0]
        for row in db.query(Book.language)
        .filter(Book.is_deleted.is_(False))
        .distinct()
        .order_by(Book.language)
        .all()
    ]
    subjects = [row[0] for row in db.query(Subject.name).order_by(Subject.name).all()]
    authors = [row[0] for row in db.query(Author.full_name).order_by(Author.full_name).all()]

    total_books = (
        db.query(func.count(Book.id)).filter(Book.is_deleted.is_(False)).scalar() or 0
    )
    available_books = (
        db.query(func.count(Book.id))
        .filter(Book.is_deleted.is_(False), Book.available_copies > 0)
        .scalar()
        or 0
    )
    return {
        "languages": languages,
        "subjects": subjects,
        "authors": authors,
        "total_books": total_books,
        "available_books": available_books,
    }


def recent_books(db: Session, limit: int = 8) -> list[Book]:
    return _books_query(db).order_by(Book.created_at.desc(), Book.id.desc()).limit(limit).all()


def list_book_copies(db: Session, book_id: int) -> list[BookCopy]:
    get_book_or_404(db, book_id)
    return (
        db.query(BookCopy)
        .filter(BookCopy.book_id == book_id, BookCopy.is_deleted.is_(False))
        .order_by(BookCopy.id)
        .all()
    )


def update_copy(db: Session, book_id: int, copy_id: int, payload: BookCopyUpdate) -> BookCopy:
    """
    Cambia estado/condición de una copia. Mantiene available_copies en
    sincronía cuando la copia entra o sale de AVAILABLE.
    """
    book = (
        db.query(Book)
        .filter(Book.id == book_id, Book.is_deleted.is_(False))
        .with_for_update()
        .first()
    )
    if not book:
        raise NotFoundError("Book not found")

    copy = (
        db.query(BookCopy)
        .filter(BookCopy.id == copy_id, BookCopy.book_id == book_id, BookCopy.is_deleted.is_(False))
        .with_for_update()
        .first()
    )
    if not copy:
        raise NotFoundError("Copy not found")

    update_data = payload.model_dump(exclude_unset=True)
    new_status = update_data.pop("status", None)

    if new_status is not None and new_status != copy.status:
        if CopyStatus.BORROWED in (new_status, copy.status):
            raise BusinessRuleError("Borrowed status is managed by borrow and return")
        if copy.status == CopyStatus.AVAILABLE:
            book.available_copies = max(book.available_copies - 1, 0)
        elif new_status == CopyStatus.AVAILABLE:
            book.available_copies = min(book.available_copies + 1, book.total_copies)
        copy.status = new_status

    for field, value in update_data.items():
        setattr(copy, field, value)

    db.commit()
    db.refresh(copy)

    logger.info(
        "Copy updated",
        extra={
            "operation": "copy_update",
            "resource": "book_copy",
            "book_id": book_id,
            "copy_id": copy.id,
            "status": copy.status.value,
            "available_copies": book.available_copies,
        },
    )
    return copy
