from datetime import timedelta

from sqlalchemy.orm import Session, joinedload

from unilib.core.config import settings
from unilib.core.errors import BusinessRuleError, NotFoundError
from unilib.core.logging import get_logger
from unilib.core.timeutils import as_utc, utcnow
from unilib.db.models import (
    Book,
    BookCopy,
    BorrowRequest,
    BorrowStatus,
    CopyStatus,
    Reservation,
    ReservationStatus,
    User,
)
from unilib.services import reservation_service

logger = get_logger("services.borrow")

ACTIVE_BORROW_STATUSES = (BorrowStatus.APPROVED, BorrowStatus.OVERDUE)


def get_book_for_update(db: Session, book_id: int, include_deleted: bool = False) -> Book:
    query = db.query(Book).filter(Book.id == book_id)
    if not include_deleted:
        query = query.filter(Book.is_deleted.is_(False))
    book = query.with_for_update().first()
    if not book:
        raise NotFoundError("Book not found")
    return book


def get_borrow_or_404(db: Session, borrow_id: int) -> BorrowRequest:
    borrow = db.query(BorrowRequest).filter(BorrowRequest.id == borrow_id).first()
    if not borrow:
        raise NotFoundError("Borrow record not found")
    return borrow


def count_active_borrows(db: Session, user_id: int) -> int:
    return (
        db.query(BorrowRequest)
        .filter(
            BorrowRequest.user_id == user_id,
            BorrowRequest.status.in_(ACTIVE_BORROW_STATUSES),
        )
        .count()
    )


def borrow_book(
    db: Session,
    user: User,
    book_id: int,
    librarian: User | None = None,
) -> BorrowRequest:
    """
    Presta una copia disponible del libro al usuario.

    Todas las escrituras (préstamo, copia, contador del libro) van en la
    misma transacción; el libro se bloquea con FOR UPDATE.
    """
    book = get_book_for_update(db, book_id)

    if not user.is_active:
        raise BusinessRuleError("User account is not active")

    # La regla mira el contador agregado aunque existan copias "available"
    if book.available_copies <= 0:
        raise BusinessRuleError("Book is not available for borrowing")

    if count_active_borrows(db, user.id) >= user.max_books_allowed:
        raise BusinessRuleError("You already have the maximum number of borrowed books")

    copy = (
        db.query(BookCopy)
        .filter(
            BookCopy.book_id == book.id,
            BookCopy.status == CopyStatus.AVAILABLE,
            BookCopy.is_deleted.is_(False),
        )
        .order_by(BookCopy.id)
        .with_for_update()
        .first()
    )
    if not copy:
        raise BusinessRuleError("No available copy found for this book")

    now = utcnow()
    borrow = BorrowRequest(
        user_id=user.id,
        book_copy_id=copy.id,
        book_id=book.id,
        librarian_id=librarian.id if librarian else None,
        request_date=now,
        approved_date=now,
        due_date=now + timedelta(days=settings.BORROW_PERIOD_DAYS),
        status=BorrowStatus.APPROVED,
        renewal_count=0,
        max_renewals=settings.MAX_RENEWALS,
    )
    db.add(borrow)

    copy.status = CopyStatus.BORROWED
    book.available_copies -= 1

    # Su reserva activa del libro queda cumplida, esté o no al frente de la cola
    reservation = (
        db.query(Reservation)
        .filter(
            Reservation.user_id == user.id,
            Reservation.book_id == book.id,
            Reservation.status == ReservationStatus.ACTIVE,
        )
        .first()
    )
    if reservation:
        reservation.status = ReservationStatus.FULFILLED
        db.flush()
        reservation_service.update_queue_positions(db, book.id)

    db.commit()
    db.refresh(borrow)

    logger.info(
        "Book borrowed",
        extra={
            "operation": "borrow_create",
            "resource": "borrow",
            "borrow_id": borrow.id,
            "book_id": book.id,
            "copy_id": copy.id,
            "borrower_id": user.id,
            "available_copies": book.available_copies,
        },
    )
    return borrow


def return_book(db: Session, borrow_id: int) -> BorrowRequest:
    """
    Marca el préstamo como devuelto y libera la copia.

    No avisa a la cola de reservas: eso lo hace process_reservation_queue.
    """
    borrow = get_borrow_or_404(db, borrow_id)
    if borrow.status == BorrowStatus.RETURNED or borrow.return_date is not None:
        raise BusinessRuleError("Book has already been returned")
    if borrow.status not in ACTIVE_BORROW_STATUSES:
        raise BusinessRuleError(f"Cannot return a borrow with status {borrow.status.value}")

    # Un libro dado de baja igual debe poder recibir sus copias prestadas
    book = get_book_for_update(db, borrow.book_id, include_deleted=True)
    old_status = borrow.status

    borrow.return_date = utcnow()
    borrow.status = BorrowStatus.RETURNED
    borrow.book_copy.status = CopyStatus.AVAILABLE
    book.available_copies = min(book.available_copies + 1, book.total_copies)

    db.commit()
    db.refresh(borrow)

    logger.info(
        "Book returned",
        extra={
            "operation": "borrow_return",
            "resource": "borrow",
            "borrow_id": borrow.id,
            "book_id": borrow.book_id,
            "old_status": old_status.value,
            "new_status": borrow.status.value,
            "available_copies": book.available_copies,
        },
    )
    return borrow


def renew_book(db: Session, borrow_id: int, user: User | None = None) -> BorrowRequest:
    """Extiende la fecha de devolución RENEWAL_PERIOD_DAYS días."""
    borrow = get_borrow_or_404(db, borrow_id)

    if user is not None and borrow.user_id != user.id:
        raise NotFoundError("Borrow record not found")
    if borrow.status not in ACTIVE_BORROW_STATUSES:
        raise BusinessRuleError("Only borrowed books can be renewed")
    if borrow.renewal_count >= borrow.max_renewals:
        raise BusinessRuleError("Maximum renewal limit reached")

    borrow.due_date = as_utc(borrow.due_date) + timedelta(days=settings.RENEWAL_PERIOD_DAYS)
    borrow.renewal_count += 1
    # Si estaba overdue vuelve a approved
    borrow.status = BorrowStatus.APPROVED

    db.commit()
    db.refresh(borrow)

    logger.info(
        "Book renewed",
        extra={
            "operation": "borrow_renew",
            "resource": "borrow",
            "borrow_id": borrow.id,
            "renewal_count": borrow.renewal_count,
        },
    )
    return borrow


def mark_as_overdue(db: Session, borrow_id: int) -> BorrowRequest:
    borrow = get_borrow_or_404(db, borrow_id)
    if borrow.status != BorrowStatus.APPROVED:
        raise BusinessRuleError("Only approved borrows can be marked as overdue")

    borrow.status = BorrowStatus.OVERDUE
    db.commit()
    db.refresh(borrow)

    logger.info(
        "Borrow marked as overdue",
        extra={"operation": "borrow_mark_overdue", "resource": "borrow", "borrow_id": borrow.id},
    )
    return borrow


# ---- Listados ----

def _with_details(query):
    return query.options(
        joinedload(BorrowRequest.user),
        joinedload(BorrowRequest.book),
        joinedload(BorrowRequest.book_copy),
    )


def to_detail(borrow: BorrowRequest) -> dict:
    return {
        "id": borrow.id,
        "user_id": borrow.user_id,
        "book_id": borrow.book_id,
        "book_copy_id": borrow.book_copy_id,
        "librarian_id": borrow.librarian_id,
        "request_date": borrow.request_date,
        "approved_date": borrow.approved_date,
        "due_date": borrow.due_date,
        "return_date": borrow.return_date,
        "status": borrow.status,
        "renewal_count": borrow.renewal_count,
        "max_renewals": borrow.max_renewals,
        "book_title": borrow.book.title if borrow.book else None,
        "copy_number": borrow.book_copy.copy_number if borrow.book_copy else None,
        "user_name": borrow.user.full_name if borrow.user else None,
        "user_email": borrow.user.email if borrow.user else None,
    }


def list_borrows(
    db: Session,
    status: BorrowStatus | None = None,
    user_id: int | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[BorrowRequest]:
    query = _with_details(db.query(BorrowRequest))
    if status is not None:
        query = query.filter(BorrowRequest.status == status)
    if user_id is not None:
        query = query.filter(BorrowRequest.user_id == user_id)
    return (
        query.order_by(BorrowRequest.created_at.desc(), BorrowRequest.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def list_active_borrows(db: Session) -> list[BorrowRequest]:
    return (
        _with_details(db.query(BorrowRequest))
        .filter(BorrowRequest.status.in_(ACTIVE_BORROW_STATUSES))
        .order_by(BorrowRequest.created_at.desc(), BorrowRequest.id.desc())
        .all()
    )


def list_overdue_candidates(db: Session) -> list[BorrowRequest]:
    """Préstamos aún 'approved' cuya fecha de devolución ya pasó."""
    return (
        _with_details(db.query(BorrowRequest))
        .filter(
            BorrowRequest.status == BorrowStatus.APPROVED,
            BorrowRequest.return_date.is_(None),
            BorrowRequest.due_date < utcnow(),
        )
        .order_by(BorrowRequest.due_date.asc())
        .all()
    )


def list_user_borrowed_books(db: Session, user_id: int) -> list[BorrowRequest]:
    return (
        _with_details(db.query(BorrowRequest))
        .filter(
            BorrowRequest.user_id == user_id,
            BorrowRequest.return_date.is_(None),
            BorrowRequest.status.in_(ACTIVE_BORROW_STATUSES),
        )
        .order_by(BorrowRequest.approved_date.desc())
        .all()
    )


def list_user_borrow_history(db: Session, user_id: int) -> list[BorrowRequest]:
    return (
        _with_details(db.query(BorrowRequest))
        .filter(BorrowRequest.user_id == user_id)
        .order_by(BorrowRequest.request_date.desc(), BorrowRequest.id.desc())
        .all()
    )
