from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from unilib.core.config import settings
from unilib.core.errors import BusinessRuleError, NotFoundError
from unilib.core.logging import get_logger
from unilib.core.timeutils import as_utc, utcnow
from unilib.db.models import (
    Book,
    BorrowRequest,
    BorrowStatus,
    Reservation,
    ReservationStatus,
    User,
)
from unilib.services import email_service

logger = get_logger("services.reservation")


def _active_queue(db: Session, book_id: int):
    return db.query(Reservation).filter(
        Reservation.book_id == book_id,
        Reservation.status == ReservationStatus.ACTIVE,
    )


def update_queue_positions(db: Session, book_id: int) -> None:
    """
    Reescribe queue_position 1..N de las reservas activas del libro,
    en orden de creación. No hace commit.
    """
    active = (
        _active_queue(db, book_id)
        .order_by(Reservation.created_at.asc(), Reservation.id.asc())
        .with_for_update()
        .all()
    )
    for position, reservation in enumerate(active, start=1):
        reservation.queue_position = position


def create_reservation(db: Session, user: User, book_id: int) -> Reservation:
    book = (
        db.query(Book)
        .filter(Book.id == book_id, Book.is_deleted.is_(False))
        .with_for_update()
        .first()
    )
    if not book:
        raise NotFoundError("Book not found")

    if book.available_copies > 0:
        raise BusinessRuleError("Book is currently available for borrowing")

    existing = (
        _active_queue(db, book.id)
        .filter(Reservation.user_id == user.id)
        .first()
    )
    if existing:
        raise BusinessRuleError("You already have an active reservation for this book")

    current_borrow = (
        db.query(BorrowRequest)
        .filter(
            BorrowRequest.user_id == user.id,
            BorrowRequest.book_id == book.id,
            BorrowRequest.return_date.is_(None),
            BorrowRequest.status.in_((BorrowStatus.APPROVED, BorrowStatus.OVERDUE)),
        )
        .first()
    )
    if current_borrow:
        raise BusinessRuleError("You currently have this book borrowed")

    queue_count = (
        db.query(func.count(Reservation.id))
        .filter(
            Reservation.book_id == book.id,
            Reservation.status == ReservationStatus.ACTIVE,
        )
        .scalar()
        or 0
    )

    now = utcnow()
    reservation = Reservation(
        user_id=user.id,
        book_id=book.id,
        reservation_date=now,
        created_at=now,
        expiry_date=now + timedelta(days=settings.RESERVATION_EXPIRY_DAYS),
        queue_position=queue_count + 1,
        status=ReservationStatus.ACTIVE,
        notification_sent=False,
    )
    db.add(reservation)
    db.commit()
    db.refresh(reservation)

    logger.info(
        "Reservation created",
        extra={
            "operation": "reservation_create",
            "resource": "reservation",
            "reservation_id": reservation.id,
            "book_id": book.id,
            "queue_position": reservation.queue_position,
        },
    )
    return reservation


def cancel_reservation(db: Session, reservation_id: int, user: User) -> Reservation:
    reservation = (
        db.query(Reservation)
        .filter(Reservation.id == reservation_id, Reservation.user_id == user.id)
        .first()
    )
    if not reservation:
        raise NotFoundError("Reservation not found or access denied")
    if reservation.status != ReservationStatus.ACTIVE:
        raise BusinessRuleError("Reservation is not active")

    reservation.status = ReservationStatus.CANCELLED
    # autoflush está apagado: sin flush la cola todavía la vería activa
    db.flush()
    update_queue_positions(db, reservation.book_id)
    db.commit()
    db.refresh(reservation)

    logger.info(
        "Reservation cancelled",
        extra={
            "operation": "reservation_cancel",
            "resource": "reservation",
            "reservation_id": reservation.id,
            "book_id": reservation.book_id,
        },
    )
    return reservation


def expire_reservations(db: Session) -> int:
    """
    Expira las reservas activas ya notificadas cuyo plazo venció y
    renumera la cola de cada libro afectado.
    """
    now = utcnow()
    notified = (
        db.query(Reservation)
        .filter(
            Reservation.status == ReservationStatus.ACTIVE,
            Reservation.notification_sent.is_(True),
        )
        .all()
    )
    expired = [r for r in notified if r.expiry_date is not None and as_utc(r.expiry_date) < now]
    if not expired:
        return 0

    for reservation in expired:
        reservation.status = ReservationStatus.EXPIRED
    db.flush()

    for book_id in sorted({r.book_id for r in expired}):
        update_queue_positions(db, book_id)

    db.commit()

    logger.info(
        "Reservations expired",
        extra={
            "operation": "reservation_expire_job",
            "resource": "reservation",
            "expired_count": len(expired),
        },
    )
    return len(expired)


def process_reservation_queue(db: Session, book_id: int) -> Reservation | None:
    """
    Avisa al primero de la cola: notification_sent=True y nuevo plazo de
    RESERVATION_PICKUP_DAYS. No aparta ninguna copia para él.
    """
    book = db.query(Book).filter(Book.id == book_id, Book.is_deleted.is_(False)).first()
    if not book:
        raise NotFoundError("Book not found")

    head = (
        _active_queue(db, book_id)
        .order_by(Reservation.queue_position.asc())
        .with_for_update()
        .first()
    )
    if not head:
        return None

    now = utcnow()
    head.notification_sent = True
    head.expiry_date = now + timedelta(days=settings.RESERVATION_PICKUP_DAYS)
    db.commit()
    db.refresh(head)

    logger.info(
        "Next user in queue notified",
        extra={
            "operation": "reservation_notify_next",
            "resource": "reservation",
            "reservation_id": head.id,
            "book_id": book_id,
            "notified_user_id": head.user_id,
        },
    )

    # El aviso sale con la cola ya confirmada y sin el FOR UPDATE tomado
    try:
        email_service.send_reservation_ready(db, head.user, book.title, head.expiry_date)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "Reservation ready email failed",
            extra={
                "operation": "reservation_notify_next",
                "resource": "email",
                "reservation_id": head.id,
            },
        )

    return head


def list_user_reservations(db: Session, user_id: int) -> list[Reservation]:
    return (
        db.query(Reservation)
        .filter(Reservation.user_id == user_id)
        .order_by(Reservation.created_at.desc(), Reservation.id.desc())
        .all()
    )


def list_book_queue(db: Session, book_id: int) -> list[Reservation]:
    return _active_queue(db, book_id).order_by(Reservation.queue_position.asc()).all()
