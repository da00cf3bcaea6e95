import math
from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload, selectinload

from unilib.core.config import settings
from unilib.core.errors import BusinessRuleError, NotFoundError
from unilib.core.logging import get_logger
from unilib.core.timeutils import as_utc, utcnow
from unilib.db.models import (
    BorrowRequest,
    BorrowStatus,
    Fine,
    FineStatus,
    FineType,
    PaymentMethod,
    User,
)
from unilib.services import email_service

logger = get_logger("services.overdue")

SECONDS_PER_DAY = 24 * 60 * 60


def days_overdue(due_date: datetime, now: datetime | None = None) -> int:
    """Días de atraso redondeando hacia arriba; 0 si todavía no vence."""
    now = now or utcnow()
    delta = (now - as_utc(due_date)).total_seconds()
    if delta <= 0:
        return 0
    return math.ceil(delta / SECONDS_PER_DAY)


def calculate_fine(days: int) -> Decimal:
    return (Decimal(days) * Decimal(settings.FINE_PER_DAY)).quantize(Decimal("0.01"))


def overdue_candidates_query(db: Session, now: datetime):
    """Préstamos activos ya vencidos, bloqueados para el job de multas."""
    return (
        db.query(BorrowRequest)
        .options(selectinload(BorrowRequest.book))
        .filter(
            BorrowRequest.status.in_((BorrowStatus.APPROVED, BorrowStatus.OVERDUE)),
            BorrowRequest.return_date.is_(None),
            BorrowRequest.due_date < now,
        )
        # Sólo se bloquea borrow_requests; PostgreSQL no acepta FOR UPDATE sobre un outer join
        .with_for_update(of=BorrowRequest)
    )


def process_overdue_books(db: Session) -> dict:
    """
    Pasa a OVERDUE los préstamos vencidos y crea/actualiza su multa.

    La multa es un recálculo (días × tarifa), no se acumula: correr el
    job dos veces el mismo día deja el mismo importe.
    """
    now = utcnow()

    candidates = overdue_candidates_query(db, now).all()

    overdue_count = 0
    fines_created = 0
    fines_updated = 0

    for borrow in candidates:
        if borrow.status == BorrowStatus.APPROVED:
            borrow.status = BorrowStatus.OVERDUE
            overdue_count += 1

        days = days_overdue(borrow.due_date, now)
        amount = calculate_fine(days)

        fine = db.query(Fine).filter(Fine.borrow_request_id == borrow.id).first()
        if fine is None:
            db.add(
                Fine(
                    user_id=borrow.user_id,
                    borrow_request_id=borrow.id,
                    fine_type=FineType.OVERDUE,
                    amount=amount,
                    days_overdue=days,
                    description=f"Overdue book: {borrow.book.title}",
                    fine_date=now,
                    due_date=now + timedelta(days=settings.FINE_PAYMENT_DAYS),
                    status=FineStatus.UNPAID,
                )
            )
            fines_created += 1
        elif fine.status == FineStatus.UNPAID:
            fine.amount = amount
            fine.days_overdue = days
            fines_updated += 1

    db.commit()

    logger.info(
        "Overdue job executed",
        extra={
            "operation": "overdue_job",
            "resource": "borrow",
            "overdue_count": overdue_count,
            "fines_created": fines_created,
            "fines_updated": fines_updated,
        },
    )
    return {
        "overdue_count": overdue_count,
        "fines_created": fines_created,
        "fines_updated": fines_updated,
    }


def _open_overdue(db: Session) -> list[BorrowRequest]:
    return (
        db.query(BorrowRequest)
        .options(joinedload(BorrowRequest.user), joinedload(BorrowRequest.book))
        .filter(
            BorrowRequest.status == BorrowStatus.OVERDUE,
            BorrowRequest.return_date.is_(None),
        )
        .order_by(BorrowRequest.due_date.asc())
        .all()
    )


def get_overdue_statistics(db: Session) -> dict:
    now = utcnow()
    overdue_books = []
    per_user: "OrderedDict[int, dict]" = OrderedDict()

    for borrow in _open_overdue(db):
        days = days_overdue(borrow.due_date, now)
        overdue_books.append(
            {
                "borrow_id": borrow.id,
                "user_id": borrow.user_id,
                "user_name": borrow.user.full_name,
                "user_email": borrow.user.email,
                "book_id": borrow.book_id,
                "book_title": borrow.book.title,
                "due_date": borrow.due_date,
                "days_overdue": days,
            }
        )
        entry = per_user.setdefault(
            borrow.user_id,
            {
                "user_id": borrow.user_id,
                "user_name": borrow.user.full_name,
                "user_email": borrow.user.email,
                "count": 0,
            },
        )
        entry["count"] += 1

    total_unpaid = (
        db.query(func.coalesce(func.sum(Fine.amount), 0))
        .filter(Fine.status == FineStatus.UNPAID)
        .scalar()
    )

    average = 0
    if overdue_books:
        average = round(sum(b["days_overdue"] for b in overdue_books) / len(overdue_books))

    return {
        "total_overdue_books": len(overdue_books),
        "overdue_books": overdue_books,
        "total_unpaid_fines": Decimal(str(total_unpaid or 0)),
        "users_with_overdue": list(per_user.values()),
        "average_days_overdue": average,
    }


def send_overdue_reminders(db: Session) -> dict:
    """Un aviso por usuario con todos sus libros vencidos."""
    now = utcnow()
    grouped: "OrderedDict[int, list[BorrowRequest]]" = OrderedDict()
    for borrow in _open_overdue(db):
        grouped.setdefault(borrow.user_id, []).append(borrow)

    sent = 0
    for borrows in grouped.values():
        user = borrows[0].user
        books = []
        for borrow in borrows:
            days = days_overdue(borrow.due_date, now)
            books.append(
                {
                    "title": borrow.book.title,
                    "due_date": as_utc(borrow.due_date),
                    "days_overdue": days,
                    "fine_amount": calculate_fine(days),
                }
            )
        notification = email_service.send_overdue_notice(db, user, books)
        if notification.email_sent:
            sent += 1

    db.commit()

    logger.info(
        "Overdue reminders sent",
        extra={
            "operation": "overdue_reminders",
            "resource": "notification",
            "reminders_prepared": len(grouped),
            "emails_sent": sent,
        },
    )
    return {"reminders_prepared": len(grouped), "emails_sent": sent}


def send_due_reminders(db: Session, days_ahead: int | None = None) -> dict:
    """Recordatorio para los préstamos que vencen en los próximos días."""
    days_ahead = settings.DUE_REMINDER_DAYS if days_ahead is None else days_ahead
    now = utcnow()
    limit = now + timedelta(days=days_ahead)

    due_soon = (
        db.query(BorrowRequest)
        .options(joinedload(BorrowRequest.user), joinedload(BorrowRequest.book))
        .filter(
            BorrowRequest.status == BorrowStatus.APPROVED,
            BorrowRequest.return_date.is_(None),
            BorrowRequest.due_date >= now,
            BorrowRequest.due_date <= limit,
        )
        .order_by(BorrowRequest.due_date.asc())
        .all()
    )

    sent = 0
    for borrow in due_soon:
        due = as_utc(borrow.due_date)
        days_until_due = max(1, math.ceil((due - now).total_seconds() / SECONDS_PER_DAY))
        notification = email_service.send_due_date_reminder(
            db, borrow.user, borrow.book.title, due, days_until_due
        )
        if notification.email_sent:
            sent += 1

    db.commit()

    logger.info(
        "Due date reminders sent",
        extra={
            "operation": "due_reminders",
            "resource": "notification",
            "reminders_prepared": len(due_soon),
            "emails_sent": sent,
        },
    )
    return {"reminders_prepared": len(due_soon), "emails_sent": sent}


# ---- Multas ----

def get_fine_or_404(db: Session, fine_id: int) -> Fine:
    fine = db.query(Fine).filter(Fine.id == fine_id).first()
    if not fine:
        raise NotFoundError("Fine not found")
    return fine


def pay_fine(
    db: Session,
    fine_id: int,
    payment_method: PaymentMethod,
) -> Fine:
    fine = get_fine_or_404(db, fine_id)
    if fine.status not in (FineStatus.UNPAID, FineStatus.DISPUTED):
        raise BusinessRuleError(f"Fine is already {fine.status.value}")
    if payment_method == PaymentMethod.WAIVED:
        raise BusinessRuleError("Use the waive operation to waive a fine")

    fine.status = FineStatus.PAID
    fine.paid_date = utcnow()
    fine.payment_method = payment_method
    db.commit()
    db.refresh(fine)

    logger.info(
        "Fine paid",
        extra={
            "operation": "fine_pay",
            "resource": "fine",
            "fine_id": fine.id,
            "amount": fine.amount,
            "payment_method": payment_method.value,
        },
    )
    return fine


def waive_fine(db: Session, fine_id: int, waived_by: User, reason: str) -> Fine:
    fine = get_fine_or_404(db, fine_id)
    if fine.status not in (FineStatus.UNPAID, FineStatus.DISPUTED):
        raise BusinessRuleError(f"Fine is already {fine.status.value}")

    fine.status = FineStatus.WAIVED
    fine.waived_by_id = waived_by.id
    fine.waived_reason = reason
    fine.payment_method = PaymentMethod.WAIVED
    db.commit()
    db.refresh(fine)

    logger.info(
        "Fine waived",
        extra={
            "operation": "fine_waive",
            "resource": "fine",
            "fine_id": fine.id,
            "waived_by_id": waived_by.id,
        },
    )
    return fine


def list_fines(
    db: Session,
    status: FineStatus | None = None,
    user_id: int | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[Fine]:
    query = db.query(Fine)
    if status is not None:
        query = query.filter(Fine.status == status)
    if user_id is not None:
        query = query.filter(Fine.user_id == user_id)
    return query.order_by(Fine.fine_date.desc(), Fine.id.desc()).offset(skip).limit(limit).all()
