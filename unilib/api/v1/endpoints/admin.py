# unilib/api/v1/endpoints/admin.py
from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from unilib.api.v1.dependencies import get_db
from unilib.api.v1.dependencies_auth import require_admin
from unilib.core.logging import get_logger
from unilib.core.timeutils import utcnow
from unilib.db.models import (
    AccountRequest,
    AccountRequestStatus,
    AccountStatus,
    Book,
    BookCopy,
    BorrowRequest,
    BorrowStatus,
    CopyStatus,
    Fine,
    FineStatus,
    Reservation,
    ReservationStatus,
    User,
    UserRole,
)
from unilib.schemas.admin import BorrowStatusCount, DashboardStats

logger = get_logger("api.admin")

router = APIRouter(
    prefix="/api/v1/admin",
    tags=["admin"],
)


@router.get("/dashboard", response_model=DashboardStats)
def get_dashboard_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    """
    Estadísticas globales para el panel de administración (solo ADMIN).
    """

    # === Usuarios ===
    users = db.query(func.count(User.id)).filter(User.is_deleted.is_(False))
    total_users = users.scalar() or 0
    active_users = users.filter(User.account_status == AccountStatus.ACTIVE).scalar() or 0
    by_role = dict(
        db.query(User.role, func.count(User.id))
        .filter(User.is_deleted.is_(False))
        .group_by(User.role)
        .all()
    )

    # === Libros / Inventario ===
    books = db.query(Book).filter(Book.is_deleted.is_(False))
    total_books = books.count()
    total_copies = (
        db.query(func.coalesce(func.sum(Book.total_copies), 0)).filter(Book.is_deleted.is_(False)).scalar() or 0
    )
    available_copies = (
        db.query(func.coalesce(func.sum(Book.available_copies), 0)).filter(Book.is_deleted.is_(False)).scalar()
        or 0
    )
    borrowed_copies = (
        db.query(func.count(BookCopy.id)).filter(BookCopy.status == CopyStatus.BORROWED).scalar() or 0
    )

    # === Circulación ===
    by_status = dict(
        db.query(BorrowRequest.status, func.count(BorrowRequest.id))
        .group_by(BorrowRequest.status)
        .all()
    )
    pending_account_requests = (
        db.query(func.count(AccountRequest.id))
        .filter(AccountRequest.status == AccountRequestStatus.PENDING)
        .scalar()
        or 0
    )
    active_reservations = (
        db.query(func.count(Reservation.id))
        .filter(Reservation.status == ReservationStatus.ACTIVE)
        .scalar()
        or 0
    )
    total_unpaid_fines = (
        db.query(func.coalesce(func.sum(Fine.amount), 0))
        .filter(Fine.status == FineStatus.UNPAID)
        .scalar()
    )

    stats = DashboardStats(
        total_users=total_users,
        active_users=active_users,
        total_students=by_role.get(UserRole.STUDENT, 0),
        total_faculty=by_role.get(UserRole.FACULTY, 0),
        total_librarians=by_role.get(UserRole.LIBRARIAN, 0),
        total_admins=by_role.get(UserRole.ADMIN, 0),
        total_books=total_books,
        total_copies=total_copies,
        available_copies=available_copies,
        borrowed_copies=borrowed_copies,
        active_borrows=by_status.get(BorrowStatus.APPROVED, 0) + by_status.get(BorrowStatus.OVERDUE, 0),
        overdue_borrows=by_status.get(BorrowStatus.OVERDUE, 0),
        pending_borrow_requests=by_status.get(BorrowStatus.PENDING, 0),
        pending_account_requests=pending_account_requests,
        active_reservations=active_reservations,
        total_unpaid_fines=Decimal(str(total_unpaid_fines or 0)),
        borrows_by_status=[
            BorrowStatusCount(status=s.value, count=by_status.get(s, 0)) for s in BorrowStatus
        ],
        generated_at=utcnow(),
    )

    logger.info(
        "Admin fetched dashboard stats",
        extra={
            "operation": "admin_dashboard",
            "resource": "stats",
            "user_id": current_user.id,
        },
    )
    return stats
