from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from unilib.api.v1.dependencies import get_db
from unilib.api.v1.dependencies_auth import get_current_user, require_staff
from unilib.core.errors import NotFoundError, PermissionDeniedError
from unilib.db.models import BorrowStatus, User, UserRole
from unilib.schemas.borrow import BorrowActionResult, BorrowCreate, BorrowDetailRead, BorrowRead
from unilib.services import borrow_service

router = APIRouter(
    prefix="/api/v1/borrows",
    tags=["borrows"],
)

STAFF_ROLES = (UserRole.ADMIN, UserRole.LIBRARIAN)


@router.post("/", response_model=BorrowActionResult, status_code=status.HTTP_201_CREATED)
def borrow_book(
    payload: BorrowCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Un usuario presta para sí mismo; staff puede prestar a nombre de otro
    (queda registrado como librarian del préstamo).
    """
    borrower = current_user
    librarian = None

    if payload.user_id is not None and payload.user_id != current_user.id:
        if current_user.role not in STAFF_ROLES:
            raise PermissionDeniedError("Only staff can borrow on behalf of another user")
        borrower = (
            db.query(User)
            .filter(User.id == payload.user_id, User.is_deleted.is_(False))
            .first()
        )
        if not borrower:
            raise NotFoundError("User not found")
        librarian = current_user

    borrow = borrow_service.borrow_book(db, borrower, payload.book_id, librarian=librarian)
    return BorrowActionResult(message="Book borrowed successfully", borrow=BorrowRead.model_validate(borrow))


@router.post("/{borrow_id}/return", response_model=BorrowActionResult, dependencies=[Depends(require_staff)])
def return_book(
    borrow_id: int,
    db: Session = Depends(get_db),
):
    borrow = borrow_service.return_book(db, borrow_id)
    return BorrowActionResult(message="Book returned successfully", borrow=BorrowRead.model_validate(borrow))


@router.post("/{borrow_id}/renew", response_model=BorrowActionResult)
def renew_book(
    borrow_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    # Los miembros sólo renuevan lo suyo
    owner = None if current_user.role in STAFF_ROLES else current_user
    borrow = borrow_service.renew_book(db, borrow_id, user=owner)
    return BorrowActionResult(message="Book renewed successfully", borrow=BorrowRead.model_validate(borrow))


@router.post(
    "/{borrow_id}/mark-overdue",
    response_model=BorrowActionResult,
    dependencies=[Depends(require_staff)],
)
def mark_as_overdue(
    borrow_id: int,
    db: Session = Depends(get_db),
):
    borrow = borrow_service.mark_as_overdue(db, borrow_id)
    return BorrowActionResult(message="Borrow marked as overdue", borrow=BorrowRead.model_validate(borrow))


@router.get("/", response_model=List[BorrowDetailRead], dependencies=[Depends(require_staff)])
def list_borrows(
    status: Optional[BorrowStatus] = Query(None),
    user_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    borrows = borrow_service.list_borrows(db, status=status, user_id=user_id, skip=skip, limit=limit)
    return [borrow_service.to_detail(b) for b in borrows]


@router.get("/active", response_model=List[BorrowDetailRead], dependencies=[Depends(require_staff)])
def list_active_borrows(db: Session = Depends(get_db)):
    return [borrow_service.to_detail(b) for b in borrow_service.list_active_borrows(db)]


@router.get(
    "/overdue-candidates",
    response_model=List[BorrowDetailRead],
    dependencies=[Depends(require_staff)],
)
def list_overdue_candidates(db: Session = Depends(get_db)):
    return [borrow_service.to_detail(b) for b in borrow_service.list_overdue_candidates(db)]


@router.get("/me", response_model=List[BorrowDetailRead])
def my_borrowed_books(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    borrows = borrow_service.list_user_borrowed_books(db, current_user.id)
    return [borrow_service.to_detail(b) for b in borrows]


@router.get("/me/history", response_model=List[BorrowDetailRead])
def my_borrow_history(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    borrows = borrow_service.list_user_borrow_history(db, current_user.id)
    return [borrow_service.to_detail(b) for b in borrows]
