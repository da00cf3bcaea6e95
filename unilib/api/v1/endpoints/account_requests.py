from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from unilib.api.v1.dependencies import get_db
from unilib.api.v1.dependencies_auth import require_admin
from unilib.db.models import User
from unilib.schemas.account_request import (
    AccountRequestActionResult,
    AccountRequestApprove,
    AccountRequestCreate,
    AccountRequestRead,
    AccountRequestReject,
)
from unilib.services import account_request_service

router = APIRouter(
    prefix="/api/v1/account-requests",
    tags=["account-requests"],
)


# Público: el formulario de registro no tiene sesión
@router.post("/", response_model=AccountRequestRead, status_code=status.HTTP_201_CREATED)
def create_account_request(
    payload: AccountRequestCreate,
    db: Session = Depends(get_db),
):
    return account_request_service.create_account_request(db, payload)


@router.get("/", response_model=List[AccountRequestRead], dependencies=[Depends(require_admin)])
def list_account_requests(db: Session = Depends(get_db)):
    return account_request_service.list_account_requests(db)


@router.get("/pending", response_model=List[AccountRequestRead], dependencies=[Depends(require_admin)])
def list_pending_requests(db: Session = Depends(get_db)):
    return account_request_service.list_pending_requests(db)


@router.post("/{request_id}/approve", response_model=AccountRequestActionResult)
def approve_account_request(
    request_id: int,
    payload: AccountRequestApprove,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    user = account_request_service.approve_account_request(
        db,
        request_id,
        reviewer=current_user,
        password=payload.password,
        role=payload.role,
        max_books_allowed=payload.max_books_allowed,
    )
    return AccountRequestActionResult(
        message="Account request approved and user created successfully",
        request_id=request_id,
        user_id=user.id,
    )


@router.post("/{request_id}/reject", response_model=AccountRequestActionResult)
def reject_account_request(
    request_id: int,
    payload: AccountRequestReject,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    account_request_service.reject_account_request(
        db,
        request_id,
        reviewer=current_user,
        rejection_reason=payload.rejection_reason,
    )
    return AccountRequestActionResult(
        message="Account request rejected successfully",
        request_id=request_id,
    )
