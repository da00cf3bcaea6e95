from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from unilib.api.v1.dependencies import get_db
from unilib.api.v1.dependencies_auth import get_current_user, require_staff
from unilib.db.models import FineStatus, User
from unilib.schemas.fine import FinePayment, FineRead, FineWaiver
from unilib.services import overdue_service

router = APIRouter(
    prefix="/api/v1/fines",
    tags=["fines"],
)


@router.get("/", response_model=List[FineRead], dependencies=[Depends(require_staff)])
def list_fines(
    status: Optional[FineStatus] = Query(None),
    user_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return overdue_service.list_fines(db, status=status, user_id=user_id, skip=skip, limit=limit)


@router.get("/me", response_model=List[FineRead])
def my_fines(
    status: Optional[FineStatus] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return overdue_service.list_fines(db, status=status, user_id=current_user.id)


# El pago lo registra quien lo cobra en mostrador
@router.post("/{fine_id}/pay", response_model=FineRead, dependencies=[Depends(require_staff)])
def pay_fine(
    fine_id: int,
    payload: FinePayment,
    db: Session = Depends(get_db),
):
    return overdue_service.pay_fine(db, fine_id, payload.payment_method)


@router.post("/{fine_id}/waive", response_model=FineRead)
def waive_fine(
    fine_id: int,
    payload: FineWaiver,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    return overdue_service.waive_fine(db, fine_id, waived_by=current_user, reason=payload.reason)
