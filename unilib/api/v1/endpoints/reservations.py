from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from unilib.api.v1.dependencies import get_db
from unilib.api.v1.dependencies_auth import get_current_user, require_staff
from unilib.db.models import User
from unilib.schemas.reservation import (
    ExpireResult,
    NotifiedUser,
    QueueProcessResult,
    ReservationActionResult,
    ReservationCreate,
    ReservationRead,
)
from unilib.services import reservation_service

router = APIRouter(
    prefix="/api/v1/reservations",
    tags=["reservations"],
)


@router.post("/", response_model=ReservationActionResult, status_code=status.HTTP_201_CREATED)
def create_reservation(
    payload: ReservationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    reservation = reservation_service.create_reservation(db, current_user, payload.book_id)
    return ReservationActionResult(
        message=f"Book reserved successfully. You are #{reservation.queue_position} in the queue.",
        reservation=ReservationRead.model_validate(reservation),
    )


@router.post("/{reservation_id}/cancel", response_model=ReservationActionResult)
def cancel_reservation(
    reservation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    reservation = reservation_service.cancel_reservation(db, reservation_id, current_user)
    return ReservationActionResult(
        message="Reservation cancelled successfully",
        reservation=ReservationRead.model_validate(reservation),
    )


@router.get("/me", response_model=List[ReservationRead])
def my_reservations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return reservation_service.list_user_reservations(db, current_user.id)


@router.post(
    "/books/{book_id}/notify-next",
    response_model=QueueProcessResult,
    dependencies=[Depends(require_staff)],
)
def notify_next_in_queue(
    book_id: int,
    db: Session = Depends(get_db),
):
    reservation = reservation_service.process_reservation_queue(db, book_id)
    if reservation is None:
        return QueueProcessResult(message="No active reservations for this book")

    return QueueProcessResult(
        message="Next user in queue notified",
        notification=NotifiedUser(
            user_id=reservation.user_id,
            user_name=reservation.user.full_name,
            user_email=reservation.user.email,
            queue_position=reservation.queue_position,
        ),
    )


@router.post("/expire", response_model=ExpireResult, dependencies=[Depends(require_staff)])
def expire_reservations(db: Session = Depends(get_db)):
    expired = reservation_service.expire_reservations(db)
    return ExpireResult(message=f"{expired} reservation(s) expired", expired_count=expired)
