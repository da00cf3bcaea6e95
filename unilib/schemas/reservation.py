from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from unilib.db.models import ReservationStatus


class ReservationCreate(BaseModel):
    book_id: int


class ReservationRead(BaseModel):
    id: int
    user_id: int
    book_id: int
    reservation_date: datetime
    expiry_date: Optional[datetime] = None
    queue_position: int
    status: ReservationStatus
    notification_sent: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ReservationActionResult(BaseModel):
    success: bool = True
    message: str
    reservation: Optional[ReservationRead] = None


class NotifiedUser(BaseModel):
    user_id: int
    user_name: str
    user_email: str
    queue_position: int


class QueueProcessResult(BaseModel):
    success: bool = True
    message: str
    notification: Optional[NotifiedUser] = None


class ExpireResult(BaseModel):
    success: bool = True
    message: str
    expired_count: int
