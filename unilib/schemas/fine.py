from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from unilib.db.models import FineStatus, FineType, PaymentMethod


class FineRead(BaseModel):
    id: int
    user_id: int
    borrow_request_id: Optional[int] = None
    fine_type: FineType
    amount: Decimal
    days_overdue: Optional[int] = None
    description: Optional[str] = None
    fine_date: datetime
    due_date: Optional[datetime] = None
    paid_date: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    waived_by_id: Optional[int] = None
    waived_reason: Optional[str] = None
    status: FineStatus

    class Config:
        from_attributes = True


class FinePayment(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.CASH


class FineWaiver(BaseModel):
    reason: str = Field(min_length=1)


class OverdueProcessResult(BaseModel):
    success: bool = True
    message: str
    overdue_count: int
    fines_created: int
    fines_updated: int


class OverdueBook(BaseModel):
    borrow_id: int
    user_id: int
    user_name: str
    user_email: str
    book_id: int
    book_title: str
    due_date: datetime
    days_overdue: int


class UserOverdueCount(BaseModel):
    user_id: int
    user_name: str
    user_email: str
    count: int


class OverdueStatistics(BaseModel):
    total_overdue_books: int
    overdue_books: List[OverdueBook]
    total_unpaid_fines: Decimal
    users_with_overdue: List[UserOverdueCount]
    average_days_overdue: int


class ReminderResult(BaseModel):
    success: bool = True
    message: str
    reminders_prepared: int
    emails_sent: int
