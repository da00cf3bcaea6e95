from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from unilib.db.models import AccountRequestStatus, UserRole


class AccountRequestCreate(BaseModel):
    full_name: str = Field(min_length=1)
    email: EmailStr
    student_id: Optional[str] = Field(default=None, min_length=5)
    phone: Optional[str] = None
    address: Optional[str] = None
    department_id: Optional[int] = None
    university_card_url: Optional[str] = None


class AccountRequestRead(BaseModel):
    id: int
    full_name: str
    email: str
    student_id: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    department_id: Optional[int] = None
    university_card_url: Optional[str] = None
    request_date: datetime
    status: AccountRequestStatus
    reviewed_by_id: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    approved_user_id: Optional[int] = None

    class Config:
        from_attributes = True


class AccountRequestApprove(BaseModel):
    password: str = Field(min_length=6)
    role: UserRole = UserRole.STUDENT
    max_books_allowed: int = Field(default=5, gt=0, le=50)


class AccountRequestReject(BaseModel):
    rejection_reason: str = Field(min_length=1)


class AccountRequestActionResult(BaseModel):
    success: bool = True
    message: str
    request_id: int
    user_id: Optional[int] = None
