from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from unilib.db.models import AccountStatus, UserRole


class UserBase(BaseModel):
    email: str
    full_name: str
    role: UserRole = UserRole.STUDENT
    account_status: AccountStatus = AccountStatus.ACTIVE
    student_id: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    department_id: Optional[int] = None
    max_books_allowed: int = 5
    max_days_allowed: int = 14


class UserCreate(BaseModel):
    email: EmailStr
    full_name: str
    password: str = Field(min_length=6)
    role: UserRole = UserRole.STUDENT
    account_status: AccountStatus = AccountStatus.ACTIVE
    student_id: Optional[str] = Field(default=None, min_length=5)
    phone: Optional[str] = None
    address: Optional[str] = None
    department_id: Optional[int] = None
    max_books_allowed: int = Field(default=5, gt=0, le=50)
    max_days_allowed: int = Field(default=14, gt=0, le=365)
    enrollment_date: Optional[date] = None
    graduation_date: Optional[date] = None


class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    full_name: Optional[str] = None
    role: Optional[UserRole] = None
    account_status: Optional[AccountStatus] = None
    student_id: Optional[str] = Field(default=None, min_length=5)
    phone: Optional[str] = None
    address: Optional[str] = None
    department_id: Optional[int] = None
    max_books_allowed: Optional[int] = Field(default=None, gt=0, le=50)
    max_days_allowed: Optional[int] = Field(default=None, gt=0, le=365)
    enrollment_date: Optional[date] = None
    graduation_date: Optional[date] = None
    new_password: Optional[str] = Field(default=None, min_length=6)


class UserRead(UserBase):
    id: int
    enrollment_date: Optional[date] = None
    graduation_date: Optional[date] = None
    created_at: datetime

    class Config:
        from_attributes = True  # pydantic v2
