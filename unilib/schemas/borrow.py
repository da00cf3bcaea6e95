from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from unilib.db.models import BorrowStatus


class BorrowCreate(BaseModel):
    book_id: int
    # Sólo librarian/admin pueden prestar a nombre de otro usuario
    user_id: Optional[int] = None


class BorrowRead(BaseModel):
    id: int
    user_id: int
    book_id: int
    book_copy_id: int
    librarian_id: Optional[int] = None
    request_date: datetime
    approved_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    return_date: Optional[datetime] = None
    status: BorrowStatus
    renewal_count: int
    max_renewals: int

    class Config:
        from_attributes = True


class BorrowDetailRead(BorrowRead):
    """Préstamo con datos del libro/usuario para las tablas de admin."""

    book_title: Optional[str] = None
    copy_number: Optional[str] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None


class BorrowActionResult(BaseModel):
    success: bool = True
    message: str
    borrow: BorrowRead
