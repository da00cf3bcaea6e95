# unilib/schemas/admin.py

from datetime import datetime
from decimal import Decimal
from typing import List

from pydantic import BaseModel


class BorrowStatusCount(BaseModel):
    status: str
    count: int


class DashboardStats(BaseModel):
    # Usuarios
    total_users: int
    active_users: int
    total_students: int
    total_faculty: int
    total_librarians: int
    total_admins: int

    # Libros / inventario
    total_books: int
    total_copies: int
    available_copies: int
    borrowed_copies: int

    # Circulación
    active_borrows: int
    overdue_borrows: int
    pending_borrow_requests: int
    pending_account_requests: int
    active_reservations: int
    total_unpaid_fines: Decimal

    borrows_by_status: List[BorrowStatusCount]

    generated_at: datetime
