from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from unilib.db.models import CopyCondition, CopyStatus


class BookAuthorRead(BaseModel):
    id: int
    full_name: str

    class Config:
        from_attributes = True


class BookSubjectRead(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class BookCreate(BaseModel):
    title: str = Field(min_length=1)
    subtitle: Optional[str] = None
    isbn_13: Optional[str] = Field(default=None, pattern=r"^[0-9]{13}$")
    isbn_10: Optional[str] = Field(default=None, pattern=r"^[0-9]{9}[0-9X]$")
    publisher_id: int
    publication_year: int = Field(ge=1400)
    edition: Optional[str] = None
    pages: Optional[int] = Field(default=None, gt=0)
    language: str = "English"
    description: Optional[str] = None
    shelf_location: str = Field(min_length=1)
    acquisition_price: Optional[Decimal] = Field(default=None, ge=0)
    total_copies: int = Field(default=1, ge=0)
    author_ids: List[int] = []
    subject_ids: List[int] = []


class BookUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    subtitle: Optional[str] = None
    isbn_13: Optional[str] = Field(default=None, pattern=r"^[0-9]{13}$")
    isbn_10: Optional[str] = Field(default=None, pattern=r"^[0-9]{9}[0-9X]$")
    publisher_id: Optional[int] = None
    publication_year: Optional[int] = Field(default=None, ge=1400)
    edition: Optional[str] = None
    pages: Optional[int] = Field(default=None, gt=0)
    language: Optional[str] = None
    description: Optional[str] = None
    shelf_location: Optional[str] = None
    acquisition_price: Optional[Decimal] = Field(default=None, ge=0)
    total_copies: Optional[int] = Field(default=None, ge=0)
    author_ids: Optional[List[int]] = None
    subject_ids: Optional[List[int]] = None


class BookRead(BaseModel):
    id: int
    title: str
    subtitle: Optional[str] = None
    isbn_13: Optional[str] = None
    isbn_10: Optional[str] = None
    publisher_id: int
    publisher_name: Optional[str] = None
    publication_year: int
    edition: Optional[str] = None
    pages: Optional[int] = None
    language: str
    description: Optional[str] = None
    shelf_location: str
    acquisition_date: Optional[date] = None
    total_copies: int
    available_copies: int
    authors: List[BookAuthorRead] = []
    subjects: List[BookSubjectRead] = []
    created_at: datetime

    class Config:
        from_attributes = True


class BookCopyRead(BaseModel):
    id: int
    book_id: int
    copy_number: str
    barcode: Optional[str] = None
    status: CopyStatus
    condition_rating: CopyCondition
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class BookCopyUpdate(BaseModel):
    status: Optional[CopyStatus] = None
    condition_rating: Optional[CopyCondition] = None
    last_maintenance: Optional[date] = None
    notes: Optional[str] = None


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_count: int
    has_next_page: bool
    has_previous_page: bool


class BookSearchResult(BaseModel):
    books: List[BookRead]
    pagination: Pagination


class FilterOptions(BaseModel):
    languages: List[str]
    subjects: List[str]
    authors: List[str]
    total_books: int
    available_books: int
