from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


# ---- Departments ----

class DepartmentCreate(BaseModel):
    name: str
    code: str
    description: Optional[str] = None


class DepartmentUpdate(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    description: Optional[str] = None


class DepartmentRead(DepartmentCreate):
    id: int

    class Config:
        from_attributes = True


# ---- Authors ----

class AuthorCreate(BaseModel):
    full_name: str = Field(min_length=1)
    birth_date: Optional[date] = None
    death_date: Optional[date] = None
    nationality: Optional[str] = None
    biography: Optional[str] = None


class AuthorUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1)
    birth_date: Optional[date] = None
    death_date: Optional[date] = None
    nationality: Optional[str] = None
    biography: Optional[str] = None


class AuthorRead(AuthorCreate):
    id: int
    created_at: datetime

    class Config:
        from_attributes = True


# ---- Publishers ----

class PublisherCreate(BaseModel):
    name: str = Field(min_length=1)
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    website: Optional[str] = Field(default=None, pattern=r"^https?://.+")
    established_year: Optional[int] = Field(default=None, ge=1400)


class PublisherUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    website: Optional[str] = Field(default=None, pattern=r"^https?://.+")
    established_year: Optional[int] = Field(default=None, ge=1400)


class PublisherRead(PublisherCreate):
    id: int
    created_at: datetime

    class Config:
        from_attributes = True


# ---- Subjects ----

class SubjectCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    parent_subject_id: Optional[int] = None
    dewey_decimal: Optional[str] = Field(default=None, pattern=r"^[0-9]{3}(\.[0-9]+)?$")


class SubjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    parent_subject_id: Optional[int] = None
    dewey_decimal: Optional[str] = Field(default=None, pattern=r"^[0-9]{3}(\.[0-9]+)?$")


class SubjectRead(SubjectCreate):
    id: int

    class Config:
        from_attributes = True
