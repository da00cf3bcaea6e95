from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from unilib.api.v1.dependencies import get_db
from unilib.api.v1.dependencies_auth import get_current_user, require_admin, require_staff
from unilib.db.models import User
from unilib.schemas.book import (
    BookCopyRead,
    BookCopyUpdate,
    BookCreate,
    BookRead,
    BookSearchResult,
    BookUpdate,
    FilterOptions,
)
from unilib.schemas.reservation import ReservationRead
from unilib.services import catalog_service, reservation_service

router = APIRouter(
    prefix="/api/v1/books",
    tags=["books"],
)


@router.get("/", response_model=BookSearchResult)
def search_books(
    query: Optional[str] = Query(None),
    subject: Optional[str] = Query(None),
    author: Optional[str] = Query(None),
    language: Optional[str] = Query(None),
    availability: str = Query("all", pattern="^(all|available|unavailable)$"),
    sort_by: str = "title",        # "title", "publication_year", "available_copies", "created_at"
    sort_order: str = "asc",       # "asc" o "desc"
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return catalog_service.search_books(
        db,
        query=query,
        subject=subject,
        author=author,
        language=language,
        availability=availability,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )


@router.get("/filter-options", response_model=FilterOptions)
def filter_options(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return catalog_service.get_filter_options(db)


@router.get("/recent", response_model=List[BookRead])
def recent_books(
    limit: int = Query(8, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return catalog_service.recent_books(db, limit=limit)


@router.post(
    "/",
    response_model=BookRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_staff)],
)
def create_book(
    payload: BookCreate,
    db: Session = Depends(get_db),
):
    return catalog_service.create_book(db, payload)


@router.get("/{book_id}", response_model=BookRead)
def get_book(
    book_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return catalog_service.get_book_or_404(db, book_id)


@router.put("/{book_id}", response_model=BookRead, dependencies=[Depends(require_staff)])
def update_book(
    book_id: int,
    payload: BookUpdate,
    db: Session = Depends(get_db),
):
    return catalog_service.update_book(db, book_id, payload)


@router.delete(
    "/{book_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def delete_book(
    book_id: int,
    db: Session = Depends(get_db),
):
    catalog_service.delete_book(db, book_id)
    return None


@router.get("/{book_id}/copies", response_model=List[BookCopyRead])
def list_copies(
    book_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return catalog_service.list_book_copies(db, book_id)


@router.patch(
    "/{book_id}/copies/{copy_id}",
    response_model=BookCopyRead,
    dependencies=[Depends(require_staff)],
)
def update_copy(
    book_id: int,
    copy_id: int,
    payload: BookCopyUpdate,
    db: Session = Depends(get_db),
):
    return catalog_service.update_copy(db, book_id, copy_id, payload)


@router.get("/{book_id}/queue", response_model=List[ReservationRead], dependencies=[Depends(require_staff)])
def book_queue(
    book_id: int,
    db: Session = Depends(get_db),
):
    catalog_service.get_book_or_404(db, book_id)
    return reservation_service.list_book_queue(db, book_id)
