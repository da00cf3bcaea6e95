from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from unilib.api.v1.dependencies import get_db
from unilib.api.v1.dependencies_auth import get_current_user, require_staff
from unilib.core.errors import BusinessRuleError, NotFoundError
from unilib.core.logging import get_logger
from unilib.db.models import Author, User
from unilib.schemas.catalog import AuthorCreate, AuthorRead, AuthorUpdate

logger = get_logger("api.authors")

router = APIRouter(
    prefix="/api/v1/authors",
    tags=["authors"],
)


def _get_author(db: Session, author_id: int) -> Author:
    author = db.query(Author).filter(Author.id == author_id).first()
    if not author:
        raise NotFoundError("Author not found")
    return author


def _check_dates(author: Author):
    if author.birth_date and author.death_date and author.death_date < author.birth_date:
        raise BusinessRuleError("death_date cannot be before birth_date")


@router.get("/", response_model=List[AuthorRead])
def list_authors(
    search: Optional[str] = Query(None),
    nationality: Optional[str] = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Author)
    if search:
        query = query.filter(Author.full_name.ilike(f"%{search}%"))
    if nationality:
        query = query.filter(Author.nationality == nationality)
    return query.order_by(Author.full_name, Author.id).offset(offset).limit(limit).all()


@router.get("/{author_id}", response_model=AuthorRead)
def get_author(
    author_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _get_author(db, author_id)


@router.post(
    "/",
    response_model=AuthorRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_staff)],
)
def create_author(
    payload: AuthorCreate,
    db: Session = Depends(get_db),
):
    author = Author(**payload.model_dump())
    _check_dates(author)
    db.add(author)
    db.commit()
    db.refresh(author)

    logger.info(
        "Author created",
        extra={"operation": "author_create", "resource": "author", "author_id": author.id},
    )
    return author


@router.put("/{author_id}", response_model=AuthorRead, dependencies=[Depends(require_staff)])
def update_author(
    author_id: int,
    payload: AuthorUpdate,
    db: Session = Depends(get_db),
):
    author = _get_author(db, author_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(author, field, value)
    _check_dates(author)

    db.commit()
    db.refresh(author)
    return author


@router.delete(
    "/{author_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_staff)],
)
def delete_author(
    author_id: int,
    db: Session = Depends(get_db),
):
    author = _get_author(db, author_id)
    if author.book_links:
        raise BusinessRuleError("Author has books in the catalog")

    db.delete(author)
    db.commit()

    logger.info(
        "Author deleted",
        extra={"operation": "author_delete", "resource": "author", "author_id": author_id},
    )
    return None
