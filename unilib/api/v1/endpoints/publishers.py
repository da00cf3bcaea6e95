from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from unilib.api.v1.dependencies import get_db
from unilib.api.v1.dependencies_auth import get_current_user, require_staff
from unilib.core.errors import BusinessRuleError, ConflictError, NotFoundError
from unilib.core.logging import get_logger
from unilib.db.models import Book, Publisher, User
from unilib.schemas.catalog import PublisherCreate, PublisherRead, PublisherUpdate

logger = get_logger("api.publishers")

router = APIRouter(
    prefix="/api/v1/publishers",
    tags=["publishers"],
)


def _get_publisher(db: Session, publisher_id: int) -> Publisher:
    publisher = db.query(Publisher).filter(Publisher.id == publisher_id).first()
    if not publisher:
        raise NotFoundError("Publisher not found")
    return publisher


def _check_name(db: Session, name: str, exclude_id: int | None = None):
    query = db.query(Publisher.id).filter(Publisher.name == name)
    if exclude_id is not None:
        query = query.filter(Publisher.id != exclude_id)
    if query.first():
        raise ConflictError("Publisher name already exists")


@router.get("/", response_model=List[PublisherRead])
def list_publishers(
    search: Optional[str] = Query(None),
    country: Optional[str] = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Publisher)
    if search:
        query = query.filter(Publisher.name.ilike(f"%{search}%"))
    if country:
        query = query.filter(Publisher.country == country)
    return query.order_by(Publisher.name).offset(offset).limit(limit).all()


@router.get("/{publisher_id}", response_model=PublisherRead)
def get_publisher(
    publisher_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _get_publisher(db, publisher_id)


@router.post(
    "/",
    response_model=PublisherRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_staff)],
)
def create_publisher(
    payload: PublisherCreate,
    db: Session = Depends(get_db),
):
    _check_name(db, payload.name)

    publisher = Publisher(**payload.model_dump())
    db.add(publisher)
    db.commit()
    db.refresh(publisher)

    logger.info(
        "Publisher created",
        extra={"operation": "publisher_create", "resource": "publisher", "publisher_id": publisher.id},
    )
    return publisher


@router.put("/{publisher_id}", response_model=PublisherRead, dependencies=[Depends(require_staff)])
def update_publisher(
    publisher_id: int,
    payload: PublisherUpdate,
    db: Session = Depends(get_db),
):
    publisher = _get_publisher(db, publisher_id)
    update_data = payload.model_dump(exclude_unset=True)
    if update_data.get("name"):
        _check_name(db, update_data["name"], exclude_id=publisher.id)

    for field, value in update_data.items():
        setattr(publisher, field, value)

    db.commit()
    db.refresh(publisher)
    return publisher


@router.delete(
    "/{publisher_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_staff)],
)
def delete_publisher(
    publisher_id: int,
    db: Session = Depends(get_db),
):
    publisher = _get_publisher(db, publisher_id)
    # FK con RESTRICT: cuenta también los libros borrados lógicamente
    if db.query(Book.id).filter(Book.publisher_id == publisher.id).first():
        raise BusinessRuleError("Publisher has books in the catalog")

    db.delete(publisher)
    db.commit()

    logger.info(
        "Publisher deleted",
        extra={"operation": "publisher_delete", "resource": "publisher", "publisher_id": publisher_id},
    )
    return None
