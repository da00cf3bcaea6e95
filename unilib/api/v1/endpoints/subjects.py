from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from unilib.api.v1.dependencies import get_db
from unilib.api.v1.dependencies_auth import get_current_user, require_staff
from unilib.core.errors import BusinessRuleError, ConflictError, NotFoundError
from unilib.core.logging import get_logger
from unilib.db.models import Subject, User
from unilib.schemas.catalog import SubjectCreate, SubjectRead, SubjectUpdate

logger = get_logger("api.subjects")

router = APIRouter(
    prefix="/api/v1/subjects",
    tags=["subjects"],
)


def _get_subject(db: Session, subject_id: int) -> Subject:
    subject = db.query(Subject).filter(Subject.id == subject_id).first()
    if not subject:
        raise NotFoundError("Subject not found")
    return subject


def _check_name(db: Session, name: str, exclude_id: int | None = None):
    query = db.query(Subject.id).filter(Subject.name == name)
    if exclude_id is not None:
        query = query.filter(Subject.id != exclude_id)
    if query.first():
        raise ConflictError("Subject name already exists")


@router.get("/", response_model=List[SubjectRead])
def list_subjects(
    search: Optional[str] = Query(None),
    parent_subject_id: Optional[int] = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Subject)
    if search:
        query = query.filter(Subject.name.ilike(f"%{search}%"))
    if parent_subject_id is not None:
        query = query.filter(Subject.parent_subject_id == parent_subject_id)
    return query.order_by(Subject.name).offset(offset).limit(limit).all()


@router.get("/{subject_id}", response_model=SubjectRead)
def get_subject(
    subject_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _get_subject(db, subject_id)


@router.post(
    "/",
    response_model=SubjectRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_staff)],
)
def create_subject(
    payload: SubjectCreate,
    db: Session = Depends(get_db),
):
    _check_name(db, payload.name)
    if payload.parent_subject_id is not None:
        _get_subject(db, payload.parent_subject_id)

    subject = Subject(**payload.model_dump())
    db.add(subject)
    db.commit()
    db.refresh(subject)

    logger.info(
        "Subject created",
        extra={"operation": "subject_create", "resource": "subject", "subject_id": subject.id},
    )
    return subject


@router.put("/{subject_id}", response_model=SubjectRead, dependencies=[Depends(require_staff)])
def update_subject(
    subject_id: int,
    payload: SubjectUpdate,
    db: Session = Depends(get_db),
):
    subject = _get_subject(db, subject_id)
    update_data = payload.model_dump(exclude_unset=True)

    if update_data.get("name"):
        _check_name(db, update_data["name"], exclude_id=subject.id)
    parent_id = update_data.get("parent_subject_id")
    if parent_id is not None:
        if parent_id == subject.id:
            raise BusinessRuleError("A subject cannot be its own parent")
        _get_subject(db, parent_id)

    for field, value in update_data.items():
        setattr(subject, field, value)

    db.commit()
    db.refresh(subject)
    return subject


@router.delete(
    "/{subject_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_staff)],
)
def delete_subject(
    subject_id: int,
    db: Session = Depends(get_db),
):
    subject = _get_subject(db, subject_id)
    db.delete(subject)
    db.commit()

    logger.info(
        "Subject deleted",
        extra={"operation": "subject_delete", "resource": "subject", "subject_id": subject_id},
    )
    return None
