from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from unilib.api.v1.dependencies import get_db
from unilib.api.v1.dependencies_auth import require_admin
from unilib.core.config import settings
from unilib.core.errors import BusinessRuleError, ConflictError, NotFoundError
from unilib.core.logging import get_logger
from unilib.core.security import hash_password
from unilib.db.models import AccountStatus, User, UserRole
from unilib.schemas.user import UserCreate, UserRead, UserUpdate

logger = get_logger("api.users")

# Solo ADMIN puede usar este router
router = APIRouter(
    prefix="/api/v1/users",
    tags=["users"],
    dependencies=[Depends(require_admin)],
)


def _get_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id, User.is_deleted.is_(False)).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def _check_unique(db: Session, email: str | None, student_id: str | None, exclude_id: int | None = None):
    if email:
        query = db.query(User.id).filter(User.email == email)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise ConflictError("Email already registered")
    if student_id:
        query = db.query(User.id).filter(User.student_id == student_id)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise ConflictError("Student ID already exists")


@router.get("/", response_model=List[UserRead])
def list_users(
    search: Optional[str] = Query(None),
    role: Optional[UserRole] = Query(None),
    account_status: Optional[AccountStatus] = Query(None, alias="status"),
    department_id: Optional[int] = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    query = db.query(User).filter(User.is_deleted.is_(False))
    if search:
        term = f"%{search}%"
        query = query.filter(
            or_(User.full_name.ilike(term), User.email.ilike(term), User.student_id.ilike(term))
        )
    if role:
        query = query.filter(User.role == role)
    if account_status:
        query = query.filter(User.account_status == account_status)
    if department_id:
        query = query.filter(User.department_id == department_id)
    return query.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit).all()


@router.get("/{user_id}", response_model=UserRead)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
):
    return _get_user(db, user_id)


@router.post("/", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
):
    _check_unique(db, payload.email, payload.student_id)

    data = payload.model_dump(exclude={"password"})
    user = User(**data, hashed_password=hash_password(payload.password))
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(
        "User created",
        extra={"operation": "user_create", "resource": "user", "new_user_id": user.id, "role": user.role.value},
    )
    return user


@router.put("/{user_id}", response_model=UserRead)
def update_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db),
):
    user = _get_user(db, user_id)

    update_data = payload.model_dump(exclude_unset=True)
    new_password = update_data.pop("new_password", None)
    _check_unique(db, update_data.get("email"), update_data.get("student_id"), exclude_id=user.id)

    for field, value in update_data.items():
        setattr(user, field, value)

    if new_password:
        user.hashed_password = hash_password(new_password)

    db.commit()
    db.refresh(user)

    logger.info(
        "User updated",
        extra={"operation": "user_update", "resource": "user", "target_user_id": user.id},
    )
    return user


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
):
    user = _get_user(db, user_id)

    # proteger admin embebido
    if user.email == settings.BUILTIN_ADMIN_EMAIL:
        raise BusinessRuleError("Built-in admin cannot be deleted")

    user.is_deleted = True
    db.commit()

    logger.info(
        "User deleted",
        extra={"operation": "user_delete", "resource": "user", "target_user_id": user_id},
    )
    return None
