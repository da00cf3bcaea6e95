from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from unilib.api.v1.dependencies import get_db
from unilib.api.v1.dependencies_auth import require_admin
from unilib.core.errors import ConflictError, NotFoundError
from unilib.db.models import Department
from unilib.schemas.catalog import DepartmentCreate, DepartmentRead, DepartmentUpdate

router = APIRouter(
    prefix="/api/v1/departments",
    tags=["departments"],
)


def _check_unique(db: Session, name: str | None, code: str | None, exclude_id: int | None = None):
    query = db.query(Department).filter(or_(Department.name == name, Department.code == code))
    if exclude_id is not None:
        query = query.filter(Department.id != exclude_id)
    if query.first():
        raise ConflictError("Department name or code already exists")


def _get_department(db: Session, department_id: int) -> Department:
    department = db.query(Department).filter(Department.id == department_id).first()
    if not department:
        raise NotFoundError("Department not found")
    return department


# El listado es público: lo usa el formulario de solicitud de cuenta
@router.get("/", response_model=List[DepartmentRead])
def list_departments(db: Session = Depends(get_db)):
    return db.query(Department).order_by(Department.name).all()


@router.post(
    "/",
    response_model=DepartmentRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_department(
    payload: DepartmentCreate,
    db: Session = Depends(get_db),
):
    _check_unique(db, payload.name, payload.code)

    department = Department(**payload.model_dump())
    db.add(department)
    db.commit()
    db.refresh(department)
    return department


@router.put("/{department_id}", response_model=DepartmentRead, dependencies=[Depends(require_admin)])
def update_department(
    department_id: int,
    payload: DepartmentUpdate,
    db: Session = Depends(get_db),
):
    department = _get_department(db, department_id)
    update_data = payload.model_dump(exclude_unset=True)
    if update_data.get("name") or update_data.get("code"):
        _check_unique(db, update_data.get("name"), update_data.get("code"), exclude_id=department.id)

    for field, value in update_data.items():
        setattr(department, field, value)

    db.commit()
    db.refresh(department)
    return department


@router.delete(
    "/{department_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def delete_department(
    department_id: int,
    db: Session = Depends(get_db),
):
    department = _get_department(db, department_id)
    db.delete(department)
    db.commit()
    return None
