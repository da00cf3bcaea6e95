from datetime import date

from sqlalchemy.orm import Session

from unilib.core.errors import BusinessRuleError, ConflictError, NotFoundError
from unilib.core.logging import get_logger
from unilib.core.security import hash_password
from unilib.core.timeutils import utcnow
from unilib.db.models import (
    AccountRequest,
    AccountRequestStatus,
    AccountStatus,
    User,
    UserRole,
)
from unilib.schemas.account_request import AccountRequestCreate
from unilib.services import email_service

logger = get_logger("services.account_request")


def _email_taken(db: Session, email: str) -> bool:
    return db.query(User).filter(User.email == email).first() is not None


def _student_id_taken(db: Session, student_id: str | None) -> bool:
    if not student_id:
        return False
    return db.query(User).filter(User.student_id == student_id).first() is not None


def get_request_or_404(db: Session, request_id: int) -> AccountRequest:
    account_request = db.query(AccountRequest).filter(AccountRequest.id == request_id).first()
    if not account_request:
        raise NotFoundError("Account request not found")
    return account_request


def create_account_request(db: Session, payload: AccountRequestCreate) -> AccountRequest:
    if _email_taken(db, payload.email):
        raise ConflictError("An account with this email already exists")

    pending = (
        db.query(AccountRequest)
        .filter(
            AccountRequest.email == payload.email,
            AccountRequest.status == AccountRequestStatus.PENDING,
        )
        .first()
    )
    if pending:
        raise ConflictError("A pending request for this email already exists")

    if _student_id_taken(db, payload.student_id):
        raise ConflictError("Student ID already exists")

    account_request = AccountRequest(
        **payload.model_dump(),
        request_date=utcnow(),
        status=AccountRequestStatus.PENDING,
    )
    db.add(account_request)
    db.commit()
    db.refresh(account_request)

    logger.info(
        "Account request created",
        extra={
            "operation": "account_request_create",
            "resource": "account_request",
            "request_id": account_request.id,
            "email": account_request.email,
        },
    )
    return account_request


def approve_account_request(
    db: Session,
    request_id: int,
    reviewer: User,
    password: str,
    role: UserRole = UserRole.STUDENT,
    max_books_allowed: int = 5,
) -> User:
    """
    Crea el usuario a partir de la solicitud y la marca como aprobada.
    El email de bienvenida se intenta después del commit.
    """
    account_request = get_request_or_404(db, request_id)
    if account_request.status != AccountRequestStatus.PENDING:
        raise BusinessRuleError("Request has already been processed")

    if _email_taken(db, account_request.email):
        raise ConflictError("An account with this email already exists")
    if _student_id_taken(db, account_request.student_id):
        raise ConflictError("Student ID already exists")

    user = User(
        full_name=account_request.full_name,
        email=account_request.email,
        student_id=account_request.student_id,
        phone=account_request.phone,
        address=account_request.address,
        department_id=account_request.department_id,
        hashed_password=hash_password(password),
        role=role,
        account_status=AccountStatus.ACTIVE,
        max_books_allowed=max_books_allowed,
        enrollment_date=date.today(),
    )
    db.add(user)
    db.flush()

    account_request.status = AccountRequestStatus.APPROVED
    account_request.reviewed_by_id = reviewer.id
    account_request.reviewed_at = utcnow()
    account_request.approved_user_id = user.id

    db.commit()
    db.refresh(user)

    logger.info(
        "Account request approved",
        extra={
            "operation": "account_request_approve",
            "resource": "account_request",
            "request_id": account_request.id,
            "new_user_id": user.id,
            "reviewer_id": reviewer.id,
        },
    )

    # send_email ya no lanza por errores HTTP; esto cubre plantillas y la tabla
    try:
        email_service.send_account_approved(db, user)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "Account approval email failed",
            extra={
                "operation": "account_request_approve",
                "resource": "email",
                "request_id": account_request.id,
            },
        )

    return user


def reject_account_request(
    db: Session,
    request_id: int,
    reviewer: User,
    rejection_reason: str,
) -> AccountRequest:
    account_request = get_request_or_404(db, request_id)
    if account_request.status != AccountRequestStatus.PENDING:
        raise BusinessRuleError("Request has already been processed")

    account_request.status = AccountRequestStatus.REJECTED
    account_request.reviewed_by_id = reviewer.id
    account_request.reviewed_at = utcnow()
    account_request.rejection_reason = rejection_reason

    db.commit()
    db.refresh(account_request)

    logger.info(
        "Account request rejected",
        extra={
            "operation": "account_request_reject",
            "resource": "account_request",
            "request_id": account_request.id,
            "reviewer_id": reviewer.id,
        },
    )
    return account_request


def list_account_requests(
    db: Session,
    status: AccountRequestStatus | None = None,
) -> list[AccountRequest]:
    query = db.query(AccountRequest)
    if status is not None:
        query = query.filter(AccountRequest.status == status)
    return query.order_by(AccountRequest.request_date.desc(), AccountRequest.id.desc()).all()


def list_pending_requests(db: Session) -> list[AccountRequest]:
    return (
        db.query(AccountRequest)
        .filter(AccountRequest.status == AccountRequestStatus.PENDING)
        .order_by(AccountRequest.request_date.asc(), AccountRequest.id.asc())
        .all()
    )
