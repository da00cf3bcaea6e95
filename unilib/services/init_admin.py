from sqlalchemy.orm import Session

from unilib.core.config import settings
from unilib.core.logging import get_logger
from unilib.core.security import hash_password
from unilib.db.models import AccountStatus, User, UserRole

logger = get_logger("services.init_admin")


def ensure_builtin_admin(db: Session):
    admin = db.query(User).filter(User.email == settings.BUILTIN_ADMIN_EMAIL).first()
    if admin:
        return

    admin = User(
        email=settings.BUILTIN_ADMIN_EMAIL,
        full_name="Built-in Admin",
        hashed_password=hash_password(settings.BUILTIN_ADMIN_PASSWORD),  # cámbialo luego
        role=UserRole.ADMIN,
        account_status=AccountStatus.ACTIVE,
        max_books_allowed=50,
    )
    db.add(admin)
    db.commit()

    logger.info(
        "Built-in admin created",
        extra={"operation": "init_admin", "resource": "user", "email": admin.email},
    )
