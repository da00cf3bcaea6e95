from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from unilib.api.v1.dependencies import get_db
from unilib.core.logging import user_id_ctx
from unilib.core.security import decode_access_token
from unilib.db.models import User, UserRole


# Debe coincidir con el endpoint de login
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Obtiene el usuario actual a partir del token JWT.
    Lanza 401 si no se puede validar.
    """
    # 1) Revisar si el token ha sido revocado
    revoked_tokens = getattr(request.app.state, "revoked_tokens", set())
    if token in revoked_tokens:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token revoked",
        )

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )

    payload = decode_access_token(token)
    if payload is None:
        raise credentials_exception

    user: User | None = db.query(User).filter(User.id == payload["user_id"]).first()
    if user is None:
        raise credentials_exception

    # Usuarios borrados, suspendidos o egresados no operan
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is not active",
        )

    # Guardar user_id para LOGGING estructurado
    user_id_ctx.set(str(user.id))

    return user


def require_role(*roles: UserRole):
    """
    Dependencia para exigir alguno de los roles dados.
    Admin siempre tiene acceso.
    """
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles and current_user.role != UserRole.ADMIN:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return dependency


require_staff = require_role(UserRole.LIBRARIAN)
require_admin = require_role(UserRole.ADMIN)
