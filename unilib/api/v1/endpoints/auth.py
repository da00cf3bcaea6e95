from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from unilib.api.v1.dependencies import get_db
from unilib.api.v1.dependencies_auth import get_current_user
from unilib.core.logging import get_logger
from unilib.core.security import create_access_token, verify_password
from unilib.db.models import User
from unilib.schemas.auth import Token
from unilib.schemas.user import UserRead

logger = get_logger("api.auth")

router = APIRouter(
    prefix="/api/v1/auth",
    tags=["auth"],
)


@router.post("/login", response_model=Token)
def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    # username se usa como email
    email = form_data.username
    user = db.query(User).filter(User.email == email).first()
    client_ip = request.client.host if request.client else None

    if not user or not verify_password(form_data.password, user.hashed_password):
        logger.warning(
            "login_failed",
            extra={
                "operation": "auth_login",
                "resource": "user",
                "email": email,
                "status_code": 401,
                "ip": client_ip,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )

    if not user.is_active:
        logger.warning(
            "login_inactive",
            extra={
                "operation": "auth_login",
                "resource": "user",
                "email": email,
                "account_status": user.account_status.value,
                "status_code": 403,
                "ip": client_ip,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is not active",
        )

    access_token = create_access_token(user_id=user.id, role=user.role.value)

    logger.info(
        "login_success",
        extra={
            "operation": "auth_login",
            "resource": "user",
            "email": email,
            "status_code": 200,
            "ip": client_ip,
        },
    )
    return Token(access_token=access_token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    request: Request,
    current_user: User = Depends(get_current_user),
):
    """
    Logout: revoca el token actual del usuario.
    """
    auth_header = request.headers.get("Authorization", "")
    parts = auth_header.split()
    token = parts[1] if len(parts) == 2 and parts[0].lower() == "bearer" else None

    if token:
        if not hasattr(request.app.state, "revoked_tokens"):
            request.app.state.revoked_tokens = set()
        request.app.state.revoked_tokens.add(token)

    logger.info(
        "Logout succeeded",
        extra={
            "operation": "auth_logout",
            "resource": "user",
            "email": current_user.email,
            "user_id": current_user.id,
            "status_code": 204,
        },
    )
    return None


@router.get("/me", response_model=UserRead)
def me(current_user: User = Depends(get_current_user)):
    return current_user
