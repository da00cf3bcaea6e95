import logging
import time
import uuid

from fastapi import Depends, FastAPI, Request
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse, Response
from sqlalchemy import text
from sqlalchemy.orm import Session

from unilib.api.v1.dependencies import get_db
from unilib.api.v1.endpoints import (
    account_requests,
    auth,
    authors,
    books,
    borrows,
    departments,
    fines,
    notifications,
    overdue,
    publishers,
    reservations,
    subjects,
    users,
)
from unilib.api.v1.endpoints import admin as admin_endpoints
from unilib.core.config import settings
from unilib.core.errors import LibraryError
from unilib.core.logging import configure_logging, get_logger, request_id_ctx
from unilib.db.session import Base, SessionLocal, engine
from unilib.schemas.common import ErrorResponse
from unilib.services.init_admin import ensure_builtin_admin


# Configurar logging global al arrancar el módulo
configure_logging()
request_logger = get_logger("api.request")
error_logger = get_logger("api.errors")

app = FastAPI(
    title="University Library API",
    version="1.0.0",
)

# Routers de la API
# Los errores de negocio comparten el mismo cuerpo en todos los routers
ERROR_RESPONSES = {code: {"model": ErrorResponse} for code in (400, 403, 404, 409)}

for router_module in (
    auth,
    account_requests,
    books,
    authors,
    publishers,
    subjects,
    departments,
    borrows,
    reservations,
    fines,
    overdue,
    users,
    notifications,
    admin_endpoints,
):
    app.include_router(router_module.router, responses=ERROR_RESPONSES)


@app.on_event("startup")
def startup_event():
    # Las tablas se crean si no existen; los cambios de esquema van aparte
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        ensure_builtin_admin(db)
    finally:
        db.close()


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    error_logger.warning(
        "business_rule_rejected",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": exc.status_code,
            "error": exc.message,
            "error_type": type(exc).__name__,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message},
    )


@app.middleware("http")
async def add_request_id_and_log(request: Request, call_next):
    """
    Middleware que:
    - Asigna un request_id (si no viene en cabecera).
    - Mide el tiempo de respuesta.
    - Loguea la petición y marca WARNING si es lenta.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    start = time.perf_counter()

    request.state.request_id = request_id
    request_id_ctx.set(request_id)

    try:
        response: Response = await call_next(request)
    except Exception:
        process_time_ms = (time.perf_counter() - start) * 1000
        request_logger.error(
            "unhandled_exception",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": 500,
                "duration_ms": round(process_time_ms, 2),
                "client_host": request.client.host if request.client else None,
            },
            exc_info=True,
        )
        raise

    process_time_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request_id

    # Elegir nivel según si es lenta
    level = logging.INFO
    if process_time_ms > settings.SLOW_REQUEST_THRESHOLD_MS:
        level = logging.WARNING

    request_logger.log(
        level,
        "request_completed",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(process_time_ms, 2),
            "client_host": request.client.host if request.client else None,
        },
    )

    return response


@app.get("/")
def root():
    return {"message": "University Library API running"}


@app.get("/health/db")
def health_db(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok"}


def custom_openapi():
    """
    Solo definimos el esquema OAuth2 password para que Swagger
    muestre el cuadro de 'Authorize' con username/password.
    Cada endpoint que use get_current_user declara su propia seguridad.
    """
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title="University Library API",
        version="1.0.0",
        routes=app.routes,
    )

    components = openapi_schema.setdefault("components", {})
    security_schemes = components.setdefault("securitySchemes", {})

    # Debe llamarse igual que el esquema definido con OAuth2PasswordBearer
    security_schemes["OAuth2PasswordBearer"] = {
        "type": "oauth2",
        "flows": {
            "password": {
                "tokenUrl": "/api/v1/auth/login",
                "scopes": {},
            }
        },
    }

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi
