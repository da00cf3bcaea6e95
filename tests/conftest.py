#configuracion de los test
import os
import sys
import tempfile
import uuid
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

# ======================================================
# Base de datos de pruebas: SQLite en un directorio temporal.
# Debe quedar en el entorno ANTES de importar unilib.
# ======================================================
_TMP_DIR = tempfile.mkdtemp(prefix="unilib-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_DIR}/unilib_test.db")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["RESEND_API_KEY"] = ""

# ======================================================
# Ajuste del sys.path para que 'unilib/' sea importable
# ======================================================
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# ======================================================
# Imports de la aplicación
# ======================================================
from unilib.core.config import settings
from unilib.core.security import hash_password
from unilib.db.models import AccountStatus, User, UserRole
from unilib.db.session import Base, SessionLocal, engine
from unilib.main import app
from unilib.services import email_service


# ======================================================
# Esquema limpio al inicio de la sesión de pytest
# ======================================================
@pytest.fixture(scope="session", autouse=True)
def _create_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


# ======================================================
# Emails: nunca salen a la red, se guardan en una lista
# ======================================================
@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    sent = []

    def fake_send_email(to: str, subject: str, html: str) -> bool:
        sent.append({"to": to, "subject": subject, "html": html})
        return True

    monkeypatch.setattr(email_service, "send_email", fake_send_email)
    return sent


# ======================================================
# DB SESSION FIXTURE
# ======================================================
@pytest.fixture
def db_session() -> Generator:
    """
    Provee una sesión de DB para preparar datos o revisar el estado.
    """
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# ======================================================
# CLIENT FIXTURE
# ======================================================
@pytest.fixture(scope="session")
def client(_create_schema):
    """
    TestClient de FastAPI (con contexto: corre el startup y crea el admin).
    """
    with TestClient(app) as c:
        yield c


def _login(client: TestClient, email: str, password: str) -> str:
    resp = client.post(
        "/api/v1/auth/login",
        data={"username": email, "password": password},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["access_token"]


def _ensure_user(email: str, password: str, role: UserRole, **fields) -> int:
    with SessionLocal() as db:
        user = db.query(User).filter(User.email == email).first()
        if not user:
            user = User(
                email=email,
                full_name=fields.pop("full_name", email.split("@")[0]),
                hashed_password=hash_password(password),
                role=role,
                account_status=AccountStatus.ACTIVE,
                **fields,
            )
            db.add(user)
            db.commit()
            db.refresh(user)
        return user.id


# ======================================================
# ADMIN FIXTURES
# ======================================================
@pytest.fixture(scope="session")
def admin_credentials():
    return {"email": settings.BUILTIN_ADMIN_EMAIL, "password": settings.BUILTIN_ADMIN_PASSWORD}


@pytest.fixture(scope="session")
def admin_token(client: TestClient, admin_credentials):
    # El admin embebido lo crea el startup de la app
    return _login(client, admin_credentials["email"], admin_credentials["password"])


@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}


# ======================================================
# LIBRARIAN FIXTURES
# ======================================================
@pytest.fixture(scope="session")
def librarian_credentials():
    return {"email": "librarian_test@example.com", "password": "librarian123"}


@pytest.fixture(scope="session")
def librarian_token(client: TestClient, librarian_credentials):
    _ensure_user(
        librarian_credentials["email"],
        librarian_credentials["password"],
        UserRole.LIBRARIAN,
        full_name="Librarian Test",
    )
    return _login(client, librarian_credentials["email"], librarian_credentials["password"])


@pytest.fixture
def librarian_headers(librarian_token):
    return {"Authorization": f"Bearer {librarian_token}"}


# ======================================================
# MEMBER FIXTURES
# Cada test pide los miembros que necesita, siempre nuevos,
# para no chocar con límites de préstamos ni reservas previas.
# ======================================================
@pytest.fixture
def make_member(client: TestClient):
    def _make(role: UserRole = UserRole.STUDENT, max_books_allowed: int = 5) -> dict:
        email = f"member_{uuid.uuid4().hex[:10]}@example.com"
        password = "member123"
        user_id = _ensure_user(email, password, role, max_books_allowed=max_books_allowed)
        token = _login(client, email, password)
        return {
            "id": user_id,
            "email": email,
            "password": password,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return _make


@pytest.fixture
def student(make_member):
    return make_member()


# ======================================================
# CATÁLOGO
# ======================================================
@pytest.fixture
def publisher_id(client: TestClient, admin_headers) -> int:
    resp = client.post(
        "/api/v1/publishers/",
        json={"name": f"Editorial {uuid.uuid4().hex[:8]}", "country": "Chile"},
        headers=admin_headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


@pytest.fixture
def make_book(client: TestClient, admin_headers, publisher_id):
    def _make(total_copies: int = 1, **fields) -> dict:
        payload = {
            "title": fields.pop("title", f"Libro {uuid.uuid4().hex[:6]}"),
            "publisher_id": publisher_id,
            "publication_year": 2020,
            "shelf_location": "A-1",
            "total_copies": total_copies,
        }
        payload.update(fields)
        resp = client.post("/api/v1/books/", json=payload, headers=admin_headers)
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _make
