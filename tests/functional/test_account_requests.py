import uuid

from fastapi.testclient import TestClient


def _request_payload(**overrides) -> dict:
    payload = {
        "full_name": "Solicitante Prueba",
        "email": f"request_{uuid.uuid4().hex[:8]}@example.com",
        "student_id": f"S{uuid.uuid4().hex[:7]}",
        "phone": "555-000-1111",
    }
    payload.update(overrides)
    return payload


def _create_request(client: TestClient, **overrides) -> dict:
    resp = client.post("/api/v1/account-requests/", json=_request_payload(**overrides))
    assert resp.status_code == 201, resp.text
    return resp.json()


# el formulario de solicitud es público
def test_create_request_is_public(client: TestClient):
    data = _create_request(client)
    assert data["status"] == "pending"
    assert data["reviewed_by_id"] is None


def test_duplicate_pending_request_rejected(client: TestClient):
    payload = _request_payload()
    assert client.post("/api/v1/account-requests/", json=payload).status_code == 201

    resp = client.post("/api/v1/account-requests/", json=payload)
    assert resp.status_code == 409
    assert resp.json()["error"] == "A pending request for this email already exists"


def test_request_for_existing_user_email_rejected(client: TestClient, student):
    resp = client.post("/api/v1/account-requests/", json=_request_payload(email=student["email"]))
    assert resp.status_code == 409


def test_invalid_email_is_validation_error(client: TestClient):
    resp = client.post("/api/v1/account-requests/", json=_request_payload(email="correo-invalido"))
    assert resp.status_code == 422


def test_approve_creates_user_and_sends_email(client: TestClient, admin_headers, sent_emails):
    request = _create_request(client)

    resp = client.post(
        f"/api/v1/account-requests/{request['id']}/approve",
        json={"password": "secret123", "role": "faculty", "max_books_allowed": 10},
        headers=admin_headers,
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["success"] is True
    user_id = data["user_id"]

    user = client.get(f"/api/v1/users/{user_id}", headers=admin_headers).json()
    assert user["email"] == request["email"]
    assert user["student_id"] == request["student_id"]
    assert user["role"] == "faculty"
    assert user["max_books_allowed"] == 10
    assert user["account_status"] == "active"

    # el nuevo usuario ya puede entrar con la contraseña asignada
    resp = client.post(
        "/api/v1/auth/login",
        data={"username": request["email"], "password": "secret123"},
    )
    assert resp.status_code == 200

    assert [e["to"] for e in sent_emails] == [request["email"]]

    pending = client.get("/api/v1/account-requests/pending", headers=admin_headers).json()
    assert request["id"] not in [r["id"] for r in pending]


def test_approve_twice_fails(client: TestClient, admin_headers):
    request = _create_request(client)
    url = f"/api/v1/account-requests/{request['id']}/approve"

    assert client.post(url, json={"password": "secret123"}, headers=admin_headers).status_code == 200
    resp = client.post(url, json={"password": "secret123"}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Request has already been processed"


def test_approve_with_taken_student_id_fails(client: TestClient, admin_headers):
    first = _create_request(client)
    second = _create_request(client, student_id=first["student_id"])

    client.post(f"/api/v1/account-requests/{first['id']}/approve", json={"password": "secret123"}, headers=admin_headers)
    resp = client.post(
        f"/api/v1/account-requests/{second['id']}/approve",
        json={"password": "secret123"},
        headers=admin_headers,
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "Student ID already exists"


def test_reject_request(client: TestClient, admin_headers):
    request = _create_request(client)

    resp = client.post(
        f"/api/v1/account-requests/{request['id']}/reject",
        json={"rejection_reason": "Carnet ilegible"},
        headers=admin_headers,
    )
    assert resp.status_code == 200, resp.text

    all_requests = client.get("/api/v1/account-requests/", headers=admin_headers).json()
    rejected = next(r for r in all_requests if r["id"] == request["id"])
    assert rejected["status"] == "rejected"
    assert rejected["rejection_reason"] == "Carnet ilegible"
    assert rejected["reviewed_at"] is not None


def test_approve_requires_admin(client: TestClient, librarian_headers):
    request = _create_request(client)
    resp = client.post(
        f"/api/v1/account-requests/{request['id']}/approve",
        json={"password": "secret123"},
        headers=librarian_headers,
    )
    assert resp.status_code == 403


def test_approve_unknown_request(client: TestClient, admin_headers):
    resp = client.post(
        "/api/v1/account-requests/999999/approve",
        json={"password": "secret123"},
        headers=admin_headers,
    )
    assert resp.status_code == 404
