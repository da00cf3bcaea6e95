import json
import logging

from fastapi.testclient import TestClient

from unilib.core.logging import JsonFormatter, request_id_ctx


# funciones auxiliares para logs
def _logs_messages(caplog) -> list[str]:
    return [record.getMessage() for record in caplog.records]


def _records(caplog, message: str) -> list[logging.LogRecord]:
    return [r for r in caplog.records if r.getMessage() == message]


#verifica logs de login
def test_logging_login_success(client: TestClient, caplog, admin_credentials):
    caplog.set_level(logging.INFO)

    resp = client.post(
        "/api/v1/auth/login",
        data={"username": admin_credentials["email"], "password": admin_credentials["password"]},
    )
    assert resp.status_code == 200, resp.text
    assert "login_success" in _logs_messages(caplog)


def test_logging_login_failure(client: TestClient, caplog, admin_credentials):
    caplog.set_level(logging.INFO)

    resp = client.post(
        "/api/v1/auth/login",
        data={"username": admin_credentials["email"], "password": "wrong"},
    )
    assert resp.status_code == 401, resp.text

    failed = _records(caplog, "login_failed")
    assert failed
    assert failed[0].operation == "auth_login"
    assert failed[0].status_code == 401


# el request_id de la cabecera vuelve en la respuesta y en el log
def test_request_id_is_propagated(client: TestClient, caplog):
    caplog.set_level(logging.INFO)

    resp = client.get("/", headers={"X-Request-ID": "req-test-123"})
    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"] == "req-test-123"

    completed = _records(caplog, "request_completed")
    assert any(r.request_id == "req-test-123" and r.path == "/" for r in completed)


def test_request_id_is_generated_when_missing(client: TestClient):
    resp = client.get("/")
    assert resp.headers.get("X-Request-ID")


def test_borrow_logs_operation(client: TestClient, student, make_book, caplog):
    book = make_book()
    caplog.set_level(logging.INFO)

    resp = client.post("/api/v1/borrows/", json={"book_id": book["id"]}, headers=student["headers"])
    assert resp.status_code == 201, resp.text

    borrowed = _records(caplog, "Book borrowed")
    assert borrowed
    assert borrowed[0].operation == "borrow_create"
    assert borrowed[0].book_id == book["id"]


def test_business_error_is_logged(client: TestClient, student, caplog):
    caplog.set_level(logging.INFO)

    resp = client.post("/api/v1/borrows/", json={"book_id": 999999}, headers=student["headers"])
    assert resp.status_code == 404

    rejected = _records(caplog, "business_rule_rejected")
    assert rejected
    assert rejected[0].error == "Book not found"
    assert rejected[0].error_type == "NotFoundError"


def test_json_formatter_includes_extra_and_context():
    token = request_id_ctx.set("ctx-req-1")
    try:
        record = logging.LogRecord("api.test", logging.INFO, __file__, 1, "hola", None, None)
        record.operation = "test_op"
        record.borrow_id = 7
        payload = json.loads(JsonFormatter().format(record))
    finally:
        request_id_ctx.reset(token)

    assert payload["message"] == "hola"
    assert payload["level"] == "INFO"
    assert payload["operation"] == "test_op"
    assert payload["borrow_id"] == 7
    assert payload["request_id"] == "ctx-req-1"


def test_health_db(client: TestClient):
    resp = client.get("/health/db")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
