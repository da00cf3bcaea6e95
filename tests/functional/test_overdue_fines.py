from datetime import timedelta
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.dialects import postgresql

from unilib.core.timeutils import utcnow
from unilib.db.models import BorrowRequest
from unilib.services import overdue_service


def _borrow(client: TestClient, headers, book_id: int) -> dict:
    resp = client.post("/api/v1/borrows/", json={"book_id": book_id}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["borrow"]


def _make_overdue(db_session, borrow_id: int, days_late: float):
    """
    Mueve las fechas hacia atrás respetando due > approved >= request.
    El minuto de margen evita que el redondeo hacia arriba sume un día.
    """
    now = utcnow()
    row = db_session.query(BorrowRequest).filter(BorrowRequest.id == borrow_id).first()
    row.request_date = now - timedelta(days=days_late + 7)
    row.approved_date = now - timedelta(days=days_late + 7)
    row.due_date = now - timedelta(days=days_late) + timedelta(minutes=1)
    db_session.commit()


def _fines_for(client: TestClient, headers, user_id: int) -> list[dict]:
    resp = client.get(f"/api/v1/fines/?user_id={user_id}", headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_process_marks_overdue_and_creates_fine(client: TestClient, student, librarian_headers, make_book, db_session):
    borrow = _borrow(client, student["headers"], make_book()["id"])
    _make_overdue(db_session, borrow["id"], days_late=3)

    resp = client.post("/api/v1/overdue/process", headers=librarian_headers)
    assert resp.status_code == 200, resp.text
    result = resp.json()
    assert result["overdue_count"] >= 1
    assert result["fines_created"] >= 1

    history = client.get("/api/v1/borrows/me/history", headers=student["headers"]).json()
    assert history[0]["status"] == "overdue"

    fines = _fines_for(client, librarian_headers, student["id"])
    assert len(fines) == 1
    assert fines[0]["status"] == "unpaid"
    assert fines[0]["fine_type"] == "overdue"
    assert fines[0]["days_overdue"] == 3
    assert Decimal(fines[0]["amount"]) == Decimal("3.00")


# parte de día cuenta como día completo
def test_partial_day_rounds_up(client: TestClient, student, librarian_headers, make_book, db_session):
    borrow = _borrow(client, student["headers"], make_book()["id"])
    _make_overdue(db_session, borrow["id"], days_late=1.5)

    client.post("/api/v1/overdue/process", headers=librarian_headers)

    fines = _fines_for(client, librarian_headers, student["id"])
    assert fines[0]["days_overdue"] == 2
    assert Decimal(fines[0]["amount"]) == Decimal("2.00")


def test_process_is_idempotent(client: TestClient, student, librarian_headers, make_book, db_session):
    borrow = _borrow(client, student["headers"], make_book()["id"])
    _make_overdue(db_session, borrow["id"], days_late=4)

    client.post("/api/v1/overdue/process", headers=librarian_headers)
    first = _fines_for(client, librarian_headers, student["id"])

    resp = client.post("/api/v1/overdue/process", headers=librarian_headers)
    result = resp.json()
    assert result["overdue_count"] == 0
    assert result["fines_created"] == 0

    second = _fines_for(client, librarian_headers, student["id"])
    assert len(second) == 1
    assert second[0]["id"] == first[0]["id"]
    assert second[0]["amount"] == first[0]["amount"]


# la multa se recalcula, no se acumula
def test_unpaid_fine_is_overwritten_with_new_days(client: TestClient, student, librarian_headers, make_book, db_session):
    borrow = _borrow(client, student["headers"], make_book()["id"])
    _make_overdue(db_session, borrow["id"], days_late=2)
    client.post("/api/v1/overdue/process", headers=librarian_headers)

    _make_overdue(db_session, borrow["id"], days_late=5)
    client.post("/api/v1/overdue/process", headers=librarian_headers)

    fines = _fines_for(client, librarian_headers, student["id"])
    assert len(fines) == 1
    assert fines[0]["days_overdue"] == 5
    assert Decimal(fines[0]["amount"]) == Decimal("5.00")


def test_paid_fine_is_not_updated(client: TestClient, student, librarian_headers, make_book, db_session):
    borrow = _borrow(client, student["headers"], make_book()["id"])
    _make_overdue(db_session, borrow["id"], days_late=2)
    client.post("/api/v1/overdue/process", headers=librarian_headers)
    fine_id = _fines_for(client, librarian_headers, student["id"])[0]["id"]

    resp = client.post(f"/api/v1/fines/{fine_id}/pay", json={"payment_method": "card"}, headers=librarian_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "paid"
    assert resp.json()["paid_date"] is not None

    _make_overdue(db_session, borrow["id"], days_late=6)
    client.post("/api/v1/overdue/process", headers=librarian_headers)

    fines = _fines_for(client, librarian_headers, student["id"])
    assert Decimal(fines[0]["amount"]) == Decimal("2.00")


def test_member_cannot_pay_own_fine(client: TestClient, student, librarian_headers, make_book, db_session):
    borrow = _borrow(client, student["headers"], make_book()["id"])
    _make_overdue(db_session, borrow["id"], days_late=5)
    client.post("/api/v1/overdue/process", headers=librarian_headers)
    fine_id = _fines_for(client, librarian_headers, student["id"])[0]["id"]

    resp = client.post(f"/api/v1/fines/{fine_id}/pay", json={"payment_method": "cash"}, headers=student["headers"])
    assert resp.status_code == 403

    fines = _fines_for(client, librarian_headers, student["id"])
    assert fines[0]["status"] == "unpaid"
    assert Decimal(fines[0]["amount"]) == Decimal("5.00")


def test_returned_books_are_not_fined(client: TestClient, student, librarian_headers, make_book, db_session):
    borrow = _borrow(client, student["headers"], make_book()["id"])
    _make_overdue(db_session, borrow["id"], days_late=3)
    client.post(f"/api/v1/borrows/{borrow['id']}/return", headers=librarian_headers)

    client.post("/api/v1/overdue/process", headers=librarian_headers)
    assert _fines_for(client, librarian_headers, student["id"]) == []


def test_waive_fine_requires_staff(client: TestClient, student, librarian_headers, make_book, db_session):
    borrow = _borrow(client, student["headers"], make_book()["id"])
    _make_overdue(db_session, borrow["id"], days_late=1)
    client.post("/api/v1/overdue/process", headers=librarian_headers)
    fine_id = _fines_for(client, librarian_headers, student["id"])[0]["id"]

    resp = client.post(f"/api/v1/fines/{fine_id}/waive", json={"reason": "Primera vez"}, headers=student["headers"])
    assert resp.status_code == 403

    resp = client.post(f"/api/v1/fines/{fine_id}/waive", json={"reason": "Primera vez"}, headers=librarian_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "waived"
    assert resp.json()["payment_method"] == "waived"

    resp = client.post(f"/api/v1/fines/{fine_id}/pay", json={"payment_method": "cash"}, headers=librarian_headers)
    assert resp.status_code == 400


def test_my_fines(client: TestClient, student, librarian_headers, make_book, db_session):
    borrow = _borrow(client, student["headers"], make_book()["id"])
    _make_overdue(db_session, borrow["id"], days_late=2)
    client.post("/api/v1/overdue/process", headers=librarian_headers)

    resp = client.get("/api/v1/fines/me", headers=student["headers"])
    assert resp.status_code == 200
    assert [f["user_id"] for f in resp.json()] == [student["id"]]


def test_statistics_include_overdue_book(client: TestClient, student, librarian_headers, make_book, db_session):
    book = make_book(title="Libro Atrasado")
    borrow = _borrow(client, student["headers"], book["id"])
    _make_overdue(db_session, borrow["id"], days_late=4)
    client.post("/api/v1/overdue/process", headers=librarian_headers)

    resp = client.get("/api/v1/overdue/statistics", headers=librarian_headers)
    assert resp.status_code == 200, resp.text
    stats = resp.json()
    assert stats["total_overdue_books"] >= 1
    entry = next(b for b in stats["overdue_books"] if b["borrow_id"] == borrow["id"])
    assert entry["book_title"] == "Libro Atrasado"
    assert entry["days_overdue"] == 4
    assert any(u["user_id"] == student["id"] and u["count"] == 1 for u in stats["users_with_overdue"])
    assert Decimal(stats["total_unpaid_fines"]) >= Decimal("4.00")


def test_overdue_reminders_group_books_per_user(client: TestClient, student, librarian_headers, make_book, db_session, sent_emails):
    for title in ("Atrasado Uno", "Atrasado Dos"):
        borrow = _borrow(client, student["headers"], make_book(title=title)["id"])
        _make_overdue(db_session, borrow["id"], days_late=2)
    client.post("/api/v1/overdue/process", headers=librarian_headers)

    resp = client.post("/api/v1/overdue/reminders", headers=librarian_headers)
    assert resp.status_code == 200, resp.text

    mine = [e for e in sent_emails if e["to"] == student["email"]]
    assert len(mine) == 1
    assert mine[0]["subject"] == "OVERDUE: 2 books are overdue"
    assert "Atrasado Uno" in mine[0]["html"]
    assert "Atrasado Dos" in mine[0]["html"]


def test_due_reminders_for_books_due_soon(client: TestClient, student, librarian_headers, make_book, db_session, sent_emails):
    borrow = _borrow(client, student["headers"], make_book(title="Vence Pronto")["id"])

    now = utcnow()
    row = db_session.query(BorrowRequest).filter(BorrowRequest.id == borrow["id"]).first()
    row.request_date = now - timedelta(days=6)
    row.approved_date = now - timedelta(days=6)
    row.due_date = now + timedelta(hours=20)
    db_session.commit()

    resp = client.post("/api/v1/overdue/due-reminders", headers=librarian_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["reminders_prepared"] >= 1

    mine = [e for e in sent_emails if e["to"] == student["email"]]
    assert len(mine) == 1
    assert mine[0]["subject"] == 'Reminder: "Vence Pronto" is due tomorrow'


# PostgreSQL rechaza FOR UPDATE sobre el lado nullable de un outer join
def test_overdue_candidates_lock_only_borrow_rows(db_session):
    query = overdue_service.overdue_candidates_query(db_session, utcnow())
    sql = str(query.statement.compile(dialect=postgresql.dialect()))

    assert "FOR UPDATE OF borrow_requests" in sql
    assert "OUTER JOIN" not in sql
