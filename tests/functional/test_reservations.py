from datetime import timedelta

from fastapi.testclient import TestClient

from unilib.core.timeutils import utcnow
from unilib.db.models import Reservation
from unilib.db.session import SessionLocal
from unilib.services import email_service


def _reserve(client: TestClient, headers, book_id: int):
    return client.post("/api/v1/reservations/", json={"book_id": book_id}, headers=headers)


def _borrow(client: TestClient, headers, book_id: int):
    return client.post("/api/v1/borrows/", json={"book_id": book_id}, headers=headers)


def _queue(client: TestClient, headers, book_id: int) -> list[dict]:
    resp = client.get(f"/api/v1/books/{book_id}/queue", headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()


def _unavailable_book(client: TestClient, make_book, make_member) -> dict:
    """Libro de una copia ya prestada a otro miembro."""
    book = make_book(total_copies=1)
    holder = make_member()
    assert _borrow(client, holder["headers"], book["id"]).status_code == 201
    return book


# escenario: A presta, B reserva, A devuelve; B no es avisado solo
def test_return_does_not_notify_queue(client: TestClient, make_member, make_book, librarian_headers, sent_emails):
    book = make_book(total_copies=1)
    a = make_member()
    b = make_member()

    borrow = _borrow(client, a["headers"], book["id"]).json()["borrow"]
    assert client.get(f"/api/v1/books/{book['id']}", headers=a["headers"]).json()["available_copies"] == 0

    resp = _reserve(client, b["headers"], book["id"])
    assert resp.status_code == 201, resp.text
    reservation = resp.json()["reservation"]
    assert reservation["queue_position"] == 1
    assert "#1" in resp.json()["message"]

    resp = client.post(f"/api/v1/borrows/{borrow['id']}/return", headers=librarian_headers)
    assert resp.status_code == 200
    assert client.get(f"/api/v1/books/{book['id']}", headers=a["headers"]).json()["available_copies"] == 1

    mine = client.get("/api/v1/reservations/me", headers=b["headers"]).json()
    assert mine[0]["status"] == "active"
    assert mine[0]["notification_sent"] is False
    assert not [e for e in sent_emails if e["to"] == b["email"]]


def test_notify_next_marks_head_and_sends_email(client: TestClient, make_member, make_book, librarian_headers, sent_emails):
    book = _unavailable_book(client, make_book, make_member)
    first = make_member()
    second = make_member()
    _reserve(client, first["headers"], book["id"])
    _reserve(client, second["headers"], book["id"])

    resp = client.post(f"/api/v1/reservations/books/{book['id']}/notify-next", headers=librarian_headers)
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["notification"]["user_id"] == first["id"]
    assert data["notification"]["queue_position"] == 1

    queue = _queue(client, librarian_headers, book["id"])
    assert queue[0]["notification_sent"] is True
    assert queue[1]["notification_sent"] is False
    assert [e["to"] for e in sent_emails] == [first["email"]]

    notifications = client.get("/api/v1/notifications/me", headers=first["headers"]).json()
    assert notifications[0]["type"] == "reservation_ready"
    assert notifications[0]["email_sent"] is True


def test_notify_next_with_empty_queue(client: TestClient, make_book, librarian_headers):
    book = make_book(total_copies=1)
    resp = client.post(f"/api/v1/reservations/books/{book['id']}/notify-next", headers=librarian_headers)
    assert resp.status_code == 200
    assert resp.json()["notification"] is None


def test_cannot_reserve_available_book(client: TestClient, student, make_book):
    book = make_book(total_copies=1)
    resp = _reserve(client, student["headers"], book["id"])
    assert resp.status_code == 400
    assert resp.json()["error"] == "Book is currently available for borrowing"


def test_second_active_reservation_is_rejected(client: TestClient, student, make_member, make_book):
    book = _unavailable_book(client, make_book, make_member)

    assert _reserve(client, student["headers"], book["id"]).status_code == 201
    resp = _reserve(client, student["headers"], book["id"])
    assert resp.status_code == 400
    assert "already have an active reservation" in resp.json()["error"]


def test_cannot_reserve_book_you_hold(client: TestClient, student, make_member, make_book):
    book = make_book(total_copies=1)
    assert _borrow(client, student["headers"], book["id"]).status_code == 201

    resp = _reserve(client, student["headers"], book["id"])
    assert resp.status_code == 400
    assert resp.json()["error"] == "You currently have this book borrowed"


def test_can_reserve_again_after_cancelling(client: TestClient, student, make_member, make_book):
    book = _unavailable_book(client, make_book, make_member)

    reservation_id = _reserve(client, student["headers"], book["id"]).json()["reservation"]["id"]
    assert client.post(f"/api/v1/reservations/{reservation_id}/cancel", headers=student["headers"]).status_code == 200

    resp = _reserve(client, student["headers"], book["id"])
    assert resp.status_code == 201, resp.text


# posiciones contiguas 1..N después de cancelar en medio
def test_cancel_resequences_queue(client: TestClient, make_member, make_book, librarian_headers):
    book = _unavailable_book(client, make_book, make_member)
    members = [make_member() for _ in range(3)]
    ids = [_reserve(client, m["headers"], book["id"]).json()["reservation"]["id"] for m in members]

    resp = client.post(f"/api/v1/reservations/{ids[1]}/cancel", headers=members[1]["headers"])
    assert resp.status_code == 200
    assert resp.json()["reservation"]["status"] == "cancelled"

    queue = _queue(client, librarian_headers, book["id"])
    assert [r["id"] for r in queue] == [ids[0], ids[2]]
    assert [r["queue_position"] for r in queue] == [1, 2]


def test_cancel_someone_else_reservation_fails(client: TestClient, make_member, make_book):
    book = _unavailable_book(client, make_book, make_member)
    owner = make_member()
    other = make_member()
    reservation_id = _reserve(client, owner["headers"], book["id"]).json()["reservation"]["id"]

    resp = client.post(f"/api/v1/reservations/{reservation_id}/cancel", headers=other["headers"])
    assert resp.status_code == 404
    assert resp.json()["error"] == "Reservation not found or access denied"


def test_cancel_twice_fails(client: TestClient, student, make_member, make_book):
    book = _unavailable_book(client, make_book, make_member)
    reservation_id = _reserve(client, student["headers"], book["id"]).json()["reservation"]["id"]

    client.post(f"/api/v1/reservations/{reservation_id}/cancel", headers=student["headers"])
    resp = client.post(f"/api/v1/reservations/{reservation_id}/cancel", headers=student["headers"])
    assert resp.status_code == 400
    assert resp.json()["error"] == "Reservation is not active"


def test_expire_notified_reservations(client: TestClient, make_member, make_book, librarian_headers, db_session):
    book = _unavailable_book(client, make_book, make_member)
    first = make_member()
    second = make_member()
    first_id = _reserve(client, first["headers"], book["id"]).json()["reservation"]["id"]
    second_id = _reserve(client, second["headers"], book["id"]).json()["reservation"]["id"]

    client.post(f"/api/v1/reservations/books/{book['id']}/notify-next", headers=librarian_headers)

    # el plazo de retiro ya venció
    now = utcnow()
    row = db_session.query(Reservation).filter(Reservation.id == first_id).first()
    row.reservation_date = now - timedelta(days=10)
    row.expiry_date = now - timedelta(days=1)
    db_session.commit()

    resp = client.post("/api/v1/reservations/expire", headers=librarian_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["expired_count"] >= 1

    queue = _queue(client, librarian_headers, book["id"])
    assert [r["id"] for r in queue] == [second_id]
    assert queue[0]["queue_position"] == 1


def test_borrowing_fulfils_own_reservation(client: TestClient, make_member, make_book, librarian_headers):
    book = make_book(total_copies=1)
    holder = make_member()
    waiting = make_member()
    behind = make_member()

    borrow_id = _borrow(client, holder["headers"], book["id"]).json()["borrow"]["id"]
    _reserve(client, waiting["headers"], book["id"])
    behind_id = _reserve(client, behind["headers"], book["id"]).json()["reservation"]["id"]

    client.post(f"/api/v1/borrows/{borrow_id}/return", headers=librarian_headers)
    assert _borrow(client, waiting["headers"], book["id"]).status_code == 201

    mine = client.get("/api/v1/reservations/me", headers=waiting["headers"]).json()
    assert mine[0]["status"] == "fulfilled"

    queue = _queue(client, librarian_headers, book["id"])
    assert [(r["id"], r["queue_position"]) for r in queue] == [(behind_id, 1)]


# quien presta con una reserva activa la cumple aunque no sea el primero
def test_borrowing_fulfils_reservation_behind_the_head(client: TestClient, make_member, make_book, librarian_headers):
    book = make_book(total_copies=1)
    holder = make_member()
    first = make_member()
    second = make_member()
    third = make_member()

    borrow_id = _borrow(client, holder["headers"], book["id"]).json()["borrow"]["id"]
    first_id = _reserve(client, first["headers"], book["id"]).json()["reservation"]["id"]
    _reserve(client, second["headers"], book["id"])
    third_id = _reserve(client, third["headers"], book["id"]).json()["reservation"]["id"]

    client.post(f"/api/v1/borrows/{borrow_id}/return", headers=librarian_headers)
    assert _borrow(client, second["headers"], book["id"]).status_code == 201

    mine = client.get("/api/v1/reservations/me", headers=second["headers"]).json()
    assert mine[0]["status"] == "fulfilled"

    queue = _queue(client, librarian_headers, book["id"])
    assert [(r["id"], r["queue_position"]) for r in queue] == [(first_id, 1), (third_id, 2)]


def test_notify_next_email_goes_out_after_commit(client: TestClient, make_member, make_book, librarian_headers, monkeypatch):
    book = _unavailable_book(client, make_book, make_member)
    member = make_member()
    reservation_id = _reserve(client, member["headers"], book["id"]).json()["reservation"]["id"]

    seen = []

    def fake_send_email(to: str, subject: str, html: str) -> bool:
        # otra conexión ya ve el aviso confirmado
        with SessionLocal() as other:
            row = other.query(Reservation).filter(Reservation.id == reservation_id).first()
            seen.append(row.notification_sent)
        return True

    monkeypatch.setattr(email_service, "send_email", fake_send_email)

    resp = client.post(f"/api/v1/reservations/books/{book['id']}/notify-next", headers=librarian_headers)
    assert resp.status_code == 200, resp.text
    assert seen == [True]


def test_notify_next_keeps_notification_when_email_fails(client: TestClient, make_member, make_book, librarian_headers, monkeypatch):
    book = _unavailable_book(client, make_book, make_member)
    member = make_member()
    _reserve(client, member["headers"], book["id"])

    def broken_send_email(to: str, subject: str, html: str) -> bool:
        raise RuntimeError("smtp down")

    monkeypatch.setattr(email_service, "send_email", broken_send_email)

    resp = client.post(f"/api/v1/reservations/books/{book['id']}/notify-next", headers=librarian_headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["notification"]["user_id"] == member["id"]

    queue = _queue(client, librarian_headers, book["id"])
    assert queue[0]["notification_sent"] is True
    assert client.get("/api/v1/notifications/me", headers=member["headers"]).json() == []
