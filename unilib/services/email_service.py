"""
Envío de emails transaccionales (Resend) y registro en `notifications`.

Si no hay RESEND_API_KEY configurada el envío se omite y se deja log;
un fallo de email nunca rompe la operación de negocio que lo dispara.
"""
from datetime import datetime
from decimal import Decimal
from html import escape
from typing import Iterable

import httpx
from sqlalchemy.orm import Session

from unilib.core.config import settings
from unilib.core.logging import get_logger
from unilib.db.models import Notification, NotificationType, User

logger = get_logger("services.email")

_TIMEOUT = httpx.Timeout(timeout=10.0, connect=5.0)

_LAYOUT = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{title}</title>
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    .header {{ background-color: {color}; color: white; padding: 20px; text-align: center; }}
    .content {{ background-color: #f8fafc; padding: 30px; }}
    .footer {{ text-align: center; margin-top: 30px; color: #6b7280; font-size: 14px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>University Library</h1><h2>{title}</h2></div>
    <div class="content">
      <p>Dear {user_name},</p>
      {body}
      <p><a href="{profile_url}">View my profile</a></p>
    </div>
    <div class="footer">
      <p>University Library System<br>
      This is an automated message. Please do not reply to this email.</p>
    </div>
  </div>
</body>
</html>
"""


def _render(title: str, user_name: str, body: str, color: str = "#3b82f6") -> str:
    return _LAYOUT.format(
        title=escape(title),
        user_name=escape(user_name),
        body=body,
        color=color,
        profile_url=f"{settings.PUBLIC_BASE_URL}/my-profile",
    )


def _fmt_date(value: datetime) -> str:
    return value.strftime("%A, %B %d, %Y")


def send_email(to: str, subject: str, html: str) -> bool:
    """
    Envía un email a través de la API HTTP de Resend.
    Devuelve True si el proveedor lo aceptó.
    """
    if not settings.RESEND_API_KEY:
        logger.warning(
            "email_skipped",
            extra={"operation": "email_send", "resource": "email", "to": to, "subject": subject},
        )
        return False

    try:
        response = httpx.post(
            settings.RESEND_API_URL,
            headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
            json={"from": settings.EMAIL_FROM, "to": to, "subject": subject, "html": html},
            timeout=_TIMEOUT,
        )
        response.raise_for_status()
    except httpx.HTTPError:
        logger.exception(
            "email_failed",
            extra={"operation": "email_send", "resource": "email", "to": to, "subject": subject},
        )
        return False

    logger.info(
        "email_sent",
        extra={"operation": "email_send", "resource": "email", "to": to, "subject": subject},
    )
    return True


def notify(
    db: Session,
    user: User,
    notification_type: NotificationType,
    subject: str,
    message: str,
    html: str,
) -> Notification:
    """Envía el email y deja constancia en la tabla notifications (sin commit)."""
    sent = send_email(user.email, subject, html)
    notification = Notification(
        user_id=user.id,
        type=notification_type,
        title=subject,
        message=message,
        email_sent=sent,
    )
    db.add(notification)
    return notification


# ---- Plantillas ----

def send_due_date_reminder(
    db: Session,
    user: User,
    book_title: str,
    due_date: datetime,
    days_until_due: int,
) -> Notification:
    when = "tomorrow" if days_until_due == 1 else f"in {days_until_due} days"
    subject = f'Reminder: "{book_title}" is due {when}'
    body = (
        f"<p>This is a friendly reminder that <strong>{escape(book_title)}</strong> "
        f"is due {when}, on <strong>{_fmt_date(due_date)}</strong>.</p>"
        f"<p>Please return it on time to avoid late fees. You can renew it up to "
        f"{settings.MAX_RENEWALS} times from your profile.</p>"
    )
    return notify(
        db,
        user,
        NotificationType.DUE_REMINDER,
        subject,
        f"{book_title} is due {when}.",
        _render("Book Due Date Reminder", user.full_name, body),
    )


def send_overdue_notice(
    db: Session,
    user: User,
    books: Iterable[dict],
) -> Notification:
    """`books`: dicts con title, due_date, days_overdue y fine_amount."""
    books = list(books)
    rows = "".join(
        f"<li><strong>{escape(b['title'])}</strong>: due {_fmt_date(b['due_date'])}, "
        f"{b['days_overdue']} days overdue, fine ${Decimal(b['fine_amount']):.2f}</li>"
        for b in books
    )
    if len(books) == 1:
        subject = f'OVERDUE: "{books[0]["title"]}" - {books[0]["days_overdue"]} days overdue'
    else:
        subject = f"OVERDUE: {len(books)} books are overdue"
    body = (
        f"<p>The following books are overdue:</p><ul>{rows}</ul>"
        f"<p>Fines accrue at ${settings.FINE_PER_DAY:.2f} per day. "
        f"Please return them as soon as possible.</p>"
    )
    return notify(
        db,
        user,
        NotificationType.OVERDUE_NOTICE,
        subject,
        f"You have {len(books)} overdue book(s).",
        _render("Overdue Book Notice", user.full_name, body, color="#dc2626"),
    )


def send_reservation_ready(
    db: Session,
    user: User,
    book_title: str,
    pickup_deadline: datetime,
) -> Notification:
    subject = f'Your reserved book "{book_title}" is now available!'
    body = (
        f"<p>Good news! <strong>{escape(book_title)}</strong> is ready for you.</p>"
        f"<p>Please borrow it before <strong>{_fmt_date(pickup_deadline)}</strong>, "
        f"otherwise the reservation expires and passes to the next reader.</p>"
    )
    return notify(
        db,
        user,
        NotificationType.RESERVATION_READY,
        subject,
        f"{book_title} is available until {_fmt_date(pickup_deadline)}.",
        _render("Reservation Ready", user.full_name, body, color="#16a34a"),
    )


def send_account_approved(db: Session, user: User) -> Notification:
    subject = "Your University Library account has been approved!"
    body = (
        "<p>Your account request has been approved. You can now sign in with "
        f"<strong>{escape(user.email)}</strong>.</p>"
        f'<p><a href="{settings.PUBLIC_BASE_URL}/sign-in">Sign in</a></p>'
    )
    return notify(
        db,
        user,
        NotificationType.ACCOUNT_STATUS,
        subject,
        "Your account has been approved.",
        _render("Account Approved", user.full_name, body, color="#16a34a"),
    )
