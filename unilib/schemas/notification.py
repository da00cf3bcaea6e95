from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from unilib.db.models import NotificationType


class NotificationRead(BaseModel):
    id: int
    user_id: int
    type: NotificationType
    title: str
    message: str
    is_read: bool
    email_sent: bool
    created_at: datetime
    read_at: Optional[datetime] = None

    class Config:
        from_attributes = True
