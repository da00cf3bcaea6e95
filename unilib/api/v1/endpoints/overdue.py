from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from unilib.api.v1.dependencies import get_db
from unilib.api.v1.dependencies_auth import require_staff
from unilib.schemas.fine import OverdueProcessResult, OverdueStatistics, ReminderResult
from unilib.services import overdue_service

# Jobs manuales: no hay scheduler, staff los dispara desde el panel
router = APIRouter(
    prefix="/api/v1/overdue",
    tags=["overdue"],
    dependencies=[Depends(require_staff)],
)


@router.post("/process", response_model=OverdueProcessResult)
def process_overdue_books(db: Session = Depends(get_db)):
    result = overdue_service.process_overdue_books(db)
    return OverdueProcessResult(
        message=(
            f"Processed {result['overdue_count']} new overdue book(s), "
            f"created {result['fines_created']} fine(s), updated {result['fines_updated']} fine(s)"
        ),
        **result,
    )


@router.get("/statistics", response_model=OverdueStatistics)
def overdue_statistics(db: Session = Depends(get_db)):
    return overdue_service.get_overdue_statistics(db)


@router.post("/reminders", response_model=ReminderResult)
def send_overdue_reminders(db: Session = Depends(get_db)):
    result = overdue_service.send_overdue_reminders(db)
    return ReminderResult(message="Overdue reminders processed", **result)


@router.post("/due-reminders", response_model=ReminderResult)
def send_due_reminders(
    days_ahead: Optional[int] = Query(None, ge=0, le=30),
    db: Session = Depends(get_db),
):
    result = overdue_service.send_due_reminders(db, days_ahead=days_ahead)
    return ReminderResult(message="Due date reminders processed", **result)
