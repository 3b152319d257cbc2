import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException

from reminder.api.deps import get_services
from reminder.db.db_config import PersistenceFailure
from reminder.schemas.models import AddScheduleResponse, Schedule, ScheduleCreate
from reminder.services.container import ReminderServices
from reminder.services.schedule_registry import new_schedule
from reminder.utils.time_resolver import InvalidTimeFormat, UnknownTimezone

logger = logging.getLogger("reminder.api.schedules")

router = APIRouter(tags=["schedules"])

@router.post("/addSchedule", response_model=AddScheduleResponse)
def add_schedule(req: ScheduleCreate, svc: ReminderServices = Depends(get_services)):
    try:
        schedule = new_schedule(req, default_tz=svc.registry.default_tz)
    except (InvalidTimeFormat, UnknownTimezone) as e:
        logger.info(f"❌ Invalid schedule payload received: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    try:
        svc.registry.add(schedule)
    except PersistenceFailure as e:
        logger.error(f"❌ {e}")
        raise HTTPException(status_code=500, detail="Failed to save schedule.")

    return AddScheduleResponse(message="✅ Schedule added successfully!", schedule=schedule)

@router.get("/schedules", response_model=List[Schedule])
def list_schedules(svc: ReminderServices = Depends(get_services)):
    return svc.registry.list_all()

@router.delete("/schedules/{schedule_id}")
def delete_schedule(schedule_id: str, svc: ReminderServices = Depends(get_services)):
    try:
        removed = svc.registry.remove(schedule_id)
    except PersistenceFailure as e:
        logger.error(f"❌ {e}")
        raise HTTPException(status_code=500, detail="Failed to delete schedule.")
    if not removed:
        raise HTTPException(status_code=404, detail="schedule not found")
    return {"success": True, "id": schedule_id}
