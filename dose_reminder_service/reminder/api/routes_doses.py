import logging
from datetime import datetime
from typing import List
from fastapi import APIRouter, Depends, HTTPException

from reminder.api.deps import get_services
from reminder.db.db_config import PersistenceFailure
from reminder.schemas.models import DoseLog, DoseLogCreate, SendEmailRequest
from reminder.services.container import ReminderServices
from reminder.services.notifier import status_message

logger = logging.getLogger("reminder.api.doses")

router = APIRouter(tags=["doses"])

@router.post("/logDose")
def log_dose(req: DoseLogCreate, svc: ReminderServices = Depends(get_services)):
    try:
        svc.dose_logs.append(req)
    except PersistenceFailure as e:
        logger.error(f"❌ Failed to save dose log: {e}")
        raise HTTPException(status_code=500, detail="Failed to save dose log.")
    return {"success": True, "message": "Dose logged successfully."}

@router.get("/doseLogs", response_model=List[DoseLog])
def dose_logs(svc: ReminderServices = Depends(get_services)):
    return svc.dose_logs.list_logs()

@router.post("/sendEmail")
def send_email(req: SendEmailRequest, svc: ReminderServices = Depends(get_services)):
    at = req.time or datetime.now().strftime("%H:%M:%S")
    subject, text, html = status_message(req.medicine_name, req.status, at)

    sent = svc.notifier.send(str(req.email), subject, text, html)
    if not sent.ok:
        raise HTTPException(status_code=500, detail="Failed to send email")

    logger.info(f"📨 Email sent ({req.status}): {req.medicine_name}")
    return {"success": True}
