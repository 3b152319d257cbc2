from datetime import date, datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

Frequency = Literal["onceDaily", "twiceDaily", "every8h", "everyOtherDay", "weekly"]
DoseStatus = Literal["taken", "missed"]
DispatchStatus = Literal["SENT", "DUPLICATE", "FAILED", "PERSIST_FAILED"]

KNOWN_FREQUENCIES = ("onceDaily", "twiceDaily", "every8h", "everyOtherDay", "weekly")
DEFAULT_FREQUENCY = "onceDaily"

class CamelModel(BaseModel):
    # JSON on disk and over HTTP is camelCase, matching the existing frontend
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class ScheduleCreate(CamelModel):
    medicine_name: str = Field(..., min_length=1)
    dosage: str = ""
    time: str = Field(..., description="HH:MM, wall clock in the schedule's timezone")
    frequency: Frequency = DEFAULT_FREQUENCY
    start_date: Optional[date] = None
    duration: Optional[int] = Field(
        default=None,
        description="Active days starting at start_date. <= 0 is inactive, null means ongoing.",
    )
    timezone: Optional[str] = None
    email: EmailStr

    @model_validator(mode="before")
    @classmethod
    def _accept_name_alias(cls, data: Any) -> Any:
        # older clients post {"name": ...} instead of {"medicineName": ...}
        if isinstance(data, dict) and data.get("name") and not data.get("medicineName"):
            data = {**data, "medicineName": data["name"]}
        return data

class Schedule(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    medicine_name: str
    dosage: str = ""
    time: str
    # free text so persisted unknown values still load; evaluated as onceDaily
    frequency: str = DEFAULT_FREQUENCY
    start_date: date
    duration: Optional[int] = None
    timezone: str
    email: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class Occurrence(BaseModel):
    model_config = ConfigDict(frozen=True)

    schedule_id: str
    base_date: date
    slot: int
    instant: datetime  # tz-aware, in the schedule's zone

    @property
    def key(self) -> str:
        return f"{self.schedule_id}:{self.base_date.isoformat()}:{self.slot}"

class DispatchResult(BaseModel):
    schedule_id: str
    occurrence_key: str
    status: DispatchStatus
    details: Dict[str, Any] = Field(default_factory=dict)

class SendResult(BaseModel):
    ok: bool
    details: Dict[str, Any] = Field(default_factory=dict)

class TickReport(BaseModel):
    tick_at: datetime
    evaluated: int = 0
    skipped: List[str] = Field(default_factory=list)
    # still dispatching from an earlier tick
    busy: List[str] = Field(default_factory=list)
    results: List[DispatchResult] = Field(default_factory=list)

class DoseLogCreate(CamelModel):
    medicine_id: str
    medicine_name: Optional[str] = None
    email: Optional[str] = None
    status: DoseStatus
    taken_at: datetime
    timezone: Optional[str] = None
    occurrence_key: Optional[str] = None

class DoseLog(DoseLogCreate):
    id: str
    synced: bool = False

class SendEmailRequest(CamelModel):
    email: EmailStr
    medicine_name: str
    status: str
    time: Optional[str] = None

class AddScheduleResponse(BaseModel):
    success: bool = True
    message: str
    schedule: Schedule
