from pydantic import BaseModel
from datetime import date
from enum import Enum


class OverrideStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"


class ClockOutRequest(BaseModel):
    daily_report: str = ""


class AttendanceOverride(BaseModel):
    date: date
    status: OverrideStatus
