from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, List
from enum import Enum


class AttendanceStatus(str, Enum):
    CLOCKED_IN = "clocked-in"
    CLOCKED_OUT = "clocked-out"
    AWAY = "away"
    ABSENT = "absent"


ACTIVE_STATUSES = [AttendanceStatus.CLOCKED_IN.value, AttendanceStatus.AWAY.value]


class WorkInterval(BaseModel):
    """A work segment or a break. `end` is None while the interval is open."""
    start: datetime
    end: Optional[datetime] = None
    duration: int = 0  # seconds


class AttendanceRecord(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    user: str
    date: datetime  # UTC instant of the local midnight this record belongs to
    status: AttendanceStatus = AttendanceStatus.ABSENT
    clock_in: Optional[datetime] = None
    clock_out: Optional[datetime] = None
    active_seconds: int = 0
    last_active_at: Optional[datetime] = None
    sessions: List[WorkInterval] = Field(default_factory=list)
    breaks: List[WorkInterval] = Field(default_factory=list)
    daily_report: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
