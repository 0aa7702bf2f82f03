from typing import Dict, Optional
from fastapi import APIRouter, Depends, Path, Query
from db import attendance_collection, users_collection, audit_logs_collection
from exceptions import get_unknown_entity_exception
from models.audit_logs import AuditAction
from models.users import MANAGEMENT_ROLES
from schemas.attendance import AttendanceOverride, ClockOutRequest
from utils.app_utils import get_current_user, require_roles
from utils.activity_utils import log_audit_action
from utils.attendance_utils import (clock_in, go_away, resume, clock_out, get_today_status,
                                    get_attendance_history, get_roster_status, override_attendance,
                                    serialize_record, total_break_seconds)
from utils.time_utils import ensure_utc, local_date, now_utc
from utils.user_utils import get_user_by_id, list_active_users, user_summary

router = APIRouter()


def _resolve_month(month: Optional[int], year: Optional[int]):
    today = local_date(now_utc())
    return month or today.month, year or today.year


@router.post("/clock-in")
async def clock_in_user(user: Dict = Depends(get_current_user)):
    """
    Clocks the current user in.
    The first clock-in of a day creates the day's attendance record; clocking in
    again after a clock-out on the same day starts a new work segment on it.
    Returns:
        dict: message and data with the day's first clock-in, the status and
              the active seconds accumulated so far
    Raises:
        HTTPException:
            - 400 if the user already has an open (clocked-in or away) session, on any day
            - 409 if the record changed concurrently
    """
    record = await clock_in(attendance_collection, str(user["_id"]))
    return {
        "message": "Clocked in successfully",
        "data": {
            "clock_in": ensure_utc(record.get("clock_in")),
            "status": record["status"],
            "active_seconds": record.get("active_seconds", 0),
        },
    }


@router.post("/away")
async def go_away_user(user: Dict = Depends(get_current_user)):
    """
    Pauses the timer for a break.
    The running work segment is closed and added to the day's active time.
    Raises:
        HTTPException:
            - 400 if the user is not clocked in
    """
    record = await go_away(attendance_collection, str(user["_id"]))
    breaks = record.get("breaks") or []
    return {
        "message": "Timer paused - enjoy your break",
        "data": {
            "status": record["status"],
            "active_seconds": record.get("active_seconds", 0),
            "break_start": ensure_utc(breaks[-1]["start"]) if breaks else None,
        },
    }


@router.post("/resume")
async def resume_user(user: Dict = Depends(get_current_user)):
    """
    Ends the current break and restarts the timer.
    Raises:
        HTTPException:
            - 400 if the user is not on a break
    """
    record = await resume(attendance_collection, str(user["_id"]))
    return {
        "message": "Welcome back! Timer resumed",
        "data": {
            "status": record["status"],
            "active_seconds": record.get("active_seconds", 0),
            "last_active_at": ensure_utc(record.get("last_active_at")),
        },
    }


@router.post("/clock-out")
async def clock_out_user(body: ClockOutRequest, user: Dict = Depends(get_current_user)):
    """
    Clocks the current user out.
    A daily report is mandatory; reports from several sessions of the same day
    are appended with the clock-out time.
    Raises:
        HTTPException:
            - 400 if the report is empty or the user is not clocked in
    """
    record = await clock_out(attendance_collection, str(user["_id"]), body.daily_report)
    return {
        "message": "Clocked out - great work!",
        "data": {
            "clock_in": ensure_utc(record.get("clock_in")),
            "clock_out": ensure_utc(record.get("clock_out")),
            "active_seconds": record.get("active_seconds", 0),
            "total_break_seconds": total_break_seconds(record),
            "daily_report": record.get("daily_report", ""),
        },
    }


@router.get("/today")
async def get_today(user: Dict = Depends(get_current_user)):
    """
    Returns today's attendance status for the current user.
    A session started before midnight and still open is reported as today's.
    Active seconds include the running segment.
    """
    return {"data": await get_today_status(attendance_collection, str(user["_id"]))}


@router.get("/history")
async def get_history(
    month: Optional[int] = Query(None, ge=1, le=12, description="Month (1-12), defaults to the current month"),
    year: Optional[int] = Query(None, ge=1970, le=9999, description="Year, defaults to the current year"),
    user: Dict = Depends(get_current_user)
):
    """
    Monthly attendance history for the current user.
    Returns the month's records ordered by date and the stats:
        - days_present: records with any status other than absent
        - total_working_hours: active time in hours, rounded to one decimal
    """
    month, year = _resolve_month(month, year)
    return {"data": await get_attendance_history(attendance_collection, str(user["_id"]), month, year)}


@router.get("/admin/status")
async def get_all_users_status(user: Dict = Depends(require_roles(*MANAGEMENT_ROLES))):
    """
    Current attendance status of every user who is not offboarded, for the
    directory and dashboard views.
    """
    users = await list_active_users(users_collection)
    roster = await get_roster_status(attendance_collection, users)
    return {"count": len(roster), "data": roster}


@router.get("/admin/{user_id}/history")
async def get_user_attendance_history(
    user_id: str = Path(..., description="User ID"),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1970, le=9999),
    user: Dict = Depends(require_roles(*MANAGEMENT_ROLES))
):
    """
    Monthly attendance history of a given user.
    Raises:
        HTTPException:
            - 404 if the user does not exist
    """
    target = await get_user_by_id(users_collection, user_id)
    if not target:
        raise get_unknown_entity_exception("User not found")

    month, year = _resolve_month(month, year)
    history = await get_attendance_history(attendance_collection, user_id, month, year)
    history["user"] = user_summary(target)
    return {"data": history}


@router.post("/admin/{user_id}/override")
async def admin_override(
    body: AttendanceOverride,
    user_id: str = Path(..., description="User ID"),
    user: Dict = Depends(require_roles(*MANAGEMENT_ROLES))
):
    """
    Marks a user's day as present (eight hours) or absent.
    This bypasses the clock-in/clock-out flow and is recorded in the audit log.
    Raises:
        HTTPException:
            - 404 if the user does not exist
            - 422 for a malformed date or an unknown status
    """
    target = await get_user_by_id(users_collection, user_id)
    if not target:
        raise get_unknown_entity_exception("User not found")

    record = await override_attendance(attendance_collection, user_id, body.date, body.status)

    await log_audit_action(
        audit_logs_collection,
        action=AuditAction.ATTENDANCE_OVERRIDE,
        performed_by=str(user["_id"]),
        target_user=target.get("full_name") or target.get("email"),
        target_user_id=user_id,
        details=f"Attendance on {body.date.isoformat()} marked as {body.status.value}",
        metadata={"date": body.date.isoformat(), "status": body.status.value},
    )

    return {
        "message": f"Attendance marked as {body.status.value}.",
        "data": serialize_record(record),
    }
