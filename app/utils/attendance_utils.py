import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from exceptions import (get_state_conflict_exception, get_validation_exception,
                        get_concurrent_update_exception, get_store_unavailable_exception)
from models.attendance import ACTIVE_STATUSES, AttendanceRecord, AttendanceStatus, WorkInterval
from schemas.attendance import OverrideStatus
from utils.time_utils import (now_utc, to_storage, ensure_utc, elapsed_seconds, local_day_start,
                              day_start_for_date, local_date, month_range, format_local_time, add_seconds)

logger = logging.getLogger(__name__)

ALREADY_CLOCKED_IN = "You are already clocked in. Please clock out first."
MUST_BE_CLOCKED_IN = "You must be clocked in to go away"
NOT_ON_BREAK = "You are not on a break"
NOT_CLOCKED_IN = "You are not clocked in. Please clock in first."
DAILY_REPORT_REQUIRED = "Daily report is required when clocking out"

OVERRIDE_ACTIVE_SECONDS = 8 * 60 * 60
PRESENT_STATUSES = {
    AttendanceStatus.CLOCKED_IN.value,
    AttendanceStatus.CLOCKED_OUT.value,
    AttendanceStatus.AWAY.value,
}
HISTORY_FIELDS = {"user": 1, "date": 1, "status": 1, "clock_in": 1, "clock_out": 1,
                  "active_seconds": 1, "daily_report": 1}


async def find_active_record(attendance_collection, user_id: str) -> Optional[Dict]:
    """The user's clocked-in or away record, whatever day it was opened on."""
    return await attendance_collection.find_one({"user": user_id, "status": {"$in": ACTIVE_STATUSES}})


async def resolve_attendance_record(attendance_collection, user_id: str, day_start: datetime) -> Optional[Dict]:
    """
    Resolve the record that "today" refers to for a user.

    An active session opened before midnight still belongs to the day it was
    opened on, so any active record wins before the lookup by date.
    """
    record = await find_active_record(attendance_collection, user_id)
    if record:
        return record
    return await attendance_collection.find_one({"user": user_id, "date": day_start})


def live_active_seconds(record: Optional[Dict], now: datetime) -> int:
    """Persisted active seconds plus the running segment, computed without writing."""
    if not record:
        return 0
    seconds = record.get("active_seconds") or 0
    last_active_at = record.get("last_active_at")
    if record.get("status") == AttendanceStatus.CLOCKED_IN.value and last_active_at:
        seconds += elapsed_seconds(last_active_at, now)
    return seconds


def total_break_seconds(record: Dict) -> int:
    return sum(entry.get("duration") or 0 for entry in record.get("breaks") or [])


def has_open_break(breaks: List[Dict]) -> bool:
    return bool(breaks) and breaks[-1].get("end") is None


def close_open_break(breaks: List[Dict], now: datetime) -> List[Dict]:
    closed = [dict(entry) for entry in breaks]
    if has_open_break(closed):
        closed[-1]["end"] = now
        closed[-1]["duration"] = elapsed_seconds(closed[-1]["start"], now)
    return closed


def append_daily_report(existing: Optional[str], text: str, now: datetime, tz=None) -> str:
    if existing:
        return f"{existing}\n[{format_local_time(now, tz)}]: {text}"
    return text


def summarize_attendance(records: Iterable[Dict]) -> Dict:
    """
    Aggregate a range of attendance records.

    Any status other than absent counts as a day present, including an open
    session that has not accrued time yet. Hours are rounded to one decimal.
    """
    days_present = 0
    days_absent = 0
    total_records = 0
    total_seconds = 0
    for record in records:
        total_records += 1
        if record.get("status") in PRESENT_STATUSES:
            days_present += 1
        else:
            days_absent += 1
        total_seconds += record.get("active_seconds") or 0

    return {
        "days_present": days_present,
        "days_absent": days_absent,
        "total_records": total_records,
        "total_active_seconds": total_seconds,
        "total_working_hours": round(total_seconds / 3600, 1),
    }


def serialize_record(record: Dict, tz=None) -> Dict:
    data = {
        "id": str(record["_id"]) if record.get("_id") is not None else None,
        "user": record.get("user"),
        "date": local_date(record["date"], tz) if record.get("date") else None,
        "status": record.get("status", AttendanceStatus.ABSENT.value),
        "clock_in": ensure_utc(record.get("clock_in")),
        "clock_out": ensure_utc(record.get("clock_out")),
        "active_seconds": record.get("active_seconds") or 0,
        "daily_report": record.get("daily_report") or "",
    }
    if "sessions" in record:
        data["sessions"] = [_serialize_interval(entry) for entry in record["sessions"]]
    if "breaks" in record:
        data["breaks"] = [_serialize_interval(entry) for entry in record["breaks"]]
    return data


def _serialize_interval(entry: Dict) -> Dict:
    return {
        "start": ensure_utc(entry.get("start")),
        "end": ensure_utc(entry.get("end")),
        "duration": entry.get("duration") or 0,
    }


async def _compare_and_swap(attendance_collection, record: Dict, expected: Dict, update: Dict) -> Dict:
    """Apply `update` only if the record still holds the state it was read in."""
    query = {"_id": record["_id"], **expected}
    try:
        updated = await attendance_collection.find_one_and_update(
            query, update, return_document=ReturnDocument.AFTER
        )
    except DuplicateKeyError:
        # another record for this user became active in the meantime
        updated = None

    if updated is None:
        logger.warning(f"Attendance record {record['_id']} changed before the update for user {record.get('user')}")
        raise get_concurrent_update_exception()
    return updated


def _store_failure(action: str, user_id: str, error: Exception):
    logger.error(f"Attendance store error during {action} for user {user_id}: {error}")
    return get_store_unavailable_exception()


async def clock_in(attendance_collection, user_id: str, now: Optional[datetime] = None, tz=None) -> Dict:
    """
    Start (or restart) the working day for a user.

    Creates today's record on the first clock-in of the day, otherwise reopens
    today's clocked-out record with a new active segment.
    """
    now = to_storage(now or now_utc())
    day_start = local_day_start(now, tz)

    try:
        record = await resolve_attendance_record(attendance_collection, user_id, day_start)
        if record and record.get("status") in ACTIVE_STATUSES:
            raise get_state_conflict_exception(ALREADY_CLOCKED_IN)

        if record is None:
            document = AttendanceRecord(
                user=user_id,
                date=day_start,
                status=AttendanceStatus.CLOCKED_IN,
                clock_in=now,
                last_active_at=now,
                created_at=now,
                updated_at=now,
            ).model_dump()
            try:
                result = await attendance_collection.insert_one(document)
            except DuplicateKeyError:
                logger.warning(f"Concurrent clock-in detected for user {user_id}")
                raise get_concurrent_update_exception()
            document["_id"] = result.inserted_id
            logger.info(f"User {user_id} clocked in, new record for {day_start}")
            return document

        changes = {
            "status": AttendanceStatus.CLOCKED_IN.value,
            "last_active_at": now,
            "updated_at": now,
        }
        if not record.get("clock_in"):
            changes["clock_in"] = now

        updated = await _compare_and_swap(
            attendance_collection, record, {"status": record.get("status")}, {"$set": changes}
        )
        logger.info(f"User {user_id} clocked in again on {record['date']}")
        return updated

    except PyMongoError as e:
        raise _store_failure("clock-in", user_id, e)


async def go_away(attendance_collection, user_id: str, now: Optional[datetime] = None) -> Dict:
    """Pause the timer: close the running segment and open a break."""
    now = to_storage(now or now_utc())

    try:
        record = await find_active_record(attendance_collection, user_id)
        if not record or record.get("status") != AttendanceStatus.CLOCKED_IN.value:
            raise get_state_conflict_exception(MUST_BE_CLOCKED_IN)

        last_active_at = record.get("last_active_at")
        update = {
            "$set": {
                "status": AttendanceStatus.AWAY.value,
                "last_active_at": None,
                "updated_at": now,
            },
            "$push": {"breaks": WorkInterval(start=now).model_dump()},
        }
        if last_active_at:
            segment_seconds = elapsed_seconds(last_active_at, now)
            update["$inc"] = {"active_seconds": segment_seconds}
            update["$push"]["sessions"] = WorkInterval(
                start=last_active_at, end=now, duration=segment_seconds
            ).model_dump()

        updated = await _compare_and_swap(
            attendance_collection,
            record,
            {"status": AttendanceStatus.CLOCKED_IN.value, "last_active_at": last_active_at},
            update,
        )
        logger.info(f"User {user_id} went away")
        return updated

    except PyMongoError as e:
        raise _store_failure("go-away", user_id, e)


async def resume(attendance_collection, user_id: str, now: Optional[datetime] = None) -> Dict:
    """End the open break and start a new active segment."""
    now = to_storage(now or now_utc())

    try:
        record = await find_active_record(attendance_collection, user_id)
        if not record or record.get("status") != AttendanceStatus.AWAY.value:
            raise get_state_conflict_exception(NOT_ON_BREAK)

        breaks = record.get("breaks") or []
        changes = {
            "status": AttendanceStatus.CLOCKED_IN.value,
            "last_active_at": now,
            "updated_at": now,
        }
        if has_open_break(breaks):
            changes["breaks"] = close_open_break(breaks, now)

        updated = await _compare_and_swap(
            attendance_collection,
            record,
            {"status": AttendanceStatus.AWAY.value, "breaks": {"$size": len(breaks)}},
            {"$set": changes},
        )
        logger.info(f"User {user_id} resumed work")
        return updated

    except PyMongoError as e:
        raise _store_failure("resume", user_id, e)


async def clock_out(attendance_collection, user_id: str, daily_report: Optional[str],
                    now: Optional[datetime] = None, tz=None) -> Dict:
    """
    Close the working session with a mandatory daily report.

    A running segment is added to the active time; an open break is closed
    without adding time. The report is appended to any earlier report of the
    same day, prefixed with the local clock-out time.
    """
    text = (daily_report or "").strip()
    if not text:
        raise get_validation_exception(DAILY_REPORT_REQUIRED)

    now = to_storage(now or now_utc())

    try:
        record = await find_active_record(attendance_collection, user_id)
        if not record:
            raise get_state_conflict_exception(NOT_CLOCKED_IN)

        status = record.get("status")
        changes = {
            "status": AttendanceStatus.CLOCKED_OUT.value,
            "clock_out": now,
            "last_active_at": None,
            "daily_report": append_daily_report(record.get("daily_report"), text, now, tz),
            "updated_at": now,
        }
        update = {"$set": changes}
        expected = {"status": status}

        if status == AttendanceStatus.CLOCKED_IN.value:
            last_active_at = record.get("last_active_at")
            expected["last_active_at"] = last_active_at
            if last_active_at:
                segment_seconds = elapsed_seconds(last_active_at, now)
                update["$inc"] = {"active_seconds": segment_seconds}
                update["$push"] = {"sessions": WorkInterval(
                    start=last_active_at, end=now, duration=segment_seconds
                ).model_dump()}
        else:
            breaks = record.get("breaks") or []
            expected["breaks"] = {"$size": len(breaks)}
            if has_open_break(breaks):
                changes["breaks"] = close_open_break(breaks, now)

        updated = await _compare_and_swap(attendance_collection, record, expected, update)
        logger.info(f"User {user_id} clocked out with {updated.get('active_seconds', 0)} active seconds")
        return updated

    except PyMongoError as e:
        raise _store_failure("clock-out", user_id, e)


async def get_today_status(attendance_collection, user_id: str, now: Optional[datetime] = None, tz=None) -> Dict:
    """Live snapshot of the user's current day. Never writes to the store."""
    now = to_storage(now or now_utc())

    try:
        record = await resolve_attendance_record(attendance_collection, user_id, local_day_start(now, tz))
    except PyMongoError as e:
        raise _store_failure("today lookup", user_id, e)

    if not record:
        return {
            "status": AttendanceStatus.ABSENT.value,
            "clock_in": None,
            "clock_out": None,
            "active_seconds": 0,
            "total_break_seconds": 0,
            "breaks_count": 0,
            "last_active_at": None,
            "daily_report": "",
        }

    return {
        "date": local_date(record["date"], tz),
        "status": record.get("status"),
        "clock_in": ensure_utc(record.get("clock_in")),
        "clock_out": ensure_utc(record.get("clock_out")),
        "active_seconds": live_active_seconds(record, now),
        "total_break_seconds": total_break_seconds(record),
        "breaks_count": len(record.get("breaks") or []),
        "last_active_at": ensure_utc(record.get("last_active_at")),
        "daily_report": record.get("daily_report") or "",
    }


async def get_monthly_records(attendance_collection, user_id: str, month: int, year: int, tz=None) -> List[Dict]:
    start, end = month_range(month, year, tz)
    try:
        return await attendance_collection.find(
            {"user": user_id, "date": {"$gte": start, "$lt": end}}, HISTORY_FIELDS
        ).sort("date", 1).to_list(length=None)
    except PyMongoError as e:
        raise _store_failure("history lookup", user_id, e)


async def get_attendance_history(attendance_collection, user_id: str, month: int, year: int, tz=None) -> Dict:
    """Records of a local calendar month, oldest first, with aggregate stats."""
    records = await get_monthly_records(attendance_collection, user_id, month, year, tz)
    return {
        "month": month,
        "year": year,
        "records": [serialize_record(record, tz) for record in records],
        "stats": summarize_attendance(records),
    }


async def get_roster_status(attendance_collection, users: List[Dict], now: Optional[datetime] = None, tz=None) -> List[Dict]:
    """
    Current attendance status for each user in `users`.

    An active record (possibly opened on an earlier day) takes precedence over
    today's closed record; users without either are reported absent.
    """
    now = to_storage(now or now_utc())
    day_start = local_day_start(now, tz)

    try:
        records = await attendance_collection.find({
            "$or": [
                {"date": day_start},
                {"status": {"$in": ACTIVE_STATUSES}},
            ]
        }).to_list(length=None)
    except PyMongoError as e:
        raise _store_failure("roster lookup", "*", e)

    record_by_user = {}
    for record in records:
        user_key = str(record["user"])
        if record.get("status") in ACTIVE_STATUSES:
            record_by_user[user_key] = record
        elif record.get("date") == day_start and user_key not in record_by_user:
            record_by_user[user_key] = record

    roster = []
    for user in users:
        record = record_by_user.get(str(user["_id"]))
        roster.append({
            "id": str(user["_id"]),
            "full_name": user.get("full_name"),
            "email": user.get("email"),
            "role": user.get("role"),
            "department": user.get("department"),
            "status": record.get("status") if record else AttendanceStatus.ABSENT.value,
            "clock_in": ensure_utc(record.get("clock_in")) if record else None,
            "clock_out": ensure_utc(record.get("clock_out")) if record else None,
            "active_seconds": live_active_seconds(record, now),
            "last_active_at": ensure_utc(record.get("last_active_at")) if record else None,
        })
    return roster


def _override_changes(record: Optional[Dict], status: OverrideStatus, day_start: datetime, now: datetime) -> Dict:
    if status == OverrideStatus.PRESENT:
        clock_in_at = (record or {}).get("clock_in") or day_start
        changes = {
            "status": AttendanceStatus.CLOCKED_OUT.value,
            "active_seconds": OVERRIDE_ACTIVE_SECONDS,
            "clock_in": clock_in_at,
            "clock_out": add_seconds(clock_in_at, OVERRIDE_ACTIVE_SECONDS),
            "daily_report": "Admin overridden.",
        }
    else:
        changes = {
            "status": AttendanceStatus.ABSENT.value,
            "active_seconds": 0,
            "clock_in": None,
            "clock_out": None,
            "daily_report": "Admin marked absent.",
        }

    changes["last_active_at"] = None
    changes["updated_at"] = now
    if record and has_open_break(record.get("breaks") or []):
        changes["breaks"] = close_open_break(record["breaks"], now)
    return changes


async def override_attendance(attendance_collection, user_id: str, day: date, status: OverrideStatus,
                              now: Optional[datetime] = None, tz=None) -> Dict:
    """
    Force a day to present or absent, bypassing the clock state machine.

    Present synthesizes an eight hour clocked-out day, absent clears the
    day's timestamps and active time. Sessions on other days are not checked.
    """
    now = to_storage(now or now_utc())
    day_start = day_start_for_date(day, tz)
    status = OverrideStatus(status)

    try:
        record = await attendance_collection.find_one({"user": user_id, "date": day_start})
        if record is None:
            document = AttendanceRecord(
                user=user_id, date=day_start, created_at=now,
                **_override_changes(None, status, day_start, now)
            ).model_dump()
            try:
                result = await attendance_collection.insert_one(document)
                document["_id"] = result.inserted_id
                logger.info(f"Attendance for user {user_id} on {day} overridden to {status.value}")
                return document
            except DuplicateKeyError:
                # created concurrently, fall through to an update
                record = await attendance_collection.find_one({"user": user_id, "date": day_start})
                if record is None:
                    raise get_concurrent_update_exception()

        updated = await attendance_collection.find_one_and_update(
            {"_id": record["_id"]},
            {"$set": _override_changes(record, status, day_start, now)},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise get_concurrent_update_exception()
        logger.info(f"Attendance for user {user_id} on {day} overridden to {status.value}")
        return updated

    except PyMongoError as e:
        raise _store_failure("override", user_id, e)
