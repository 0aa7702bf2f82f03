import logging
from datetime import datetime
from typing import Dict, List, Optional

from pymongo.errors import PyMongoError

from exceptions import get_store_unavailable_exception
from models.attendance import AttendanceStatus
from models.users import Role
from utils.attendance_utils import get_today_status, get_monthly_records, summarize_attendance
from utils.time_utils import now_utc, to_storage, local_date
from utils.user_utils import list_active_users

logger = logging.getLogger(__name__)


async def get_attendance_widget(attendance_collection, user_id: str, now: Optional[datetime] = None, tz=None) -> Dict:
    """
    Personal attendance widget: today's live status and the month to date.
    """
    now = to_storage(now or now_utc())
    today = local_date(now, tz)

    today_status = await get_today_status(attendance_collection, user_id, now=now, tz=tz)
    records = await get_monthly_records(attendance_collection, user_id, today.month, today.year, tz)

    return {
        "today": today_status,
        "monthly_stats": summarize_attendance(records),
    }


async def get_team_attendance(attendance_collection, users_collection, viewer: Dict) -> Dict:
    """
    Who is on duty right now among the viewer's team.

    Managers see their own department, admin and hr see everyone.
    """
    department = viewer.get("department") if viewer.get("role") == Role.MANAGER.value else None

    try:
        team: List[Dict] = await list_active_users(users_collection, department=department, strict=True)
        team_by_id = {str(member["_id"]): member for member in team}

        on_duty_records = await attendance_collection.find(
            {"user": {"$in": list(team_by_id)}, "status": AttendanceStatus.CLOCKED_IN.value},
            {"user": 1}
        ).to_list(length=None)
    except PyMongoError as e:
        logger.error(f"Team attendance lookup failed: {e}")
        raise get_store_unavailable_exception()

    on_duty = []
    for record in on_duty_records:
        member = team_by_id.get(record["user"])
        if member:
            on_duty.append({
                "id": record["user"],
                "full_name": member.get("full_name"),
                "department": member.get("department"),
            })

    return {
        "total_employees": len(team),
        "on_duty_count": len(on_duty),
        "on_duty_employees": on_duty,
    }
