from typing import Dict
from fastapi import APIRouter, Depends
from db import attendance_collection, users_collection
from models.users import MANAGEMENT_ROLES
from utils.app_utils import get_current_user, require_roles
from utils.dashboard_utils import get_attendance_widget, get_team_attendance
from utils.user_utils import user_summary

router = APIRouter()


@router.get("/attendance")
async def get_my_attendance_widget(user: Dict = Depends(get_current_user)):
    """
    Attendance widget of the personal dashboard.
    Returns:
        dict: containing
            - user: display fields of the current user
            - attendance.today: today's live status
            - attendance.monthly_stats: days present/absent, records and hours for the month so far
    """
    widget = await get_attendance_widget(attendance_collection, str(user["_id"]))
    return {"user": user_summary(user), "attendance": widget}


@router.get("/team-attendance")
async def get_team_overview(user: Dict = Depends(require_roles(*MANAGEMENT_ROLES))):
    """
    Team overview for managers, hr and admins: team size and who is clocked in right now.
    Managers only see their own department.
    """
    return {"team_overview": await get_team_attendance(attendance_collection, users_collection, user)}
