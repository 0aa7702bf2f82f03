import logging

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING
from config import settings
from models.attendance import ACTIVE_STATUSES

logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(settings.MONGODB_URL)
db = client[settings.MONGODB_DB_NAME]


users_collection = db.users
attendance_collection = db.attendance
audit_logs_collection = db.audit_logs


async def ensure_indexes(attendance=attendance_collection, users=users_collection):
    """
    Create the indexes the attendance engine relies on.

    - one record per user per day
    - at most one clocked-in/away record per user across all days

    The active-session index filters with `$in`, which partial indexes accept
    from MongoDB 6.0 on; older servers reject it at start-up.
    """
    await attendance.create_index(
        [("user", ASCENDING), ("date", ASCENDING)],
        unique=True,
        name="user_date_unique",
    )
    await attendance.create_index(
        [("user", ASCENDING)],
        unique=True,
        name="user_active_session_unique",
        partialFilterExpression={"status": {"$in": ACTIVE_STATUSES}},
    )
    await attendance.create_index([("date", ASCENDING), ("status", ASCENDING)], name="date_status")
    await users.create_index([("status", ASCENDING)], name="status")
    await users.create_index([("department", ASCENDING), ("status", ASCENDING)], name="department_status")
    logger.info("Attendance indexes ensured")
