import logging
from typing import Dict, List, Optional

from bson import ObjectId
from pymongo.errors import PyMongoError

from exceptions import get_store_unavailable_exception
from models.users import UserStatus

logger = logging.getLogger(__name__)

USER_DISPLAY_FIELDS = {"full_name": 1, "email": 1, "role": 1, "department": 1, "status": 1}


async def get_user_by_id(users_collection, user_id: str) -> Optional[Dict]:
    if not ObjectId.is_valid(user_id):
        return None
    try:
        return await users_collection.find_one({"_id": ObjectId(user_id)})
    except PyMongoError as e:
        logger.error(f"User lookup failed for {user_id}: {e}")
        raise get_store_unavailable_exception()


async def list_active_users(users_collection, department: Optional[str] = None, strict: bool = False) -> List[Dict]:
    """
    Users visible on rosters.

    By default pending and active users (everyone not offboarded); with
    `strict` only fully onboarded users.
    """
    if strict:
        query = {"status": UserStatus.ACTIVE.value}
    else:
        query = {"status": {"$in": [UserStatus.PENDING.value, UserStatus.ACTIVE.value]}}
    if department:
        query["department"] = department

    try:
        return await users_collection.find(query, USER_DISPLAY_FIELDS).sort("full_name", 1).to_list(length=None)
    except PyMongoError as e:
        logger.error(f"User roster lookup failed: {e}")
        raise get_store_unavailable_exception()


def user_summary(user: Dict) -> Dict:
    return {
        "id": str(user["_id"]),
        "full_name": user.get("full_name"),
        "email": user.get("email"),
        "role": user.get("role"),
        "department": user.get("department"),
    }
