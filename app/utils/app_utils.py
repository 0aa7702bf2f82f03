import logging
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from typing import Dict
from jose import JWTError, jwt
from db import users_collection
from exceptions import get_user_exception, get_forbidden_exception
from models.users import UserStatus
from utils.user_utils import get_user_by_id
from config import settings

logger = logging.getLogger(__name__)

oauth2_bearer = OAuth2PasswordBearer(tokenUrl="auth/login/")

secret_key = settings.SECRET_KEY
algorithm = settings.ALGORITHM


async def get_current_user(token: str = Depends(oauth2_bearer)) -> Dict:
    try:
        # Decode the JWT
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError as e:
        logger.warning(f"JWT Error {e}")
        raise get_user_exception("JWT Error - could not validate user.")

    data = payload.get("data")  # Access the "data" object
    if data is None:
        raise get_user_exception("Invalid token data.")

    user_id = data.get("sub")
    if user_id is None:
        raise get_user_exception("Could not validate user.")

    user = await get_user_by_id(users_collection, str(user_id))
    if not user:
        raise get_user_exception("User not found.")

    if user.get("status") == UserStatus.INACTIVE.value:
        raise get_user_exception("Account has been deactivated. Contact HR.")

    return user


def require_roles(*allowed_roles: str):
    """Dependency factory restricting a route to the given roles."""
    async def role_checker(user: Dict = Depends(get_current_user)) -> Dict:
        if user.get("role") not in allowed_roles:
            raise get_forbidden_exception(allowed_roles)
        return user

    return role_checker
