from fastapi import HTTPException, status    


def get_user_exception(detail: str = "Could not validate credentials"):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )
    return credentials_exception


def get_forbidden_exception(allowed_roles):
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=f"Access denied. Required role(s): {', '.join(allowed_roles)}"
    )


def get_unknown_entity_exception(detail: str = "Entity not found"):
    entity_exception = HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=detail
    )
    return entity_exception


def get_state_conflict_exception(detail: str):
    """The requested clock action is not valid for the current attendance state."""
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def get_validation_exception(detail: str):
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def get_concurrent_update_exception():
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Attendance record was modified by another request"
    )


def get_store_unavailable_exception():
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Attendance store unavailable"
    )
