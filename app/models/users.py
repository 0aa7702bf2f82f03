from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    HR = "hr"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class UserStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


MANAGEMENT_ROLES = (Role.ADMIN.value, Role.HR.value, Role.MANAGER.value)
