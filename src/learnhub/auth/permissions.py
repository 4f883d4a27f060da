"""Role-based access control for LearnHub.

Hierarchical permission system:
- ADMIN (level 2): Full system access, enrollment overrides
- INSTRUCTOR (level 1): Owns courses, grades submissions, issues certificates
- STUDENT (level 0): Enrolls in programs and tracks own progress
"""

from enum import Enum


class UserRole(str, Enum):
    """User roles with hierarchical levels."""

    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.STUDENT: 0,
    UserRole.INSTRUCTOR: 1,
    UserRole.ADMIN: 2,
}


def get_role_level(role: UserRole | str) -> int:
    """Get the permission level for a role.

    Args:
        role: UserRole enum or string representation

    Returns:
        Permission level, -1 for unknown roles
    """
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return -1
    return ROLE_HIERARCHY.get(role, -1)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check if user has at least the required permission level.

    Examples:
        >>> has_permission(UserRole.ADMIN, UserRole.INSTRUCTOR)
        True
        >>> has_permission(UserRole.STUDENT, UserRole.INSTRUCTOR)
        False
        >>> has_permission("admin", "student")
        True
    """
    required = get_role_level(required_role)
    return required >= 0 and get_role_level(user_role) >= required


def is_admin(role: UserRole | str) -> bool:
    """Check if role is ADMIN."""
    return get_role_level(role) == ROLE_HIERARCHY[UserRole.ADMIN]


def is_student(role: UserRole | str) -> bool:
    """Check if role is exactly STUDENT."""
    if isinstance(role, str):
        return role == UserRole.STUDENT.value
    return role == UserRole.STUDENT
