"""Role-based access control (RBAC) for token enrolment.

Two layers:
- Site roles (UserRole): hierarchical, carried in the access token.
- Course roles (CourseRole): assigned per course, each granting a set of
  enrolment capabilities. Course roles are ordered by authority so the
  "enroller" of a course can be resolved deterministically.
"""

from enum import Enum


class UserRole(str, Enum):
    """Site roles with hierarchical levels.

    Higher level = more permissions.
    GUEST is a valid identity that can browse but never self-enrol.
    """

    GUEST = "guest"  # Level 0: Anonymous/guest session
    USER = "user"  # Level 1: Basic registered user
    STUDENT = "student"  # Level 2: Learner
    TEACHER = "teacher"  # Level 3: Course instructor
    ADMIN = "admin"  # Level 4: System administrator


# Role hierarchy mapping (role -> permission level)
ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.GUEST: 0,
    UserRole.USER: 1,
    UserRole.STUDENT: 2,
    UserRole.TEACHER: 3,
    UserRole.ADMIN: 4,
}


class CourseRole(str, Enum):
    """Roles a user can hold inside a course."""

    MANAGER = "manager"
    EDITING_TEACHER = "editingteacher"
    TEACHER = "teacher"
    STUDENT = "student"
    GUEST = "guest"


# Lower value = higher authority
COURSE_ROLE_AUTHORITY: dict[str, int] = {
    CourseRole.MANAGER.value: 1,
    CourseRole.EDITING_TEACHER.value: 2,
    CourseRole.TEACHER.value: 3,
    CourseRole.STUDENT.value: 4,
    CourseRole.GUEST.value: 5,
}


class Capability(str, Enum):
    """Capabilities checked by the token enrolment method."""

    ENROL_SELF = "enrol/token:enrolself"
    MANAGE = "enrol/token:manage"
    HOLD_KEY = "enrol/token:holdkey"
    CONFIG = "enrol/token:config"
    UNENROL = "enrol/token:unenrol"
    UNENROL_SELF = "enrol/token:unenrolself"


# Granted to every authenticated non-guest user in any course
SELF_SERVICE_CAPABILITIES: frozenset[Capability] = frozenset(
    {Capability.ENROL_SELF, Capability.UNENROL_SELF}
)

# HOLD_KEY has no default role; grant it through overrides
ROLE_CAPABILITIES: dict[str, frozenset[Capability]] = {
    CourseRole.MANAGER.value: frozenset(
        {Capability.MANAGE, Capability.CONFIG, Capability.UNENROL}
    ),
    CourseRole.EDITING_TEACHER.value: frozenset(
        {Capability.MANAGE, Capability.CONFIG, Capability.UNENROL}
    ),
    CourseRole.TEACHER.value: frozenset(),
    CourseRole.STUDENT.value: frozenset(),
    CourseRole.GUEST.value: frozenset(),
}


def get_role_level(role: UserRole | str) -> int:
    """Get the permission level for a role.

    Args:
        role: UserRole enum or string representation

    Returns:
        Permission level (0-4), defaults to 0 for unknown roles
    """
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return 0
    return ROLE_HIERARCHY.get(role, 0)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check if user has at least the required permission level.

    Uses hierarchical comparison: ADMIN >= TEACHER >= STUDENT >= USER >= GUEST

    Examples:
        >>> has_permission(UserRole.ADMIN, UserRole.TEACHER)
        True
        >>> has_permission(UserRole.STUDENT, UserRole.TEACHER)
        False
        >>> has_permission("admin", "student")
        True
    """
    return get_role_level(user_role) >= get_role_level(required_role)


def is_admin(role: UserRole | str) -> bool:
    """Check if role is ADMIN."""
    if isinstance(role, str):
        return role == UserRole.ADMIN.value
    return role == UserRole.ADMIN


def is_guest(role: UserRole | str) -> bool:
    """Check if role is GUEST."""
    if isinstance(role, str):
        return role == UserRole.GUEST.value
    return role == UserRole.GUEST


def role_authority(role: str) -> int:
    """Sort key for course roles, unknown roles sort last."""
    return COURSE_ROLE_AUTHORITY.get(role, len(COURSE_ROLE_AUTHORITY) + 1)


def role_grants(
    role: str,
    capability: Capability,
    overrides: dict[str, frozenset[Capability]] | None = None,
) -> bool:
    """Check whether a course role grants a capability.

    Args:
        role: Course role name
        capability: Capability to check
        overrides: Extra capabilities per role (e.g. who may hold the key)

    Returns:
        True if the role's defaults or overrides include the capability
    """
    granted = ROLE_CAPABILITIES.get(role, frozenset())
    if overrides:
        granted = granted | overrides.get(role, frozenset())
    return capability in granted
