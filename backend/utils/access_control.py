SUPER_ADMIN = "super_admin"

ROLE_PERMISSIONS = {
    "admin": {
        "junior_church.view", "junior_church.checkin", "junior_church.manage",
        "junior_church.admin_checkout",
    },
    "junior_church_staff": {
        "junior_church.view", "junior_church.checkin", "junior_church.manage",
    },
    "team_leader": {
        "junior_church.view",
    },
    "member": {
        "junior_church.family_checkin",
    },
}


def has_permission(user, permission):
    """
    Returns True when the user's role grants the permission.
    - super_admin holds every permission.
    - Deactivated users hold none.
    - Unknown roles hold none.
    """
    if not user:
        raise ValueError("No user provided")

    if not user.is_active:
        return False

    role_name = user.role_name.lower()
    if role_name == SUPER_ADMIN:
        return True

    return permission in ROLE_PERMISSIONS.get(role_name, set())


def permissions_for(user):
    if not user or not user.is_active:
        return []
    role_name = user.role_name.lower()
    if role_name == SUPER_ADMIN:
        return sorted(set().union(*ROLE_PERMISSIONS.values()) | {"users.manage"})
    return sorted(ROLE_PERMISSIONS.get(role_name, set()))
