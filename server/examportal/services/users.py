"""
Admin user management: tab and school filters over the fetched user list.
"""
from typing import Iterable, List, Optional

from examportal.schemas import User

# Tab name -> userType
TABS = {
    "students": "student",
    "schools": "school",
    "admins": "admin",
    "sales": "sales",
}


def tab_user_type(tab: str, selected_role: Optional[str] = None) -> Optional[str]:
    """userType to ask the backend for; "all" falls back to the role select."""
    if tab == "all":
        return selected_role or None
    try:
        return TABS[tab]
    except KeyError:
        raise ValueError(f"Unknown tab {tab!r}")


def _school_name(user: User) -> str:
    return (user.school_name or "").strip().lower()


def _nested_school_name(user: User) -> str:
    school = user.school or {}
    return str(school.get("schoolName") or "").strip().lower()


def filter_users(users: Iterable[User], tab: str = "all", school: Optional[User] = None) -> List[User]:
    """Users shown under a tab; the students tab can narrow to one school."""
    users = list(users)
    if tab == "all":
        return users
    user_type = tab_user_type(tab)
    shown = [user for user in users if user.user_type == user_type]
    if tab != "students" or school is None:
        return shown

    wanted = (school.school_name or school.name or "").strip().lower()
    return [
        user for user in shown
        if (school.id and user.school_id == school.id)
        or (wanted and wanted in (_school_name(user), _nested_school_name(user)))
    ]
