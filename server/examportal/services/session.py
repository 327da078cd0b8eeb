"""
Session state holder.

A SessionContext is created once per application and handed to routes
through FastAPI dependencies. It mirrors the token and role kept in the
key-value storage and refreshes itself when another holder of the same
storage writes to those keys.
"""
import logging
from typing import Optional

from examportal.models.user import UserRole
from examportal.storage import (
    KeyValueStorage,
    TOKEN_KEY,
    ROLE_KEY,
    USER_NAME_KEY,
    USER_ID_KEY,
    EXAM_NAME_KEY,
)

logger = logging.getLogger(__name__)

PROFILE_KEYS = (USER_NAME_KEY, USER_ID_KEY, EXAM_NAME_KEY)


class SessionContext:
    """Login token and role, persisted in storage."""

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage
        self._token: Optional[str] = None
        self._role: Optional[UserRole] = None
        self._reload()
        self._unsubscribe = storage.subscribe(self._on_storage_change)

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def role(self) -> Optional[UserRole]:
        return self._role

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def login(self, token: str, role) -> None:
        """Store token and role together and switch to the new identity."""
        role = UserRole(role)
        if not token:
            raise ValueError("token must be a non-empty string")
        self.storage.set_many({TOKEN_KEY: token, ROLE_KEY: role.value})
        self._token, self._role = token, role
        logger.info(f"🔑 Logged in as {role.value}")

    def logout(self) -> None:
        """Clear token, role and the profile strings stored at login."""
        self.storage.remove_many((TOKEN_KEY, ROLE_KEY) + PROFILE_KEYS)
        self._token, self._role = None, None
        logger.info("👋 Logged out")

    # Profile strings stored next to the session

    @property
    def user_name(self) -> Optional[str]:
        return self.storage.get_item(USER_NAME_KEY)

    @property
    def user_id(self) -> Optional[str]:
        return self.storage.get_item(USER_ID_KEY)

    @property
    def registered_exam(self) -> Optional[str]:
        return self.storage.get_item(EXAM_NAME_KEY)

    def remember_profile(self, name: Optional[str] = None, user_id: Optional[str] = None,
                         exam_name: Optional[str] = None) -> None:
        items = {}
        if name:
            items[USER_NAME_KEY] = name
        if user_id:
            items[USER_ID_KEY] = user_id
        if exam_name:
            items[EXAM_NAME_KEY] = exam_name
        self.storage.set_many(items)

    def close(self) -> None:
        self._unsubscribe()

    def _reload(self) -> None:
        token = self.storage.get_item(TOKEN_KEY)
        role = self.storage.get_item(ROLE_KEY)
        if token is None or role is None:
            self._token, self._role = None, None
            return
        try:
            self._token, self._role = token, UserRole(role)
        except ValueError:
            logger.warning(f"⚠️ Ignoring stored session with unknown role {role!r}")
            self._token, self._role = None, None

    def _on_storage_change(self, keys) -> None:
        if TOKEN_KEY in keys or ROLE_KEY in keys:
            self._reload()
