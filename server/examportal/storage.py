"""
Persistent key-value storage for client-side state.

Holds the session token and role plus a few profile strings (user name,
user id, registered exam name). Values are plain strings with no schema
versioning. Every write runs in a single transaction and then notifies
listeners with the keys that changed, so several holders of the same
storage stay in sync.
"""
import logging
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import sessionmaker

from examportal.models.storage import StorageEntry

logger = logging.getLogger(__name__)

# Storage keys
TOKEN_KEY = "userToken"
ROLE_KEY = "userType"
USER_NAME_KEY = "userName"
USER_ID_KEY = "userId"
EXAM_NAME_KEY = "olympiadExamName"

StorageListener = Callable[[List[str]], None]


class KeyValueStorage:
    """String key-value store backed by the storage_entries table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._listeners: List[StorageListener] = []

    def get_item(self, key: str) -> Optional[str]:
        with self._session_factory() as db:
            entry = db.get(StorageEntry, key)
            return entry.value if entry else None

    def set_item(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def remove_item(self, key: str) -> None:
        self.remove_many([key])

    def set_many(self, items: Dict[str, str]) -> None:
        """Write all items in one transaction."""
        if not items:
            return
        with self._session_factory() as db:
            for key, value in items.items():
                entry = db.get(StorageEntry, key)
                if entry is None:
                    db.add(StorageEntry(key=key, value=str(value)))
                else:
                    entry.value = str(value)
            db.commit()
        self._notify(list(items))

    def remove_many(self, keys: Iterable[str]) -> None:
        """Delete all keys in one transaction; missing keys are ignored."""
        keys = list(keys)
        if not keys:
            return
        with self._session_factory() as db:
            db.query(StorageEntry).filter(StorageEntry.key.in_(keys)).delete(synchronize_session=False)
            db.commit()
        self._notify(keys)

    def keys(self) -> List[str]:
        with self._session_factory() as db:
            return [row.key for row in db.query(StorageEntry.key).order_by(StorageEntry.key).all()]

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, keys: List[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(keys)
            except Exception as e:
                logger.error(f"❌ Storage listener failed: {e}")
