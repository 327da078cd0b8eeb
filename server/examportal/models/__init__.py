"""
Models package initialization
Import all models here to ensure they are registered with SQLAlchemy
"""

from examportal.models.user import UserRole, UserStatus, SIGNUP_ROLES
from examportal.models.content import Difficulty, ExamStatus, TaskPriority, TaskStatus
from examportal.models.storage import StorageEntry

__all__ = [
    "UserRole",
    "UserStatus",
    "SIGNUP_ROLES",
    "Difficulty",
    "ExamStatus",
    "TaskPriority",
    "TaskStatus",
    "StorageEntry",
]
