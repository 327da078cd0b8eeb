"""
Form drafts and the controllers that submit them.

Drafts are transient: a successful submit discards them, a failed one keeps
them so the user can fix and resubmit. Growable sub-lists (syllabus
sections, resource groups, FAQs, mock-test questions) give every item a
stable key, so an item can be edited, removed or moved regardless of what
happened to the items before it.
"""
import enum
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

from pydantic import BaseModel

from examportal.models.user import UserRole
from examportal.schemas import (
    Exam,
    ExamFAQ,
    MockQuestion,
    ResourceGroup,
    SyllabusSection,
    Task,
)
from examportal.services.backend_client import BackendClient, BackendError, UploadFile

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def _plain(value) -> str:
    return value.value if isinstance(value, enum.Enum) else str(value)


class FormError(Exception):
    """Client-side validation failed; nothing was sent."""


# =============================================================================
# Notices
# =============================================================================

@dataclass
class Notice:
    message: str
    kind: str  # "success", "error", "question"
    expires_at: Optional[float] = None

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class NoticeBoard:
    """Holds the one transient message a form shows at a time."""

    def __init__(self, duration: float = 3.0, clock: Callable[[], float] = time.monotonic):
        self.duration = duration
        self._clock = clock
        self._notice: Optional[Notice] = None

    def show(self, message: str, kind: str = "success") -> Notice:
        # Questions wait for an answer; everything else auto-dismisses
        expires_at = None if kind == "question" else self._clock() + self.duration
        self._notice = Notice(message, kind, expires_at)
        return self._notice

    def current(self) -> Optional[Notice]:
        if self._notice is not None and self._notice.expired(self._clock()):
            self._notice = None
        return self._notice

    def dismiss(self) -> None:
        self._notice = None


# =============================================================================
# Keyed lists
# =============================================================================

def new_key() -> str:
    return uuid.uuid4().hex[:12]


class KeyedList(Generic[T]):
    """List whose items carry generated keys instead of relying on position."""

    def __init__(self, factory: Callable[[], T], items: Optional[List[T]] = None):
        self._factory = factory
        self._items: List[Tuple[str, T]] = [(new_key(), item) for item in items or []]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return (item for _, item in self._items)

    def keys(self) -> List[str]:
        return [key for key, _ in self._items]

    def entries(self) -> List[Tuple[str, T]]:
        return list(self._items)

    def add(self, item: Optional[T] = None) -> str:
        key = new_key()
        self._items.append((key, item if item is not None else self._factory()))
        return key

    def get(self, key: str) -> T:
        return self._items[self._index(key)][1]

    def update(self, key: str, **changes) -> T:
        index = self._index(key)
        item = self._items[index][1].model_copy(update=changes)
        self._items[index] = (key, item)
        return item

    def remove(self, key: str) -> T:
        return self._items.pop(self._index(key))[1]

    def remove_at(self, index: int) -> T:
        return self._items.pop(index)[1]

    def move(self, key: str, index: int) -> None:
        entry = self._items.pop(self._index(key))
        self._items.insert(index, entry)

    def values(self) -> List[T]:
        return [item for _, item in self._items]

    def _index(self, key: str) -> int:
        for index, (item_key, _) in enumerate(self._items):
            if item_key == key:
                return index
        raise KeyError(key)


# =============================================================================
# Exam draft
# =============================================================================

EXAM_FIELDS = (
    "title", "subject", "description", "date", "registration_deadline", "duration",
    "difficulty", "eligibility", "fee", "location", "image", "status", "featured",
)


class ExamDraft:
    """Exam form state: flat fields plus three growable lists."""

    def __init__(self, exam: Optional[Exam] = None):
        exam = exam or Exam(title="", subject="")
        self.exam_id: Optional[str] = exam.id or None
        self.fields: Dict[str, object] = {name: getattr(exam, name) for name in EXAM_FIELDS}
        self.syllabus: KeyedList[SyllabusSection] = KeyedList(SyllabusSection, list(exam.syllabus))
        self.resources: KeyedList[ResourceGroup] = KeyedList(ResourceGroup, list(exam.resources))
        self.faqs: KeyedList[ExamFAQ] = KeyedList(ExamFAQ, list(exam.faqs))

    @property
    def is_editing(self) -> bool:
        return self.exam_id is not None

    def section(self, name: str) -> KeyedList:
        if name not in ("syllabus", "resources", "faqs"):
            raise KeyError(name)
        return getattr(self, name)

    def set_fields(self, **values) -> None:
        for name, value in values.items():
            if name not in EXAM_FIELDS:
                raise KeyError(name)
            self.fields[name] = value

    def to_exam(self) -> Exam:
        return Exam(
            id=self.exam_id or "",
            syllabus=self.syllabus.values(),
            resources=self.resources.values(),
            faqs=self.faqs.values(),
            **self.fields,
        )

    def describe(self) -> dict:
        """Draft as the form renders it, list items paired with their keys."""
        return {
            "exam_id": self.exam_id,
            "editing": self.is_editing,
            "fields": self.to_exam().model_dump(mode="json", include=set(EXAM_FIELDS)),
            "syllabus": [{"key": k, **v.model_dump(mode="json")} for k, v in self.syllabus.entries()],
            "resources": [{"key": k, **v.model_dump(mode="json")} for k, v in self.resources.entries()],
            "faqs": [{"key": k, **v.model_dump(mode="json")} for k, v in self.faqs.entries()],
        }


class ExamForm:
    """Create/edit controller for the exam management view."""

    def __init__(self, client: BackendClient, notices: NoticeBoard):
        self.client = client
        self.notices = notices
        self.draft: Optional[ExamDraft] = None

    def open(self, exam: Optional[Exam] = None) -> ExamDraft:
        self.draft = ExamDraft(exam)
        return self.draft

    def cancel(self) -> None:
        self.draft = None

    async def submit(self) -> bool:
        """Send the draft; True on success (draft discarded), False keeps it."""
        if self.draft is None:
            raise FormError("No exam form is open")
        exam = self.draft.to_exam()
        try:
            if self.draft.is_editing:
                await self.client.update_exam(self.draft.exam_id, exam)
                message = "Exam updated successfully!"
            else:
                await self.client.create_exam(exam)
                message = "Exam created successfully!"
        except BackendError as e:
            logger.error(f"❌ Error while saving the exam: {e.message}")
            self.notices.show(e.message or "Something went wrong. Please try again.", "error")
            return False
        self.draft = None
        self.notices.show(message, "success")
        return True


# =============================================================================
# Mock test draft
# =============================================================================

def blank_question() -> MockQuestion:
    return MockQuestion()


class MockTestForm:
    """Mock test builder: title, description, duration and keyed questions."""

    def __init__(self, client: BackendClient, notices: NoticeBoard):
        self.client = client
        self.notices = notices
        self.reset()

    def reset(self) -> None:
        self.title = ""
        self.description = ""
        self.duration = 30
        self.questions: KeyedList[MockQuestion] = KeyedList(blank_question, [blank_question()])

    def set_option(self, key: str, option_index: int, text: str) -> MockQuestion:
        question = self.questions.get(key)
        options = [option.model_copy() for option in question.options]
        options[option_index] = options[option_index].model_copy(update={"text": text})
        return self.questions.update(key, options=options)

    def set_correct(self, key: str, option_index: int) -> MockQuestion:
        question = self.questions.get(key)
        if not 0 <= option_index < len(question.options):
            raise FormError(f"Option {option_index} does not exist")
        return self.questions.update(key, correct_answer_index=option_index)

    def payload(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "duration": self.duration,
            "questions": [question.to_wire() for question in self.questions],
        }

    def describe(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "duration": self.duration,
            "questions": [{"key": k, **q.to_wire()} for k, q in self.questions.entries()],
        }

    async def submit(self) -> bool:
        try:
            await self.client.create_mock_test(self.payload())
        except BackendError as e:
            logger.error(f"❌ Error submitting test: {e.message}")
            self.notices.show(f"Failed to create test: {e.message}", "error")
            return False
        self.notices.show("Mock test created successfully!", "success")
        self.reset()
        return True


# =============================================================================
# Task draft
# =============================================================================

@dataclass
class TaskDraft:
    title: str = ""
    description: str = ""
    assigned_by: str = ""
    assigned_to: str = ""
    assigned_date: str = field(default_factory=lambda: date.today().isoformat())
    due_date: str = ""
    priority: str = "medium"
    status: str = "pending"
    attachments: List[UploadFile] = field(default_factory=list)

    @classmethod
    def for_role(cls, role: Optional[UserRole]) -> "TaskDraft":
        return cls(assigned_by="Admin" if role == UserRole.ADMIN else "")

    @classmethod
    def from_task(cls, task: Task) -> "TaskDraft":
        return cls(
            title=task.title,
            description=task.description,
            assigned_by=task.assigned_by,
            assigned_to=task.assigned_to,
            assigned_date=task.assigned_date,
            due_date=task.due_date,
            priority=task.priority,
            status=task.status,
        )

    def validate(self) -> None:
        if not self.assigned_to:
            raise FormError("Please select a team member to assign the task to")

    def form_fields(self) -> Dict[str, str]:
        return {
            "title": self.title,
            "description": self.description,
            "assignedBy": self.assigned_by,
            "assignedTo": self.assigned_to,
            "assignedDate": self.assigned_date,
            "dueDate": self.due_date,
            "priority": _plain(self.priority),
            "status": _plain(self.status),
        }
