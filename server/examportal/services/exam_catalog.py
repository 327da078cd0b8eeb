"""
Exam catalog: fetch once, filter locally.

The filters are pure functions over an already-fetched list, so changing the
search term or a select never goes back to the network.
"""
import logging
from datetime import date, datetime
from typing import Iterable, List, Optional

from examportal.models.content import ExamStatus
from examportal.models.user import UserRole
from examportal.schemas import Exam, ExamQuery
from examportal.services.backend_client import BackendClient, BackendError

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No exams found"


def matches(exam: Exam, query: ExamQuery) -> bool:
    term = query.search.lower()
    matches_search = term in exam.title.lower() or term in exam.subject.lower()
    matches_subject = not query.subject or exam.subject == query.subject
    matches_difficulty = not query.difficulty or exam.difficulty == query.difficulty
    return matches_search and matches_subject and matches_difficulty


def filter_exams(exams: Iterable[Exam], query: ExamQuery) -> List[Exam]:
    return [exam for exam in exams if matches(exam, query)]


def visible_exams(exams: Iterable[Exam], role: Optional[UserRole]) -> List[Exam]:
    """Admins see every exam; everyone else only active ones."""
    if role == UserRole.ADMIN:
        return list(exams)
    return [exam for exam in exams if exam.status == ExamStatus.ACTIVE]


def featured_exams(exams: Iterable[Exam]) -> List[Exam]:
    return [exam for exam in exams if exam.featured and exam.status == ExamStatus.ACTIVE]


def subjects_of(exams: Iterable[Exam]) -> List[str]:
    """Distinct subjects in first-seen order."""
    return list(dict.fromkeys(exam.subject for exam in exams))


def registered_exams(exams: Iterable[Exam], exam_name: Optional[str]) -> List[Exam]:
    """Active exams whose title is the student's registered exam."""
    if not exam_name or not exam_name.strip():
        return []
    wanted = exam_name.strip()
    return [
        exam for exam in exams
        if exam.title.strip() == wanted and exam.status == ExamStatus.ACTIVE
    ]


def _parse_date(value: str) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def upcoming_this_month(exams: Iterable[Exam], today: Optional[date] = None) -> List[Exam]:
    today = today or date.today()
    upcoming = []
    for exam in exams:
        exam_date = _parse_date(exam.date)
        if exam_date and exam_date.year == today.year and exam_date.month == today.month:
            upcoming.append(exam)
    return upcoming


def split_by_status(exams: Iterable[Exam]) -> dict:
    """Active and inactive columns of the exam management view."""
    exams = list(exams)
    return {
        "active": [exam for exam in exams if exam.status == ExamStatus.ACTIVE],
        "inactive": [exam for exam in exams if exam.status == ExamStatus.INACTIVE],
    }


class ExamCatalog:
    """Holds the fetched exam list and answers queries against it."""

    def __init__(self, client: BackendClient):
        self.client = client
        self.exams: List[Exam] = []
        self.loaded = False

    async def load(self) -> List[Exam]:
        """Fetch the full collection; on failure log and keep an empty list."""
        try:
            self.exams = await self.client.list_exams()
        except BackendError as e:
            logger.error(f"❌ Error fetching exams: {e.message}")
            self.exams = []
        self.loaded = True
        return self.exams

    async def ensure_loaded(self) -> List[Exam]:
        if not self.loaded:
            await self.load()
        return self.exams

    def query(self, query: ExamQuery, role: Optional[UserRole] = None) -> List[Exam]:
        return filter_exams(visible_exams(self.exams, role), query)

    def set_status(self, exam_id: str, status: str) -> None:
        self.exams = [
            exam.model_copy(update={"status": status}) if exam.id == exam_id else exam
            for exam in self.exams
        ]

    def discard(self, exam_id: str) -> None:
        self.exams = [exam for exam in self.exams if exam.id != exam_id]

    def get(self, exam_id: str) -> Optional[Exam]:
        return next((exam for exam in self.exams if exam.id == exam_id), None)
