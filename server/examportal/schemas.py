from pydantic import BaseModel, Field
from typing import Optional, List, Any
from examportal.models.user import UserRole
from examportal.models.content import Difficulty, ExamStatus, TaskPriority, TaskStatus


class WireModel(BaseModel):
    """Base for records exchanged with the backend (camelCase on the wire)."""

    class Config:
        populate_by_name = True
        use_enum_values = True
        coerce_numbers_to_str = True

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Exam Schemas
# =============================================================================

class SyllabusSection(WireModel):
    title: str = ""
    topics: List[str] = []


class ResourceGroup(WireModel):
    title: str = ""
    items: List[str] = []


class ExamFAQ(WireModel):
    question: str = ""
    answer: str = ""


class Exam(WireModel):
    id: str = ""
    title: str
    subject: str
    description: str = ""
    date: str = ""
    registration_deadline: str = Field("", alias="registrationDeadline")
    duration: str = ""
    difficulty: Difficulty = Difficulty.EASY
    eligibility: str = ""
    fee: str = ""
    location: str = ""
    image: str = ""
    syllabus: List[SyllabusSection] = []
    resources: List[ResourceGroup] = []
    faqs: List[ExamFAQ] = []
    status: ExamStatus = ExamStatus.ACTIVE
    featured: bool = False


class ExamQuery(BaseModel):
    """Search box plus the subject and difficulty selects."""
    search: str = ""
    subject: Optional[str] = None
    difficulty: Optional[Difficulty] = None


class ExamListResponse(BaseModel):
    exams: List[Exam]
    subjects: List[str]
    total: int
    message: Optional[str] = None


# =============================================================================
# Task Schemas
# =============================================================================

class TaskAttachment(WireModel):
    name: str
    url: str
    type: str = ""


class TaskComment(WireModel):
    text: str
    author_id: Optional[str] = Field(None, alias="authorId")
    author_name: Optional[str] = Field(None, alias="authorName")
    author_type: Optional[str] = Field(None, alias="authorType")
    created_at: Optional[str] = Field(None, alias="createdAt")


class Task(WireModel):
    id: str = Field("", alias="_id")
    title: str
    description: str = ""
    assigned_by: str = Field("", alias="assignedBy")
    assigned_to: str = Field("", alias="assignedTo")
    assigned_to_name: Optional[str] = Field(None, alias="assignedToName")
    assigned_date: str = Field("", alias="assignedDate")
    due_date: str = Field("", alias="dueDate")
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    attachments: List[TaskAttachment] = []
    comments: List[TaskComment] = []
    school_id: Optional[str] = Field(None, alias="schoolId")
    school_name: Optional[str] = Field(None, alias="schoolName")


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


class CommentCreate(BaseModel):
    text: str


# =============================================================================
# Account Schemas
# =============================================================================

class LoginRequest(BaseModel):
    email: str
    password: str
    user_type: UserRole = Field(UserRole.STUDENT, alias="userType")

    class Config:
        populate_by_name = True


class AuthResult(WireModel):
    """What /api/login and /api/signup return."""
    token: str = Field(min_length=1)
    user_type: UserRole = Field(alias="userType")
    name: Optional[str] = None
    user_id: Optional[str] = Field(None, alias="userId")
    olympiad_exam_name: Optional[str] = Field(None, alias="olympiadExamName")


class SessionResponse(BaseModel):
    is_authenticated: bool
    role: Optional[UserRole] = None
    user_name: Optional[str] = None
    user_id: Optional[str] = None
    registered_exam: Optional[str] = None


class RedirectResponse(BaseModel):
    message: str
    redirect_to: str
    redirect_after_seconds: float


class User(WireModel):
    id: str = Field("", alias="_id")
    name: str = ""
    email: str = ""
    user_type: Optional[str] = Field(None, alias="userType")
    status: Optional[str] = None
    school_name: Optional[str] = Field(None, alias="schoolName")
    school_id: Optional[str] = Field(None, alias="schoolId")
    school_admin_name: Optional[str] = Field(None, alias="schoolAdminName")
    school: Optional[dict] = None


class UserUpdate(WireModel):
    name: str = ""
    email: str = ""
    user_type: str = Field("", alias="userType")
    status: str = ""
    school_name: str = Field("", alias="schoolName")
    school_admin_name: str = Field("", alias="schoolAdminName")


# =============================================================================
# Mock Test Schemas
# =============================================================================

class MockOption(WireModel):
    text: str = ""


class MockQuestion(WireModel):
    question_text: str = Field("", alias="questionText")
    options: List[MockOption] = Field(default_factory=lambda: [MockOption() for _ in range(4)])
    correct_answer_index: int = Field(0, ge=0, le=3, alias="correctAnswerIndex")


# =============================================================================
# Bulk Registration Schemas
# =============================================================================

class ProcessedStudent(WireModel):
    row: int
    status: str  # "success", "skipped", "failed"
    data: Optional[dict] = None
    reason: Optional[str] = None
    existing_id: Optional[str] = Field(None, alias="existingId")
    error: Optional[str] = None


class RegistrationReport(BaseModel):
    message: str
    success_count: int
    duplicate_count: int
    error_count: int
    successes: List[str]
    duplicates: List[str]
    errors: List[str]
    download_url: Optional[str] = None
    raw: Optional[Any] = None
