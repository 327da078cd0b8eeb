"""
Exam platform backend client.

Every call to the external REST backend goes through BackendClient. It owns
one httpx.AsyncClient, attaches the session token when there is one, and
turns non-2xx responses into BackendError with the backend's own message.
A 2xx body that cannot be read as the expected record is a BackendError too
(status 502), so callers only ever handle one exception type.
There is no retry and no central handling of 401s: callers decide what to do
with each failure where they make the call.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from examportal.schemas import Exam, Task, User, AuthResult, UserUpdate

logger = logging.getLogger(__name__)

# (field name, filename, content, content type)
UploadFile = Tuple[str, str, bytes, str]


class BackendError(Exception):
    """The backend answered with an error status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class BackendUnavailable(BackendError):
    """The backend could not be reached at all."""

    def __init__(self, message: str):
        super().__init__(503, message)


def error_message(response: httpx.Response, default: str) -> str:
    """Pick the backend's message out of an error response.

    Raw text is only used when the body is not JSON; a JSON body without a
    message yields `default`.
    """
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or default
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if body.get(key):
                return str(body[key])
    return default


def _exam_list(body) -> List[Exam]:
    return [Exam.model_validate(item) for item in body]


def _task_list(body) -> List[Task]:
    return [Task.model_validate(item) for item in body]


def _user_list(body) -> List[User]:
    return [User.model_validate(item) for item in body.get("users") or []]


def _json(body):
    return body


class BackendClient:
    """Async client for the exam platform REST API."""

    def __init__(
        self,
        base_url: str,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            timeout=timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        token = self._token_provider() if self._token_provider else None
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    async def _request(self, method: str, path: str, default_error: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise BackendUnavailable(f"{default_error}: {e}") from e

        logger.debug(f"{method} {path} -> {response.status_code}")
        if response.is_error:
            raise BackendError(response.status_code, error_message(response, default_error))
        return response

    async def _fetch(self, method: str, path: str, default_error: str,
                     parse: Callable[[Any], Any] = _json, **kwargs) -> Any:
        """Send a request and parse its JSON body into what the caller expects."""
        response = await self._request(method, path, default_error, **kwargs)
        try:
            return parse(response.json())
        # pydantic's ValidationError is a ValueError, as is a JSON decode error
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"❌ Unexpected response from {method} {path}: {e}")
            raise BackendError(502, f"{default_error}: unexpected response from server") from e

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str, user_type: str) -> AuthResult:
        try:
            return await self._fetch(
                "POST", "/api/login", "Login failed", AuthResult.model_validate,
                json={"email": email, "password": password, "userType": user_type},
            )
        except BackendError as e:
            if e.status_code == 403 and e.message == "Login failed":
                raise BackendError(403, "Your account has been deactivated") from e
            raise

    async def signup(self, payload: Dict[str, Any]) -> AuthResult:
        return await self._fetch("POST", "/api/signup", "Registration failed", AuthResult.model_validate, json=payload)

    async def get_user(self, user_id: str) -> User:
        return await self._fetch("GET", f"/api/users/{user_id}", "Failed to fetch user data", User.model_validate)

    # ------------------------------------------------------------------
    # Exams
    # ------------------------------------------------------------------

    async def list_exams(self) -> List[Exam]:
        return await self._fetch("GET", "/api/exams", "Failed to fetch exams", _exam_list)

    async def get_exam(self, exam_id: str) -> Exam:
        return await self._fetch("GET", f"/api/exams/{exam_id}", "Failed to fetch exam", Exam.model_validate)

    async def create_exam(self, exam: Exam) -> Dict[str, Any]:
        return await self._fetch("POST", "/api/exams/create", "Failed to create exam", json=exam.to_wire())

    async def update_exam(self, exam_id: str, exam: Exam) -> Dict[str, Any]:
        return await self._fetch("PUT", f"/api/exams/{exam_id}", "Failed to update exam", json=exam.to_wire())

    async def delete_exam(self, exam_id: str) -> None:
        await self._request("DELETE", f"/api/exams/{exam_id}", "Failed to delete exam")

    async def toggle_exam_status(self, exam_id: str) -> str:
        """Flip active/inactive; returns the status the backend settled on."""
        return await self._fetch(
            "PATCH", f"/api/exams/{exam_id}/status", "Failed to update status",
            lambda body: body["exam"]["status"],
        )

    async def create_mock_test(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._fetch("POST", "/api/mock-tests", "Failed to create test", json=payload)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def list_tasks(self, assigned_to: Optional[str] = None) -> List[Task]:
        params = {"assignedTo": assigned_to} if assigned_to else None
        return await self._fetch("GET", "/api/tasks", "Failed to fetch tasks", _task_list, params=params)

    async def get_task(self, task_id: str) -> Task:
        return await self._fetch("GET", f"/api/tasks/{task_id}", "Failed to fetch task", Task.model_validate)

    async def create_task(self, fields: Dict[str, str], attachments: Sequence[UploadFile] = ()) -> Task:
        return await self._fetch(
            "POST", "/api/tasks", "Failed to add task", Task.model_validate,
            files=_multipart(fields, attachments),
        )

    async def update_task(self, task_id: str, fields: Dict[str, str], attachments: Sequence[UploadFile] = ()) -> Task:
        return await self._fetch(
            "PUT", f"/api/tasks/{task_id}", "Failed to update task", Task.model_validate,
            files=_multipart(fields, attachments),
        )

    async def update_task_status(self, task_id: str, status: str) -> Task:
        return await self._fetch(
            "PUT", f"/api/tasks/{task_id}", "Failed to update task status", Task.model_validate,
            json={"status": status},
        )

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/api/tasks/{task_id}", "Failed to delete task")

    async def add_comment(self, task_id: str, text: str, author_id: Optional[str],
                          author_name: Optional[str], author_type: Optional[str]) -> Task:
        return await self._fetch(
            "POST", f"/api/tasks/{task_id}/comments", "Failed to add comment", Task.model_validate,
            json={
                "text": text,
                "authorId": author_id,
                "authorName": author_name,
                "authorType": author_type,
            },
        )

    async def download(self, url: str) -> bytes:
        """Fetch a file the backend serves, e.g. a task attachment under /uploads/."""
        response = await self._request("GET", url, "Failed to download file")
        return response.content

    # ------------------------------------------------------------------
    # Admin: users, exports, bulk registration
    # ------------------------------------------------------------------

    async def list_users(self, search: str = "", user_type: Optional[str] = None) -> List[User]:
        params = {"search": search}
        if user_type:
            params["userType"] = user_type
        return await self._fetch("GET", "/admin/users", "Failed to fetch users", _user_list, params=params)

    async def change_user_status(self, user_id: str, status: str) -> str:
        return await self._fetch(
            "POST", "/admin/change-status", "Failed to update status",
            lambda body: body["user"]["status"],
            json={"userId": user_id, "status": status},
        )

    async def update_user(self, user_id: str, update: UserUpdate) -> Dict[str, Any]:
        return await self._fetch("PUT", f"/admin/users/{user_id}", "Failed to update user", json=update.to_wire())

    async def delete_user(self, user_id: str) -> None:
        await self._request("DELETE", f"/admin/users/{user_id}", "Failed to delete user")

    async def student_filters(self) -> List[str]:
        return await self._fetch(
            "GET", "/api/student-filters", "Failed to fetch filter options",
            lambda body: list(body.get("schools") or []),
        )

    async def generate_csv(self, usertype: str = "", schoolname: str = "") -> httpx.Response:
        params = {}
        if usertype:
            params["usertype"] = usertype
        if schoolname:
            params["schoolname"] = schoolname
        return await self._request("GET", "/api/generate-csv", "Export failed", params=params)

    async def register_students(self, filename: str, content: bytes, exam_id: str) -> httpx.Response:
        # Raw response: the caller checks the content type before trusting it as JSON
        try:
            return await self._client.post(
                "/api/register-students",
                headers=self._headers(),
                data={"examId": exam_id},
                files={"file": (filename, content, "text/csv")},
            )
        except httpx.HTTPError as e:
            raise BackendUnavailable(f"Upload failed: {e}") from e

    async def register_sales(self, filename: str, content: bytes) -> Dict[str, Any]:
        return await self._fetch(
            "POST", "/api/register-sales", "Failed to upload file",
            files={"file": (filename, content, "text/csv")},
        )


def _multipart(fields: Dict[str, str], attachments: Sequence[UploadFile]) -> list:
    """Form fields and files as one multipart body, even when there are no files."""
    parts = [(key, (None, str(value))) for key, value in fields.items()]
    parts.extend((field, (name, content, content_type)) for field, name, content, content_type in attachments)
    return parts
