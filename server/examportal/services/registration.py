"""
Sign-up wizard and login flow.

The wizard is a small state machine:

    RoleSelect --select_role--> DetailEntry --submit--> Submitting
    Submitting --success--> Done
    Submitting --failure--> DetailEntry (error shown)
    DetailEntry --back--> RoleSelect (picked role kept)

Validation runs before Submitting; a draft that fails it never reaches the
backend.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from examportal.models.user import UserRole, SIGNUP_ROLES
from examportal.schemas import AuthResult
from examportal.services.backend_client import BackendClient, BackendError
from examportal.services.forms import FormError, NoticeBoard
from examportal.services.session import SessionContext

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

DASHBOARDS = {
    UserRole.STUDENT: "/student-dashboard",
    UserRole.SALES: "/sales-dashboard",
    UserRole.ADMIN: "/admin-dashboard",
    UserRole.SCHOOL: "/school-dashboard",
}

COMMON_FIELDS = ("name", "email", "password", "confirmPassword")
ROLE_FIELDS = {
    UserRole.ADMIN: ("phoneNumber",),
    UserRole.SCHOOL: ("schoolName", "schoolId", "address"),
}


def dashboard_path(role) -> str:
    try:
        return DASHBOARDS[UserRole(role)]
    except ValueError:
        return "/dashboard"


@dataclass
class Redirect:
    message: str
    path: str
    delay: float


class WizardState(str, enum.Enum):
    ROLE_SELECT = "RoleSelect"
    DETAIL_ENTRY = "DetailEntry"
    SUBMITTING = "Submitting"
    DONE = "Done"


class RegistrationWizard:
    """Two-step sign-up form: pick a role, then fill in the details."""

    def __init__(self, client: BackendClient, session: SessionContext,
                 notices: NoticeBoard, redirect_delay: float = 2.0):
        self.client = client
        self.session = session
        self.notices = notices
        self.redirect_delay = redirect_delay
        self.reset()

    def reset(self) -> None:
        self.state = WizardState.ROLE_SELECT
        self.role: Optional[UserRole] = None
        self.form: Dict[str, str] = {name: "" for name in COMMON_FIELDS}
        for fields in ROLE_FIELDS.values():
            self.form.update({name: "" for name in fields})
        self.error: Optional[str] = None
        self.redirect: Optional[Redirect] = None

    def select_role(self, role) -> None:
        role = UserRole(role)
        if role not in SIGNUP_ROLES:
            raise FormError(f"Cannot sign up as {role.value}")
        if self.state not in (WizardState.ROLE_SELECT, WizardState.DETAIL_ENTRY):
            raise FormError(f"Cannot pick a role while {self.state.value}")
        self.role = role
        self.state = WizardState.DETAIL_ENTRY

    def back(self) -> None:
        if self.state != WizardState.DETAIL_ENTRY:
            raise FormError(f"Cannot go back while {self.state.value}")
        self.state = WizardState.ROLE_SELECT

    def update(self, **values: str) -> None:
        for name, value in values.items():
            if name not in self.form:
                raise KeyError(name)
            self.form[name] = value

    def validate(self) -> None:
        required = COMMON_FIELDS + ROLE_FIELDS.get(self.role, ())
        missing = [name for name in required if not self.form.get(name, "").strip()]
        if missing:
            raise FormError(f"Missing required fields: {', '.join(missing)}")
        if self.form["password"] != self.form["confirmPassword"]:
            raise FormError("Passwords do not match")
        if len(self.form["password"]) < MIN_PASSWORD_LENGTH:
            raise FormError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    def payload(self) -> Dict[str, str]:
        payload = {"userType": self.role.value}
        payload.update({name: self.form[name] for name in COMMON_FIELDS})
        payload.update({name: self.form[name] for name in ROLE_FIELDS.get(self.role, ())})
        return payload

    async def submit(self) -> Optional[Redirect]:
        if self.state != WizardState.DETAIL_ENTRY:
            raise FormError(f"Cannot submit while {self.state.value}")
        self.error = None
        try:
            self.validate()
        except FormError as e:
            self.error = str(e)
            self.notices.show(self.error, "error")
            return None

        self.state = WizardState.SUBMITTING
        try:
            result = await self.client.signup(self.payload())
        except BackendError as e:
            logger.error(f"❌ Registration error: {e.message}")
            self.state = WizardState.DETAIL_ENTRY
            self.error = e.message
            self.notices.show(e.message, "error")
            return None

        self.session.login(result.token, result.user_type)
        self.session.remember_profile(name=self.form["name"], user_id=result.user_id)
        self.state = WizardState.DONE
        self.notices.show("You have registered successfully!", "success")
        self.redirect = Redirect("You have registered successfully!", dashboard_path(result.user_type), self.redirect_delay)
        return self.redirect

    def describe(self) -> dict:
        return {
            "state": self.state.value,
            "role": self.role.value if self.role else None,
            "form": {k: v for k, v in self.form.items() if k not in ("password", "confirmPassword")},
            "error": self.error,
            "redirect_to": self.redirect.path if self.redirect else None,
        }


async def sign_in(client: BackendClient, session: SessionContext, email: str,
                  password: str, user_type, redirect_delay: float = 1.5) -> Redirect:
    """Log in against the backend and remember who we are.

    Raises BackendError with the backend's message on failure; a 403 without a
    message reads "Your account has been deactivated".
    """
    result: AuthResult = await client.login(email, password, UserRole(user_type).value)
    session.login(result.token, result.user_type)
    session.remember_profile(
        name=result.name,
        user_id=result.user_id,
        exam_name=result.olympiad_exam_name,
    )
    return Redirect("Login successful!", dashboard_path(result.user_type), redirect_delay)
