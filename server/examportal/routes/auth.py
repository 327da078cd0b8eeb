from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Dict

from examportal.context import Portal
from examportal.dependencies import get_portal, backend_http_error
from examportal.models.user import UserRole
from examportal.schemas import LoginRequest, SessionResponse, RedirectResponse
from examportal.services.backend_client import BackendError
from examportal.services.forms import FormError
from examportal.services.registration import sign_in

router = APIRouter(tags=["Auth"])


class RoleChoice(BaseModel):
    role: UserRole


def session_view(portal: Portal) -> SessionResponse:
    session = portal.session
    return SessionResponse(
        is_authenticated=session.is_authenticated,
        role=session.role,
        user_name=session.user_name,
        user_id=session.user_id,
        registered_exam=session.registered_exam,
    )


@router.get("/session", response_model=SessionResponse)
async def get_session_state(portal: Portal = Depends(get_portal)):
    return session_view(portal)


@router.post("/session/login", response_model=RedirectResponse)
async def login(request: LoginRequest, portal: Portal = Depends(get_portal)):
    """
    Log in against the backend; the token and role land in storage.
    """
    try:
        redirect = await sign_in(
            portal.client,
            portal.session,
            request.email,
            request.password,
            request.user_type,
            redirect_delay=portal.settings.login_redirect_seconds,
        )
    except BackendError as e:
        raise backend_http_error(e)
    return RedirectResponse(
        message=redirect.message,
        redirect_to=redirect.path,
        redirect_after_seconds=redirect.delay,
    )


@router.post("/session/logout")
async def logout(portal: Portal = Depends(get_portal)):
    portal.session.logout()
    portal.catalog.loaded = False
    return {"success": True}


@router.get("/notice")
async def get_notice(portal: Portal = Depends(get_portal)):
    """The message a form is currently showing, if it has not expired."""
    notice = portal.notices.current()
    if notice is None:
        return None
    return {"message": notice.message, "kind": notice.kind}


@router.delete("/notice")
async def dismiss_notice(portal: Portal = Depends(get_portal)):
    portal.notices.dismiss()
    return {"success": True}


# =============================================================================
# Registration wizard
# =============================================================================

@router.get("/register")
async def get_registration(portal: Portal = Depends(get_portal)):
    return portal.wizard.describe()


@router.post("/register/role")
async def choose_role(choice: RoleChoice, portal: Portal = Depends(get_portal)):
    try:
        portal.wizard.select_role(choice.role)
    except FormError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return portal.wizard.describe()


@router.post("/register/back")
async def registration_back(portal: Portal = Depends(get_portal)):
    try:
        portal.wizard.back()
    except FormError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return portal.wizard.describe()


@router.put("/register/details")
async def registration_details(values: Dict[str, str], portal: Portal = Depends(get_portal)):
    try:
        portal.wizard.update(**values)
    except KeyError as e:
        raise HTTPException(status_code=400, detail=f"Unknown field {e.args[0]}")
    return portal.wizard.describe()


@router.post("/register/submit")
async def registration_submit(portal: Portal = Depends(get_portal)):
    wizard = portal.wizard
    try:
        redirect = await wizard.submit()
    except FormError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if redirect is None:
        raise HTTPException(status_code=400, detail=wizard.error)
    return RedirectResponse(
        message=redirect.message,
        redirect_to=redirect.path,
        redirect_after_seconds=redirect.delay,
    )


@router.post("/register/reset")
async def registration_reset(portal: Portal = Depends(get_portal)):
    portal.wizard.reset()
    return portal.wizard.describe()
