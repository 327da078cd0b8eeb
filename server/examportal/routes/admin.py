from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel
from typing import Any, Dict, Optional
import logging
import os

from examportal.context import Portal
from examportal.dependencies import get_portal, require_admin, backend_http_error
from examportal.models.user import UserStatus
from examportal.schemas import UserUpdate
from examportal.services.backend_client import BackendError
from examportal.services.forms import FormError
from examportal.services.transfers import USER_TYPES, RosterError, download_export, register_sales
from examportal.services.users import filter_users, tab_user_type

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin"], dependencies=[Depends(require_admin)])


class StatusChange(BaseModel):
    status: UserStatus


class ExportRequest(BaseModel):
    usertype: str = ""
    schoolname: str = ""


class MockTestDetails(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    duration: Optional[int] = None


# =============================================================================
# User management
# =============================================================================

@router.get("/users")
async def list_users(
    tab: str = "all",
    search: str = "",
    role: Optional[str] = None,
    school_id: Optional[str] = None,
    portal: Portal = Depends(get_portal),
):
    """
    Users under one tab, searched on the backend and narrowed locally.

    The students tab also lists schools so the view can filter by one.
    """
    try:
        user_type = tab_user_type(tab, role)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        users = await portal.client.list_users(search=search, user_type=user_type)
        schools = []
        if tab == "students":
            schools = await portal.client.list_users(user_type="school")
    except BackendError as e:
        raise backend_http_error(e)

    school = next((s for s in schools if s.id == school_id), None) if school_id else None
    shown = filter_users(users, tab, school)
    return {
        "users": [user.to_wire() for user in shown],
        "schools": [s.to_wire() for s in schools],
        "total": len(shown),
    }


@router.post("/users/{user_id}/status")
async def change_user_status(user_id: str, change: StatusChange, portal: Portal = Depends(get_portal)):
    try:
        status = await portal.client.change_user_status(user_id, change.status.value)
    except BackendError as e:
        raise backend_http_error(e)
    return {"id": user_id, "status": status}


@router.put("/users/{user_id}")
async def update_user(user_id: str, update: UserUpdate, portal: Portal = Depends(get_portal)):
    try:
        return await portal.client.update_user(user_id, update)
    except BackendError as e:
        raise backend_http_error(e)


@router.delete("/users/{user_id}")
async def delete_user(user_id: str, portal: Portal = Depends(get_portal)):
    try:
        await portal.client.delete_user(user_id)
    except BackendError as e:
        raise backend_http_error(e)
    return {"success": True}


@router.post("/users/sales-upload")
async def upload_sales(file: UploadFile = File(...), portal: Portal = Depends(get_portal)):
    """Bulk-create sales members from a CSV."""
    content = await file.read()
    try:
        return await register_sales(portal.client, file.filename or "sales.csv", content)
    except RosterError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BackendError as e:
        raise backend_http_error(e)


# =============================================================================
# Downloads
# =============================================================================

@router.get("/downloads/filters")
async def download_filters(portal: Portal = Depends(get_portal)):
    try:
        schools = await portal.client.student_filters()
    except BackendError as e:
        raise backend_http_error(e)
    return {"schools": schools, "userTypes": USER_TYPES}


@router.post("/downloads/export")
async def export_csv(request: ExportRequest, portal: Portal = Depends(get_portal)):
    try:
        path = await download_export(
            portal.client,
            portal.settings.download_dir,
            usertype=request.usertype,
            schoolname=request.schoolname,
        )
    except BackendError as e:
        logger.error(f"❌ Export failed: {e.message}")
        raise backend_http_error(e)
    return FileResponse(path, media_type="text/csv", filename=os.path.basename(path))


# =============================================================================
# Mock test builder
# =============================================================================

@router.get("/mock-test")
async def get_mock_test(portal: Portal = Depends(get_portal)):
    return portal.mock_test_form.describe()


@router.put("/mock-test")
async def update_mock_test(details: MockTestDetails, portal: Portal = Depends(get_portal)):
    form = portal.mock_test_form
    for name, value in details.model_dump(exclude_none=True).items():
        setattr(form, name, value)
    return form.describe()


@router.post("/mock-test/questions")
async def add_question(portal: Portal = Depends(get_portal)):
    key = portal.mock_test_form.questions.add()
    return {"key": key, **portal.mock_test_form.describe()}


@router.put("/mock-test/questions/{key}")
async def update_question(key: str, values: Dict[str, Any] = Body(...), portal: Portal = Depends(get_portal)):
    """
    Edit a question. Accepts `questionText`, `correctAnswerIndex` and
    `options` as a list of up to four option texts.
    """
    form = portal.mock_test_form
    try:
        if "questionText" in values:
            form.questions.update(key, question_text=str(values["questionText"]))
        for index, text in enumerate(values.get("options") or []):
            form.set_option(key, index, str(text))
        if "correctAnswerIndex" in values:
            form.set_correct(key, int(values["correctAnswerIndex"]))
    except KeyError:
        raise HTTPException(status_code=404, detail="Question not found")
    except (IndexError, FormError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return form.describe()


@router.delete("/mock-test/questions/{key}")
async def remove_question(key: str, portal: Portal = Depends(get_portal)):
    form = portal.mock_test_form
    try:
        form.questions.remove(key)
    except KeyError:
        raise HTTPException(status_code=404, detail="Question not found")
    return form.describe()


@router.post("/mock-test/submit")
async def submit_mock_test(portal: Portal = Depends(get_portal)):
    created = await portal.mock_test_form.submit()
    notice = portal.notices.current()
    if not created:
        raise HTTPException(status_code=400, detail=notice.message if notice else "Failed to create test")
    return {"success": True, "message": notice.message if notice else None}

