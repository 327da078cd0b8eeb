from fastapi import APIRouter, Depends, HTTPException
from typing import Optional

from examportal.context import Portal
from examportal.dependencies import get_portal, require_roles, require_admin, backend_http_error
from examportal.models.content import ExamStatus
from examportal.models.user import UserRole
from examportal.schemas import ExamQuery
from examportal.services.backend_client import BackendError
from examportal.services.exam_catalog import (
    featured_exams,
    filter_exams,
    registered_exams,
    subjects_of,
    upcoming_this_month,
    visible_exams,
)
from examportal.services.task_feed import NO_USER_ID_MESSAGE, filter_tasks, feed_key

router = APIRouter(tags=["Dashboards"])

ADMIN_SECTIONS = [
    {"key": "users", "label": "User Management"},
    {"key": "exams", "label": "Exam Management"},
    {"key": "content", "label": "Mock Tests"},
    {"key": "tasks", "label": "Task Management"},
    {"key": "downloads", "label": "Downloads"},
]


@router.get("/home")
async def home(portal: Portal = Depends(get_portal)):
    """Landing page: featured exams and whether someone is logged in."""
    await portal.catalog.ensure_loaded()
    return {
        "is_authenticated": portal.session.is_authenticated,
        "role": portal.session.role,
        "featured": featured_exams(portal.catalog.exams),
    }


@router.get("/student", dependencies=[Depends(require_roles(UserRole.STUDENT))])
async def student_dashboard(portal: Portal = Depends(get_portal)):
    session = portal.session
    exams = await portal.catalog.load()
    active = [exam for exam in exams if exam.status == ExamStatus.ACTIVE]
    return {
        "name": session.user_name,
        "registered_exam": session.registered_exam,
        "registered_exams": registered_exams(exams, session.registered_exam),
        "upcoming": upcoming_this_month(active),
    }


@router.get("/school", dependencies=[Depends(require_roles(UserRole.SCHOOL))])
async def school_dashboard(
    search: str = "",
    subject: Optional[str] = None,
    portal: Portal = Depends(get_portal),
):
    await portal.catalog.ensure_loaded()
    active = visible_exams(portal.catalog.exams, UserRole.SCHOOL)
    exams = filter_exams(active, ExamQuery(search=search, subject=subject))
    return {
        "name": portal.session.user_name,
        "exams": exams,
        "subjects": subjects_of(active),
        "total": len(exams),
    }


@router.get("/sales", dependencies=[Depends(require_roles(UserRole.SALES))])
async def sales_dashboard(status: str = "all", portal: Portal = Depends(get_portal)):
    """
    Sales member's profile and the tasks assigned to them.

    `stream` names the SSE feed that keeps the task list current.
    """
    user_id = portal.session.user_id
    if not user_id:
        raise HTTPException(status_code=400, detail=NO_USER_ID_MESSAGE)
    try:
        profile = await portal.client.get_user(user_id)
        tasks = await portal.client.list_tasks(user_id)
    except BackendError as e:
        raise backend_http_error(e)
    return {
        "profile": profile.to_wire(),
        "tasks": [task.to_wire() for task in filter_tasks(tasks, status)],
        "stream": feed_key(assigned_to=user_id),
    }


@router.get("/admin", dependencies=[Depends(require_admin)])
async def admin_dashboard(portal: Portal = Depends(get_portal)):
    return {"name": portal.session.user_name, "sections": ADMIN_SECTIONS}
