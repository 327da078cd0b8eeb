from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from typing import Optional

from examportal.context import Portal
from examportal.dependencies import get_portal, require_roles, backend_http_error
from examportal.models.content import Difficulty
from examportal.models.user import UserRole
from examportal.schemas import Exam, ExamQuery, ExamListResponse, RegistrationReport
from examportal.services.backend_client import BackendError
from examportal.services.exam_catalog import (
    NO_RESULTS_MESSAGE,
    featured_exams,
    subjects_of,
    visible_exams,
)
from examportal.services.transfers import RosterError, register_students

router = APIRouter(tags=["Exams"])


@router.get("", response_model=ExamListResponse)
async def list_exams(
    search: str = "",
    subject: Optional[str] = None,
    difficulty: Optional[Difficulty] = None,
    portal: Portal = Depends(get_portal),
):
    """
    Search and filter the exam list.

    The list is fetched once; later calls filter locally.
    """
    await portal.catalog.ensure_loaded()
    role = portal.session.role
    exams = portal.catalog.query(ExamQuery(search=search, subject=subject, difficulty=difficulty), role)
    return ExamListResponse(
        exams=exams,
        subjects=subjects_of(visible_exams(portal.catalog.exams, role)),
        total=len(exams),
        message=None if exams else NO_RESULTS_MESSAGE,
    )


@router.post("/reload", response_model=ExamListResponse)
async def reload_exams(portal: Portal = Depends(get_portal)):
    exams = visible_exams(await portal.catalog.load(), portal.session.role)
    return ExamListResponse(exams=exams, subjects=subjects_of(exams), total=len(exams))


@router.get("/featured")
async def get_featured(portal: Portal = Depends(get_portal)):
    await portal.catalog.ensure_loaded()
    return featured_exams(portal.catalog.exams)


@router.get("/{exam_id}", response_model=Exam)
async def get_exam(exam_id: str, portal: Portal = Depends(get_portal)):
    exam = portal.catalog.get(exam_id)
    if exam is not None:
        return exam
    try:
        return await portal.client.get_exam(exam_id)
    except BackendError as e:
        raise backend_http_error(e)


@router.post(
    "/{exam_id}/register-students",
    response_model=RegistrationReport,
    dependencies=[Depends(require_roles(UserRole.SCHOOL, UserRole.ADMIN))],
)
async def upload_roster(exam_id: str, file: UploadFile = File(...), portal: Portal = Depends(get_portal)):
    """
    Register a roster of students for one exam.
    """
    content = await file.read()
    try:
        return await register_students(portal.client, file.filename or "students.csv", content, exam_id)
    except RosterError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BackendError as e:
        raise backend_http_error(e)
