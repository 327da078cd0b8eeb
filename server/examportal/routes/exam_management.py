from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError
from typing import Any, Dict, Optional

from examportal.context import Portal
from examportal.dependencies import get_portal, require_admin, backend_http_error
from examportal.schemas import Exam, ExamFAQ, ResourceGroup, SyllabusSection
from examportal.services.backend_client import BackendError
from examportal.services.exam_catalog import split_by_status
from examportal.services.forms import EXAM_FIELDS, ExamDraft, FormError

router = APIRouter(tags=["Exam Management"], dependencies=[Depends(require_admin)])

SECTION_MODELS = {
    "syllabus": SyllabusSection,
    "resources": ResourceGroup,
    "faqs": ExamFAQ,
}


def open_draft(portal: Portal) -> ExamDraft:
    draft = portal.exam_form.draft
    if draft is None:
        raise HTTPException(status_code=404, detail="No exam form is open")
    return draft


def section_model(section: str):
    try:
        return SECTION_MODELS[section]
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown section {section}")


# =============================================================================
# Create / edit form
# =============================================================================

@router.post("/draft")
async def open_exam_form(exam_id: Optional[str] = None, portal: Portal = Depends(get_portal)):
    """
    Open the exam form: blank for a new exam, or pre-filled to edit `exam_id`.
    """
    exam: Optional[Exam] = None
    if exam_id:
        exam = portal.catalog.get(exam_id)
        if exam is None:
            try:
                exam = await portal.client.get_exam(exam_id)
            except BackendError as e:
                raise backend_http_error(e)
    return portal.exam_form.open(exam).describe()


@router.get("/draft")
async def get_exam_form(portal: Portal = Depends(get_portal)):
    return open_draft(portal).describe()


@router.delete("/draft")
async def cancel_exam_form(portal: Portal = Depends(get_portal)):
    portal.exam_form.cancel()
    return {"success": True}


@router.put("/draft/fields")
async def update_exam_fields(values: Dict[str, Any], portal: Portal = Depends(get_portal)):
    draft = open_draft(portal)
    unknown = sorted(set(values) - set(EXAM_FIELDS))
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown fields: {', '.join(unknown)}")
    try:
        Exam(**{**draft.fields, **values})
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))
    draft.set_fields(**values)
    return draft.describe()


@router.post("/draft/submit")
async def submit_exam_form(portal: Portal = Depends(get_portal)):
    """
    Create or update the exam. On failure the draft stays open for fixing.
    """
    try:
        saved = await portal.exam_form.submit()
    except FormError as e:
        raise HTTPException(status_code=404, detail=str(e))
    notice = portal.notices.current()
    if not saved:
        raise HTTPException(status_code=400, detail=notice.message if notice else "Failed to save exam")
    await portal.catalog.load()
    return {"success": True, "message": notice.message if notice else None}


@router.post("/draft/{section}")
async def add_section_item(section: str, values: Dict[str, Any] = Body(default={}),
                           portal: Portal = Depends(get_portal)):
    draft = open_draft(portal)
    model = section_model(section)
    try:
        item = model.model_validate(values)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))
    key = draft.section(section).add(item)
    return {"key": key, **draft.describe()}


@router.put("/draft/{section}/{key}")
async def update_section_item(section: str, key: str, values: Dict[str, Any],
                              portal: Portal = Depends(get_portal)):
    draft = open_draft(portal)
    model = section_model(section)
    items = draft.section(section)
    try:
        current = items.get(key)
        updated = model.model_validate({**current.model_dump(), **values})
    except KeyError:
        raise HTTPException(status_code=404, detail="Item not found")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))
    items.update(key, **dict(updated))
    return draft.describe()


@router.delete("/draft/{section}/{key}")
async def remove_section_item(section: str, key: str, portal: Portal = Depends(get_portal)):
    draft = open_draft(portal)
    section_model(section)
    try:
        draft.section(section).remove(key)
    except KeyError:
        raise HTTPException(status_code=404, detail="Item not found")
    return draft.describe()


@router.delete("/draft/{section}/at/{index}")
async def remove_section_item_at(section: str, index: int, portal: Portal = Depends(get_portal)):
    """Remove by position, for rows the client only knows by their place in the list."""
    draft = open_draft(portal)
    section_model(section)
    if index < 0:
        raise HTTPException(status_code=404, detail="Item not found")
    try:
        draft.section(section).remove_at(index)
    except IndexError:
        raise HTTPException(status_code=404, detail="Item not found")
    return draft.describe()


@router.post("/draft/{section}/{key}/move")
async def move_section_item(section: str, key: str, index: int = Body(..., embed=True),
                            portal: Portal = Depends(get_portal)):
    draft = open_draft(portal)
    section_model(section)
    try:
        draft.section(section).move(key, index)
    except KeyError:
        raise HTTPException(status_code=404, detail="Item not found")
    return draft.describe()


@router.get("")
async def list_managed_exams(portal: Portal = Depends(get_portal)):
    """Active and inactive exams, refetched every time the view opens."""
    return split_by_status(await portal.catalog.load())


@router.patch("/{exam_id}/status")
async def toggle_status(exam_id: str, portal: Portal = Depends(get_portal)):
    try:
        status = await portal.client.toggle_exam_status(exam_id)
    except BackendError as e:
        # Local copy may be stale; resync before reporting
        await portal.catalog.load()
        raise backend_http_error(e)
    portal.catalog.set_status(exam_id, status)
    return {"id": exam_id, "status": status}


@router.delete("/{exam_id}")
async def delete_exam(exam_id: str, portal: Portal = Depends(get_portal)):
    try:
        await portal.client.delete_exam(exam_id)
    except BackendError as e:
        raise backend_http_error(e)
    portal.catalog.discard(exam_id)
    return {"success": True}
