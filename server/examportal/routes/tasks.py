from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response, StreamingResponse
from typing import List, Optional
import asyncio
import mimetypes
import os

from examportal.context import Portal
from examportal.dependencies import get_portal, require_admin, require_roles, backend_http_error
from examportal.models.user import UserRole
from examportal.schemas import CommentCreate, Task, TaskStatusUpdate
from examportal.services.backend_client import BackendError
from examportal.services.forms import FormError, TaskDraft
from examportal.services.session import SessionContext
from examportal.services.sse_manager import PING, feed_event, format_event
from examportal.services.task_feed import NO_USER_ID_MESSAGE, feed_key, filter_tasks, snapshot_payload

router = APIRouter(tags=["Tasks"])

require_staff = require_roles(UserRole.ADMIN, UserRole.SALES)


def assignee_for(session: SessionContext, assigned_to: Optional[str]) -> Optional[str]:
    """Sales members only ever see their own tasks."""
    if session.role == UserRole.SALES:
        if not session.user_id:
            raise HTTPException(status_code=400, detail=NO_USER_ID_MESSAGE)
        return session.user_id
    return assigned_to


async def read_attachments(files: Optional[List[UploadFile]]):
    attachments = []
    for upload in files or []:
        content = await upload.read()
        attachments.append((
            "attachments",
            upload.filename or "attachment",
            content,
            upload.content_type or "application/octet-stream",
        ))
    return attachments


@router.get("", response_model=List[Task])
async def list_tasks(
    assigned_to: Optional[str] = Query(None, alias="assignedTo"),
    status: str = "all",
    session: SessionContext = Depends(require_staff),
    portal: Portal = Depends(get_portal),
):
    try:
        tasks = await portal.client.list_tasks(assignee_for(session, assigned_to))
    except BackendError as e:
        raise backend_http_error(e)
    return filter_tasks(tasks, status)


@router.get("/stream")
async def stream_tasks(
    assigned_to: Optional[str] = Query(None, alias="assignedTo"),
    task_id: Optional[str] = Query(None, alias="taskId"),
    session: SessionContext = Depends(require_staff),
    portal: Portal = Depends(get_portal),
):
    """
    SSE feed of a task list (or one task) kept fresh by polling the backend.

    The poller for a feed runs while at least one stream is open on it.
    """
    assigned_to = assignee_for(session, assigned_to)
    key = feed_key(assigned_to=assigned_to, task_id=task_id)
    client = portal.client

    async def fetch():
        if task_id:
            return await client.get_task(task_id)
        return await client.list_tasks(assigned_to)

    async def event_generator():
        queue = await portal.sse_manager.connect(key)
        poller = await portal.feeds.acquire(key, fetch)
        try:
            if poller.snapshot is not None:
                yield format_event(feed_event(key, "tasks", snapshot_payload(poller.snapshot)))
            while True:
                try:
                    yield await asyncio.wait_for(queue.get(), timeout=portal.settings.sse_ping_seconds)
                except asyncio.TimeoutError:
                    # Send ping to keep connection alive
                    yield PING
        except asyncio.CancelledError:
            pass
        finally:
            portal.sse_manager.disconnect(key, queue)
            await portal.feeds.release(key)

    return StreamingResponse(event_generator(), media_type="text/event-stream")


@router.get("/attachments", dependencies=[Depends(require_staff)])
async def get_attachment(url: str, portal: Portal = Depends(get_portal)):
    """Proxy an attachment the backend serves under /uploads/."""
    if not url.startswith("/uploads/"):
        raise HTTPException(status_code=400, detail="Not an attachment URL")
    try:
        content = await portal.client.download(url)
    except BackendError as e:
        raise backend_http_error(e)
    filename = os.path.basename(url)
    media_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{task_id}", response_model=Task, dependencies=[Depends(require_staff)])
async def get_task(task_id: str, portal: Portal = Depends(get_portal)):
    try:
        return await portal.client.get_task(task_id)
    except BackendError as e:
        raise backend_http_error(e)


@router.post("", response_model=Task)
async def create_task(
    title: str = Form(...),
    description: str = Form(""),
    assigned_to: str = Form("", alias="assignedTo"),
    assigned_date: Optional[str] = Form(None, alias="assignedDate"),
    due_date: str = Form("", alias="dueDate"),
    priority: str = Form("medium"),
    status: str = Form("pending"),
    files: Optional[List[UploadFile]] = File(None),
    session: SessionContext = Depends(require_admin),
    portal: Portal = Depends(get_portal),
):
    """
    Create and assign a task (multipart, optional attachments).
    """
    draft = TaskDraft.for_role(session.role)
    draft.title = title
    draft.description = description
    draft.assigned_to = assigned_to
    draft.assigned_date = assigned_date or draft.assigned_date
    draft.due_date = due_date
    draft.priority = priority
    draft.status = status
    try:
        draft.validate()
    except FormError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        task = await portal.client.create_task(draft.form_fields(), await read_attachments(files))
    except BackendError as e:
        raise backend_http_error(e)
    await portal.feeds.add(task)
    return task


@router.put("/{task_id}", response_model=Task)
async def update_task(
    task_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    assigned_to: Optional[str] = Form(None, alias="assignedTo"),
    assigned_date: Optional[str] = Form(None, alias="assignedDate"),
    due_date: Optional[str] = Form(None, alias="dueDate"),
    priority: Optional[str] = Form(None),
    status: Optional[str] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    session: SessionContext = Depends(require_admin),
    portal: Portal = Depends(get_portal),
):
    """
    Edit a task; fields left out keep their current value.
    """
    try:
        draft = TaskDraft.from_task(await portal.client.get_task(task_id))
    except BackendError as e:
        raise backend_http_error(e)

    changes = {
        "title": title,
        "description": description,
        "assigned_to": assigned_to,
        "assigned_date": assigned_date,
        "due_date": due_date,
        "priority": priority,
        "status": status,
    }
    for name, value in changes.items():
        if value is not None:
            setattr(draft, name, value)
    try:
        draft.validate()
    except FormError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        task = await portal.client.update_task(task_id, draft.form_fields(), await read_attachments(files))
    except BackendError as e:
        raise backend_http_error(e)
    await portal.feeds.apply(task)
    return task


@router.patch("/{task_id}/status", response_model=Task, dependencies=[Depends(require_staff)])
async def update_task_status(task_id: str, update: TaskStatusUpdate, portal: Portal = Depends(get_portal)):
    try:
        task = await portal.client.update_task_status(task_id, update.status.value)
    except BackendError as e:
        raise backend_http_error(e)
    await portal.feeds.apply(task)
    return task


@router.delete("/{task_id}", dependencies=[Depends(require_admin)])
async def delete_task(task_id: str, portal: Portal = Depends(get_portal)):
    try:
        await portal.client.delete_task(task_id)
    except BackendError as e:
        raise backend_http_error(e)
    await portal.feeds.drop(task_id)
    return {"success": True}


@router.post("/{task_id}/comments", response_model=Task)
async def add_comment(
    task_id: str,
    comment: CommentCreate,
    session: SessionContext = Depends(require_staff),
    portal: Portal = Depends(get_portal),
):
    if not comment.text.strip():
        raise HTTPException(status_code=400, detail="Comment cannot be empty")
    try:
        task = await portal.client.add_comment(
            task_id,
            comment.text,
            author_id=session.user_id,
            author_name=session.user_name,
            author_type=session.role.value,
        )
    except BackendError as e:
        raise backend_http_error(e)
    await portal.feeds.apply(task)
    return task
