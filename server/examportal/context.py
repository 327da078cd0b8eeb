"""
Per-application state.

Everything a browser tab would have held (session, fetched exams, open
forms, live task feeds) lives on one Portal object created with the app and
reached from routes through dependencies.
"""
from dataclasses import dataclass
from typing import Optional

import httpx

from examportal.config import Settings
from examportal.database import init_db, make_engine, make_session_factory
from examportal.storage import KeyValueStorage
from examportal.services.backend_client import BackendClient
from examportal.services.exam_catalog import ExamCatalog
from examportal.services.forms import ExamForm, MockTestForm, NoticeBoard
from examportal.services.registration import RegistrationWizard
from examportal.services.session import SessionContext
from examportal.services.sse_manager import SSEConnectionManager
from examportal.services.task_feed import TaskFeedHub


@dataclass
class Portal:
    settings: Settings
    storage: KeyValueStorage
    session: SessionContext
    client: BackendClient
    catalog: ExamCatalog
    notices: NoticeBoard
    wizard: RegistrationWizard
    exam_form: ExamForm
    mock_test_form: MockTestForm
    sse_manager: SSEConnectionManager
    feeds: TaskFeedHub

    async def close(self) -> None:
        await self.feeds.shutdown()
        await self.client.aclose()
        self.session.close()


def build_portal(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> Portal:
    engine = make_engine(settings.database_url)
    init_db(bind=engine)
    storage = KeyValueStorage(make_session_factory(engine))
    session = SessionContext(storage)

    client = BackendClient(
        settings.backend_url,
        token_provider=lambda: session.token,
        transport=transport,
        timeout=settings.backend_timeout_seconds,
    )
    notices = NoticeBoard(duration=settings.notice_seconds)
    sse_manager = SSEConnectionManager()

    return Portal(
        settings=settings,
        storage=storage,
        session=session,
        client=client,
        catalog=ExamCatalog(client),
        notices=notices,
        wizard=RegistrationWizard(client, session, notices, redirect_delay=settings.signup_redirect_seconds),
        exam_form=ExamForm(client, notices),
        mock_test_form=MockTestForm(client, notices),
        sse_manager=sse_manager,
        feeds=TaskFeedHub(sse_manager, interval=settings.poll_interval_seconds),
    )
