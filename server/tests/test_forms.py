import pytest

from conftest import exam_json
from examportal.models.user import UserRole
from examportal.schemas import Exam, ExamFAQ, MockQuestion, SyllabusSection, Task
from examportal.services.forms import (
    ExamDraft,
    ExamForm,
    FormError,
    KeyedList,
    MockTestForm,
    TaskDraft,
)


def faq_list(*questions):
    return KeyedList(ExamFAQ, [ExamFAQ(question=q) for q in questions])


def test_remove_at_shifts_later_items():
    faqs = faq_list("A", "B", "C")
    faqs.remove_at(1)
    assert [f.question for f in faqs] == ["A", "C"]


def test_keys_survive_removal_of_earlier_items():
    faqs = faq_list("A", "B", "C")
    first, second, third = faqs.keys()
    faqs.remove(first)
    faqs.update(third, answer="yes")
    assert faqs.get(third).question == "C"
    assert faqs.get(third).answer == "yes"
    assert faqs.keys() == [second, third]


def test_move_and_unknown_key():
    faqs = faq_list("A", "B", "C")
    key = faqs.keys()[2]
    faqs.move(key, 0)
    assert [f.question for f in faqs] == ["C", "A", "B"]
    with pytest.raises(KeyError):
        faqs.remove("nope")


def test_add_uses_factory():
    sections = KeyedList(SyllabusSection)
    key = sections.add()
    assert sections.get(key) == SyllabusSection()
    assert len(sections) == 1


def test_notices_expire_except_questions(notices, clock):
    notices.show("Saved", "success")
    clock.advance(2.9)
    assert notices.current().message == "Saved"
    clock.advance(0.2)
    assert notices.current() is None

    notices.show("Delete this exam?", "question")
    clock.advance(60)
    assert notices.current().kind == "question"
    notices.dismiss()
    assert notices.current() is None


def test_exam_draft_round_trips_lists():
    exam = Exam.model_validate(exam_json(
        "e-1", "Math Olympiad",
        syllabus=[{"title": "Algebra", "topics": ["Equations"]}],
        faqs=[{"question": "Fee?", "answer": "None"}],
    ))
    draft = ExamDraft(exam)
    assert draft.is_editing
    draft.faqs.add(ExamFAQ(question="When?", answer="Soon"))
    draft.set_fields(title="Math Olympiad 2026")
    built = draft.to_exam()
    assert built.id == "e-1"
    assert built.title == "Math Olympiad 2026"
    assert [f.question for f in built.faqs] == ["Fee?", "When?"]
    assert built.syllabus[0].topics == ["Equations"]

    described = draft.describe()
    assert described["fields"]["title"] == "Math Olympiad 2026"
    assert described["faqs"][1]["key"] == draft.faqs.keys()[1]


def test_exam_draft_rejects_unknown_field():
    with pytest.raises(KeyError):
        ExamDraft().set_fields(colour="red")


@pytest.mark.asyncio
async def test_exam_form_create_success(backend, client, notices):
    backend.on("POST", "/api/exams/create", status=201, json={"message": "ok"})
    form = ExamForm(client, notices)
    draft = form.open()
    draft.set_fields(title="Science Quiz", subject="Science")
    assert await form.submit()
    assert form.draft is None
    assert notices.current().message == "Exam created successfully!"
    body = backend.json_body("POST", "/api/exams/create")
    assert body["title"] == "Science Quiz"
    assert "registrationDeadline" in body


@pytest.mark.asyncio
async def test_exam_form_update_failure_keeps_draft(backend, client, notices):
    backend.on("PUT", "/api/exams/e-1", status=400, json={"message": "Title taken"})
    form = ExamForm(client, notices)
    form.open(Exam.model_validate(exam_json("e-1", "Math Olympiad")))
    assert not await form.submit()
    assert form.draft is not None
    assert notices.current().kind == "error"
    assert notices.current().message == "Title taken"


@pytest.mark.asyncio
async def test_exam_form_without_draft():
    form = ExamForm(client=None, notices=None)
    with pytest.raises(FormError):
        await form.submit()


@pytest.mark.asyncio
async def test_mock_test_form(backend, client, notices):
    backend.on("POST", "/api/mock-tests", status=201, json={"message": "ok"})
    form = MockTestForm(client, notices)
    form.title = "Practice 1"
    key = form.questions.keys()[0]
    form.questions.update(key, question_text="2 + 2?")
    for index, text in enumerate(["3", "4", "5", "22"]):
        form.set_option(key, index, text)
    form.set_correct(key, 1)
    with pytest.raises(FormError):
        form.set_correct(key, 4)

    assert await form.submit()
    body = backend.json_body("POST", "/api/mock-tests")
    question = body["questions"][0]
    assert question["questionText"] == "2 + 2?"
    assert [o["text"] for o in question["options"]] == ["3", "4", "5", "22"]
    assert question["correctAnswerIndex"] == 1
    assert form.title == ""
    assert len(form.questions) == 1
    assert form.questions.values()[0] == MockQuestion()


def test_task_draft_defaults_and_validation():
    draft = TaskDraft.for_role(UserRole.ADMIN)
    assert draft.assigned_by == "Admin"
    with pytest.raises(FormError, match="Please select a team member"):
        draft.validate()
    draft.assigned_to = "s-1"
    draft.validate()
    fields = draft.form_fields()
    assert fields["assignedTo"] == "s-1"
    assert fields["priority"] == "medium"


def test_task_draft_from_task():
    task = Task.model_validate({"_id": "t-1", "title": "Visit", "assignedTo": "s-2", "status": "in-progress"})
    fields = TaskDraft.from_task(task).form_fields()
    assert fields["title"] == "Visit"
    assert fields["status"] == "in-progress"
