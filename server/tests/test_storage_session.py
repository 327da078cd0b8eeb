import pytest

from examportal.models.user import UserRole
from examportal.services.session import SessionContext
from examportal.storage import ROLE_KEY, TOKEN_KEY, USER_ID_KEY, USER_NAME_KEY


def test_storage_set_get_remove(storage):
    assert storage.get_item("missing") is None
    storage.set_item("a", "1")
    storage.set_item("a", "2")
    assert storage.get_item("a") == "2"
    storage.remove_item("a")
    assert storage.get_item("a") is None


def test_storage_notifies_changed_keys(storage):
    seen = []
    unsubscribe = storage.subscribe(seen.append)
    storage.set_many({"x": "1", "y": "2"})
    storage.remove_many(["x"])
    unsubscribe()
    storage.set_item("z", "3")
    assert seen == [["x", "y"], ["x"]]


def test_fresh_session_is_logged_out(session):
    assert session.token is None
    assert session.role is None
    assert not session.is_authenticated


def test_login_then_logout(session, storage):
    session.login("tok-1", UserRole.ADMIN)
    assert session.is_authenticated
    assert session.role == UserRole.ADMIN
    assert storage.get_item(TOKEN_KEY) == "tok-1"
    assert storage.get_item(ROLE_KEY) == "admin"

    session.remember_profile(name="Ada", user_id="u-9")
    session.logout()
    assert session.token is None
    assert session.role is None
    assert not session.is_authenticated
    for key in (TOKEN_KEY, ROLE_KEY, USER_NAME_KEY, USER_ID_KEY):
        assert storage.get_item(key) is None


def test_login_with_unknown_role_changes_nothing(session, storage):
    with pytest.raises(ValueError):
        session.login("tok-1", "principal")
    assert storage.get_item(TOKEN_KEY) is None
    assert not session.is_authenticated


def test_login_with_empty_token_rejected(session):
    with pytest.raises(ValueError):
        session.login("", UserRole.STUDENT)
    assert not session.is_authenticated


def test_session_restored_from_storage(storage):
    SessionContext(storage).login("tok-2", "school")
    restored = SessionContext(storage)
    assert restored.token == "tok-2"
    assert restored.role == UserRole.SCHOOL


def test_other_holder_logout_propagates(storage):
    first = SessionContext(storage)
    second = SessionContext(storage)
    first.login("tok-3", "sales")
    assert second.token == "tok-3"
    assert second.role == UserRole.SALES
    first.logout()
    assert not second.is_authenticated


def test_unknown_stored_role_reads_as_logged_out(storage):
    storage.set_many({TOKEN_KEY: "tok", ROLE_KEY: "principal"})
    assert not SessionContext(storage).is_authenticated


def test_profile_strings(session):
    session.login("tok", "student")
    session.remember_profile(name="Sam", user_id="42", exam_name="Math Olympiad")
    assert session.user_name == "Sam"
    assert session.user_id == "42"
    assert session.registered_exam == "Math Olympiad"
