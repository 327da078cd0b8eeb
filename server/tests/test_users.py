import pytest

from examportal.schemas import User
from examportal.services.users import filter_users, tab_user_type


def make_users():
    return [
        User.model_validate({"_id": "a-1", "name": "Ada", "userType": "admin"}),
        User.model_validate({"_id": "sc-1", "name": "Greenfield", "userType": "school", "schoolName": "Greenfield High"}),
        User.model_validate({"_id": "st-1", "name": "Sam", "userType": "student", "schoolId": "sc-1"}),
        User.model_validate({"_id": "st-2", "name": "Tia", "userType": "student", "schoolName": " greenfield high "}),
        User.model_validate({"_id": "st-3", "name": "Uma", "userType": "student", "school": {"schoolName": "Greenfield High"}}),
        User.model_validate({"_id": "st-4", "name": "Vic", "userType": "student", "schoolName": "Riverside"}),
        User.model_validate({"_id": "sa-1", "name": "Sal", "userType": "sales"}),
    ]


def test_tab_user_type():
    assert tab_user_type("students") == "student"
    assert tab_user_type("sales") == "sales"
    assert tab_user_type("all") is None
    assert tab_user_type("all", "school") == "school"
    with pytest.raises(ValueError):
        tab_user_type("principals")


def test_tabs_filter_by_type():
    users = make_users()
    assert len(filter_users(users)) == 7
    assert [u.id for u in filter_users(users, "admins")] == ["a-1"]
    assert [u.id for u in filter_users(users, "students")] == ["st-1", "st-2", "st-3", "st-4"]


def test_students_tab_narrows_to_school():
    users = make_users()
    school = users[1]
    assert [u.id for u in filter_users(users, "students", school)] == ["st-1", "st-2", "st-3"]


def test_school_without_name_matches_by_id_only():
    users = make_users()
    school = User.model_validate({"_id": "sc-2", "userType": "school"})
    assert filter_users(users, "students", school) == []
