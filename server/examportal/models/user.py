import enum


class UserRole(str, enum.Enum):
    STUDENT = "student"
    SCHOOL = "school"
    ADMIN = "admin"
    SALES = "sales"


# Roles a visitor may sign up as; students and sales staff are registered
# in bulk by admins.
SIGNUP_ROLES = (UserRole.ADMIN, UserRole.SCHOOL)


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
