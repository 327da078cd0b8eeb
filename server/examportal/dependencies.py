from fastapi import Depends, HTTPException, Request, status

from examportal.context import Portal
from examportal.models.user import UserRole
from examportal.services.backend_client import BackendError
from examportal.services.session import SessionContext


def get_portal(request: Request) -> Portal:
    return request.app.state.portal


def get_session(portal: Portal = Depends(get_portal)) -> SessionContext:
    return portal.session


def require_roles(*roles: UserRole):
    """Dependency allowing only a logged-in user with one of `roles`."""

    def checker(session: SessionContext = Depends(get_session)) -> SessionContext:
        if not session.is_authenticated:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Please log in first",
            )
        if session.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{' or '.join(role.value for role in roles).title()} access required",
            )
        return session

    return checker


require_admin = require_roles(UserRole.ADMIN)


def backend_http_error(e: BackendError) -> HTTPException:
    """Hand the backend's status and message straight to our caller."""
    return HTTPException(status_code=e.status_code, detail=e.message)
