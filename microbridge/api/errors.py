from fastapi import HTTPException, status

from microbridge.core.auth import Principal
from microbridge.services.errors import ReviewWorkflowError
from microbridge.services.repository import RepositoryUnavailableError


def require_actor(principal: Principal, scopes: set[str]) -> str:
    try:
        principal.require_scopes(scopes)
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    if not principal.actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid principal")
    return principal.actor_id


def to_http_exception(exc: ReviewWorkflowError | RepositoryUnavailableError) -> HTTPException:
    if isinstance(exc, RepositoryUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=exc.status_code, detail=str(exc))
