from fastapi import Depends, Header, Request

from ..models.user import User
from ..runtime import ServiceContainer
from ..services.auth import PermissionDeniedError, bearer_token, resolve_principal
from ..services.catalog import CatalogService
from ..services.circulation import CirculationService


def container(request: Request) -> ServiceContainer:
    return request.app.state.container


def circulation_service(svc: ServiceContainer = Depends(container)) -> CirculationService:
    return svc.circulation


def catalog_service(svc: ServiceContainer = Depends(container)) -> CatalogService:
    return svc.catalog


def current_user(
    authorization: str | None = Header(default=None),
    svc: ServiceContainer = Depends(container),
) -> User:
    """The caller, verified by the auth service and mapped to a local account."""
    token = bearer_token(authorization)
    with svc.db.session_scope() as session:
        return resolve_principal(svc.verifier, token, session, svc.config)


def staff_user(user: User = Depends(current_user)) -> User:
    if not user.is_staff:
        raise PermissionDeniedError(f"User {user.id} is not staff")
    return user


def ensure_self_or_staff(caller: User, user_id: str) -> None:
    """Members may only act on their own records."""
    if not caller.is_staff and caller.id != user_id:
        raise PermissionDeniedError(f"User {caller.id} may not act for user {user_id}")
