from fastapi import APIRouter, Depends, Query, Response

from ..database.repository import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    PaginatedResponse,
    PaginationParams,
)
from ..models.user import User, UserCreate, UserRole, UserSearchParams, UserUpdate
from ..services.auth import PermissionDeniedError
from ..services.catalog import CatalogService
from .dependencies import catalog_service, current_user, ensure_self_or_staff, staff_user

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=PaginatedResponse[User])
def list_users(
    query: str | None = None,
    role: UserRole | None = None,
    is_active: bool | None = None,
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
    _: User = Depends(staff_user),
    catalog: CatalogService = Depends(catalog_service),
):
    return catalog.search_users(
        UserSearchParams(query=query, role=role, is_active=is_active),
        PaginationParams(limit=limit, offset=offset),
    )


@router.get("/me", response_model=User)
def get_me(user: User = Depends(current_user)):
    return user


@router.get("/email/{email}", response_model=User)
def get_user_by_email(
    email: str,
    caller: User = Depends(current_user),
    catalog: CatalogService = Depends(catalog_service),
):
    if not caller.is_staff and caller.email != email.strip().lower():
        raise PermissionDeniedError(f"User {caller.id} may not look up {email}")
    return catalog.get_user_by_email(email)


@router.get("/{user_id}", response_model=User)
def get_user(
    user_id: str,
    caller: User = Depends(current_user),
    catalog: CatalogService = Depends(catalog_service),
):
    ensure_self_or_staff(caller, user_id)
    return catalog.get_user(user_id)


@router.post("", response_model=User, status_code=201)
def create_user(
    payload: UserCreate,
    _: User = Depends(staff_user),
    catalog: CatalogService = Depends(catalog_service),
):
    return catalog.create_user(payload)


@router.put("/{user_id}", response_model=User)
def update_user(
    user_id: str,
    payload: UserUpdate,
    caller: User = Depends(current_user),
    catalog: CatalogService = Depends(catalog_service),
):
    ensure_self_or_staff(caller, user_id)
    if not caller.is_staff and payload.staff_fields_set():
        raise PermissionDeniedError(
            f"User {caller.id} may not change {sorted(payload.staff_fields_set())}"
        )
    return catalog.update_user(user_id, payload)


@router.delete("/{user_id}", status_code=204)
def delete_user(
    user_id: str,
    _: User = Depends(staff_user),
    catalog: CatalogService = Depends(catalog_service),
):
    catalog.delete_user(user_id)
    return Response(status_code=204)
