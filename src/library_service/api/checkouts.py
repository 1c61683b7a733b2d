"""
Checkout endpoints.

Members see and act on their own checkouts only; staff on everyone's. The
ownership check happens here, before the circulation service is called.
"""

from fastapi import APIRouter, Depends, Query

from ..database.repository import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    PaginatedResponse,
    PaginationParams,
)
from ..models.checkout import (
    CheckoutByIsbnRequest,
    CheckoutFilter,
    CheckoutStatus,
    CheckoutWithDetails,
    CreateCheckoutRequest,
    RenewCheckoutRequest,
    ReturnCheckoutRequest,
)
from ..models.user import User
from ..services.circulation import CirculationService
from .dependencies import circulation_service, current_user, ensure_self_or_staff, staff_user

router = APIRouter(prefix="/checkouts", tags=["checkouts"])


def _owned_checkout(
    checkout_id: str, caller: User, circulation: CirculationService
) -> CheckoutWithDetails:
    checkout = circulation.get(checkout_id)
    ensure_self_or_staff(caller, checkout.user_id)
    return checkout


@router.get("", response_model=PaginatedResponse[CheckoutWithDetails])
def list_checkouts(
    user_id: str | None = None,
    book_id: str | None = None,
    status: CheckoutStatus | None = None,
    overdue: bool | None = None,
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
    caller: User = Depends(current_user),
    circulation: CirculationService = Depends(circulation_service),
):
    if not caller.is_staff:
        user_id = caller.id
    return circulation.search(
        CheckoutFilter(user_id=user_id, book_id=book_id, status=status, overdue=overdue),
        PaginationParams(limit=limit, offset=offset),
    )


@router.get("/overdue", response_model=list[CheckoutWithDetails])
def list_overdue_checkouts(
    _: User = Depends(staff_user),
    circulation: CirculationService = Depends(circulation_service),
):
    return circulation.list_overdue()


@router.get("/user/{user_id}", response_model=list[CheckoutWithDetails])
def list_user_checkouts(
    user_id: str,
    caller: User = Depends(current_user),
    circulation: CirculationService = Depends(circulation_service),
):
    ensure_self_or_staff(caller, user_id)
    return circulation.list_for_user(user_id)


@router.get("/{checkout_id}", response_model=CheckoutWithDetails)
def get_checkout(
    checkout_id: str,
    caller: User = Depends(current_user),
    circulation: CirculationService = Depends(circulation_service),
):
    return _owned_checkout(checkout_id, caller, circulation)


@router.post("", response_model=CheckoutWithDetails, status_code=201)
def create_checkout(
    payload: CreateCheckoutRequest,
    caller: User = Depends(current_user),
    circulation: CirculationService = Depends(circulation_service),
):
    user_id = payload.user_id or caller.id
    ensure_self_or_staff(caller, user_id)
    return circulation.checkout(user_id=user_id, book_id=payload.book_id, due_date=payload.due_date)


@router.post("/checkout", response_model=CheckoutWithDetails, status_code=201)
def checkout_by_isbn(
    payload: CheckoutByIsbnRequest,
    caller: User = Depends(current_user),
    circulation: CirculationService = Depends(circulation_service),
):
    user_id = payload.user_id or caller.id
    ensure_self_or_staff(caller, user_id)
    return circulation.checkout(user_id=user_id, isbn=payload.isbn, due_date=payload.due_date)


@router.post("/return", response_model=CheckoutWithDetails)
def return_checkout(
    payload: ReturnCheckoutRequest,
    caller: User = Depends(current_user),
    circulation: CirculationService = Depends(circulation_service),
):
    _owned_checkout(payload.checkout_id, caller, circulation)
    return circulation.return_checkout(checkout_id=payload.checkout_id)


@router.post("/renew", response_model=CheckoutWithDetails)
def renew_checkout(
    payload: RenewCheckoutRequest,
    caller: User = Depends(current_user),
    circulation: CirculationService = Depends(circulation_service),
):
    _owned_checkout(payload.checkout_id, caller, circulation)
    return circulation.renew(checkout_id=payload.checkout_id)
