"""Invoice edit-lock endpoints."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette import status

from invoicelocks.core.auth import Principal, get_current_principal
from invoicelocks.core.database import get_db
from invoicelocks.core.exceptions import InvoiceLockedError
from invoicelocks.schemas import (
    DEFAULT_ERROR_RESPONSES,
    InvoiceRead,
    InvoiceUpdate,
    LockResponse,
    ReleaseResponse,
    locked_message,
)
from invoicelocks.services import invoice_service
from invoicelocks.services.lock_coordinator import LockCoordinator
from invoicelocks.services.locks import get_lock_coordinator

router = APIRouter()


@router.put(
    "/{invoice_id}",
    response_model=InvoiceRead,
    responses={**DEFAULT_ERROR_RESPONSES, status.HTTP_409_CONFLICT: {"model": LockResponse}},
)
def update_invoice(
    invoice_id: int,
    payload: InvoiceUpdate,
    db: Session = Depends(get_db),
    coordinator: LockCoordinator = Depends(get_lock_coordinator),
    principal: Principal = Depends(get_current_principal),
):
    """Update an invoice unless another user is editing it."""

    try:
        invoice = invoice_service.update_invoice(db, coordinator, invoice_id, payload, principal)
    except InvoiceLockedError as exc:
        body = LockResponse.from_lock(exc.lock, now=coordinator.now(), message=locked_message(exc.lock))
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=body.model_dump(mode="json"))
    return InvoiceRead.model_validate(invoice)


@router.post("/{invoice_id}/lock", response_model=LockResponse, responses=DEFAULT_ERROR_RESPONSES)
def acquire_lock(
    invoice_id: int,
    db: Session = Depends(get_db),
    coordinator: LockCoordinator = Depends(get_lock_coordinator),
    principal: Principal = Depends(get_current_principal),
) -> LockResponse:
    """Acquire or extend the edit lock; ``status`` tells whether it was denied."""

    result = invoice_service.acquire_invoice_lock(db, coordinator, invoice_id, principal)
    return LockResponse.from_result(result, now=coordinator.now())


@router.get("/{invoice_id}/lock", response_model=Optional[LockResponse], responses=DEFAULT_ERROR_RESPONSES)
def inspect_lock(
    invoice_id: int,
    coordinator: LockCoordinator = Depends(get_lock_coordinator),
    principal: Principal = Depends(get_current_principal),
) -> Optional[LockResponse]:
    """Return the active lock on an invoice, or ``null``."""

    lock = coordinator.inspect(invoice_id)
    if lock is None:
        return None
    return LockResponse.from_lock(lock, now=coordinator.now(), message="Invoice is currently locked.")


@router.delete("/{invoice_id}/lock", response_model=ReleaseResponse, responses=DEFAULT_ERROR_RESPONSES)
def release_lock(
    invoice_id: int,
    coordinator: LockCoordinator = Depends(get_lock_coordinator),
    principal: Principal = Depends(get_current_principal),
) -> ReleaseResponse:
    """Release the caller's lock; ``released`` is false when nothing was removed."""

    released = invoice_service.release_invoice_lock(coordinator, invoice_id, principal)
    return ReleaseResponse(invoice_id=invoice_id, released=released)
