"""Invoice editing guarded by edit locks."""
from __future__ import annotations

import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from invoicelocks.core.auth import Principal
from invoicelocks.core.exceptions import InvoiceLockedError
from invoicelocks.models import Invoice
from invoicelocks.schemas import InvoiceUpdate
from invoicelocks.services.lock_coordinator import AcquireResult, LockCoordinator

logger = logging.getLogger(__name__)


def get_invoice(db: Session, invoice_id: int) -> Invoice:
    invoice = db.get(Invoice, invoice_id)
    if invoice is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Invoice with ID {invoice_id} not found.",
        )
    return invoice


def acquire_invoice_lock(
    db: Session, coordinator: LockCoordinator, invoice_id: int, principal: Principal
) -> AcquireResult:
    get_invoice(db, invoice_id)
    return coordinator.acquire(invoice_id, principal.id, principal.name)


def release_invoice_lock(coordinator: LockCoordinator, invoice_id: int, principal: Principal) -> bool:
    return coordinator.release(invoice_id, principal.id)


def update_invoice(
    db: Session,
    coordinator: LockCoordinator,
    invoice_id: int,
    payload: InvoiceUpdate,
    principal: Principal,
) -> Invoice:
    """Apply ``payload`` unless another user holds the invoice's edit lock.

    The caller's own lock, if any, is released once the change is committed.
    """

    holder = coordinator.inspect(invoice_id)
    if holder is not None and not holder.held_by(principal.id):
        raise InvoiceLockedError(holder)

    invoice = get_invoice(db, invoice_id)
    changes = payload.model_dump(exclude_unset=True)
    due_date = changes.get("due_date")
    if due_date is not None and due_date < invoice.issue_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Due date cannot be before the issue date.",
        )

    for field, value in changes.items():
        setattr(invoice, field, value)
    invoice.modified_by_id = principal.id

    try:
        db.flush()
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info(
        "Updated invoice",
        extra={"invoice_id": invoice_id, "user_id": principal.id, "fields": sorted(changes)},
    )

    coordinator.release(invoice_id, principal.id)
    return invoice
