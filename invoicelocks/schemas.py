"""Pydantic models exposed by the API."""
from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from starlette import status

from invoicelocks.models import PaymentStatus
from invoicelocks.services.lock_coordinator import AcquireOutcome, AcquireResult, LockState


class LockResponse(BaseModel):
    """Lock details returned to editing clients."""

    invoice_id: int
    locked_by_user_id: int
    locked_by_user_name: str
    lock_acquired_at: datetime
    lock_expires_at: datetime
    is_active: bool
    status: Optional[AcquireOutcome] = None
    message: Optional[str] = None

    @classmethod
    def from_lock(
        cls,
        lock: LockState,
        *,
        now: datetime,
        status: Optional[AcquireOutcome] = None,
        message: Optional[str] = None,
    ) -> "LockResponse":
        return cls(
            invoice_id=lock.resource_id,
            locked_by_user_id=lock.owner_id,
            locked_by_user_name=lock.owner_name,
            lock_acquired_at=lock.acquired_at,
            lock_expires_at=lock.expires_at,
            is_active=lock.is_active(now),
            status=status,
            message=message,
        )

    @classmethod
    def from_result(cls, result: AcquireResult, *, now: datetime) -> "LockResponse":
        lock = result.lock
        if result.outcome is AcquireOutcome.EXTENDED:
            message = "Lock extended successfully."
        elif result.outcome is AcquireOutcome.GRANTED:
            message = "Lock acquired successfully."
        else:
            message = locked_message(lock)
        return cls.from_lock(lock, now=now, status=result.outcome, message=message)


def locked_message(lock: LockState) -> str:
    return (
        f"Invoice is locked by {lock.owner_name} "
        f"until {lock.expires_at:%Y-%m-%d %H:%M:%S} UTC."
    )


class ReleaseResponse(BaseModel):
    invoice_id: int
    released: bool


class InvoiceUpdate(BaseModel):
    """Fields an editor may change while holding the lock."""

    amount_cents: Optional[int] = Field(None, ge=0)
    due_date: Optional[date] = None
    payment_status: Optional[PaymentStatus] = None
    payment_date: Optional[date] = None

    @model_validator(mode="after")
    def validate_payment(self) -> "InvoiceUpdate":
        if self.payment_status is PaymentStatus.PAID and self.payment_date is None:
            raise ValueError("payment_date is required when payment_status is paid")
        return self


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_number: str
    issue_date: date
    due_date: date
    amount_cents: int
    payment_status: PaymentStatus
    payment_date: Optional[date]
    modified_by_id: Optional[int]


class SweeperStats(BaseModel):
    running: bool
    interval_seconds: float
    runs: int
    failures: int
    locks_removed: int
    last_run_at: Optional[datetime]
    last_removed: Optional[int]


class SweepResponse(BaseModel):
    removed: int


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"]
    database: str
    warnings: list[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    detail: str


DEFAULT_ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}
