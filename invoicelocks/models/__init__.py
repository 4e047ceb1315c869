"""SQLAlchemy models for the InvoiceLocks backend."""
from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, Date, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from invoicelocks.db.base import Base, TableNameMixin, TimestampMixin, UTCDateTime


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    OVERDUE = "overdue"


class Invoice(TableNameMixin, TimestampMixin, Base):
    """Invoice record that users edit under an edit lock."""

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_invoice_amount_cents"),
        CheckConstraint("due_date >= issue_date", name="ck_invoice_dates"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    modified_by_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class InvoiceLock(TableNameMixin, Base):
    """Exclusive, time-bounded edit lock; at most one row per invoice."""

    invoice_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    locked_by_user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    locked_by_user_name: Mapped[str] = mapped_column(String(50), nullable=False)
    lock_acquired_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    lock_expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
