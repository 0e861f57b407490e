"""SQLAlchemy ORM models for the transaction store."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, TIMESTAMP, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from payment_gateway.config import settings
from payment_gateway.infrastructure.database import Base


class PaymentTransactionModel(Base):
    """
    Local record of every charge initialized through the gateway.

    Rows are created at charge time and updated by verification and
    webhooks; they are never deleted.
    """

    # Bound to the process-wide settings at import; per-instance Settings cannot rename it
    __tablename__ = settings.transaction_log.table

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Merchant reference, unique across providers
    reference: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    provider: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True, comment="Canonical status")

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    channel: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # "metadata" is reserved on declarative models
    transaction_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    customer: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    paid_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("idx_payment_transactions_created_at", "created_at"),)

    def __repr__(self) -> str:
        return f"<PaymentTransaction(reference={self.reference}, provider={self.provider}, status={self.status})>"
