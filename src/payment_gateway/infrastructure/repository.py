"""Repository layer for payment transaction database operations.

This module provides the data access layer for transactions. The manager
and the webhook pipeline depend only on the TransactionStore protocol, so
any keyed store with the same three operations can be substituted.
"""

from datetime import datetime, timezone
from typing import Any, Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from payment_gateway.infrastructure.database import session_scope
from payment_gateway.infrastructure.models import PaymentTransactionModel
from payment_gateway.models import Transaction

logger = structlog.get_logger(__name__)

UPDATABLE_FIELDS = frozenset({"status", "channel", "paid_at", "metadata", "customer"})


class DuplicateTransactionError(Exception):
    """Raised when a transaction with the same reference already exists."""

    pass


class TransactionStore(Protocol):
    """Keyed record store for transactions."""

    def create(self, transaction: Transaction) -> None: ...

    def find(self, reference: str) -> Transaction | None: ...

    def update(self, reference: str, changes: dict[str, Any]) -> bool: ...


class TransactionRepository:
    """SQLAlchemy-backed TransactionStore.

    Each operation runs in its own session so callers can treat every write
    as independent and best-effort.
    """

    def __init__(self, session_factory: sessionmaker):
        """Initialize repository with a session factory.

        Args:
            session_factory: SQLAlchemy sessionmaker bound to an engine
        """
        self.session_factory = session_factory

    def create(self, transaction: Transaction) -> None:
        """Insert a new transaction.

        Raises:
            DuplicateTransactionError: If the reference already exists
        """
        model = PaymentTransactionModel(
            reference=transaction.reference,
            provider=transaction.provider,
            status=transaction.status,
            amount=transaction.amount,
            currency=transaction.currency,
            email=transaction.email,
            channel=transaction.channel,
            transaction_metadata=transaction.metadata or None,
            customer=transaction.customer,
            paid_at=transaction.paid_at,
        )

        try:
            with session_scope(self.session_factory) as session:
                session.add(model)
                session.flush()
        except IntegrityError as e:
            raise DuplicateTransactionError(f"Transaction {transaction.reference} already exists") from e

        logger.debug("transaction_created", reference=transaction.reference, provider=transaction.provider)

    def find(self, reference: str) -> Transaction | None:
        """Retrieve a transaction by reference, or None if absent."""
        with session_scope(self.session_factory) as session:
            model = session.scalars(
                select(PaymentTransactionModel).where(PaymentTransactionModel.reference == reference)
            ).first()
            return self._to_domain_entity(model) if model else None

    def update(self, reference: str, changes: dict[str, Any]) -> bool:
        """Apply changes to a transaction.

        Args:
            reference: Transaction reference
            changes: Field values; keys outside UPDATABLE_FIELDS are ignored

        Returns:
            True if a transaction was updated, False if none matched
        """
        with session_scope(self.session_factory) as session:
            model = session.scalars(
                select(PaymentTransactionModel).where(PaymentTransactionModel.reference == reference)
            ).first()
            if model is None:
                return False

            for key, value in changes.items():
                if key not in UPDATABLE_FIELDS:
                    continue
                if key == "metadata":
                    model.transaction_metadata = {**(model.transaction_metadata or {}), **(value or {})}
                else:
                    setattr(model, key, value)
            model.updated_at = datetime.now(timezone.utc)

        logger.debug("transaction_updated", reference=reference, fields=sorted(changes))
        return True

    @staticmethod
    def _to_domain_entity(model: PaymentTransactionModel) -> Transaction:
        return Transaction(
            reference=model.reference,
            provider=model.provider,
            status=model.status,
            amount=model.amount,
            currency=model.currency,
            email=model.email,
            channel=model.channel,
            metadata=dict(model.transaction_metadata or {}),
            customer=model.customer,
            paid_at=model.paid_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )
