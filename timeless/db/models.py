"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Profile(Base):
    """
    ORM model for profiles table.

    One row per user. Holds the credit balance and subscription flag.
    """

    __tablename__ = "profiles"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False, unique=True)

    credits: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    subscription_status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (CheckConstraint("credits >= 0", name="ck_profile_credits_non_negative"),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Profile(user_id={self.user_id}, credits={self.credits}, "
            f"subscription_status={self.subscription_status})>"
        )


class GenerationBatch(Base):
    """
    ORM model for generation_batches table.

    Aggregate record for a fan-out request; status derives from child rows.
    """

    __tablename__ = "generation_batches"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False, index=True)
    tool: Mapped[str] = mapped_column(String(100), nullable=False)
    scene_count: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="processing")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("scene_count > 0", name="ck_batch_scene_count_positive"),
        CheckConstraint(
            "status IN ('processing', 'completed', 'partial', 'failed')",
            name="ck_batch_status",
        ),
    )


class Generation(Base):
    """
    ORM model for generations table.

    One row per dispatched job. Mutated only by reconciliation while processing.
    """

    __tablename__ = "generations"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="processing")
    output_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Provider linkage
    task_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider_endpoint: Mapped[str | None] = mapped_column(String(255), nullable=True)

    credits_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    batch_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("generation_batches.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("credits_used >= 0", name="ck_generation_credits_non_negative"),
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_generation_status",
        ),
        Index("idx_generations_user_status", "user_id", "status"),
        Index("idx_generations_created_at", "created_at"),
        Index(
            "idx_generations_batch_id",
            "batch_id",
            postgresql_where=(batch_id.isnot(None)),
        ),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Generation(id={self.id}, model={self.model}, status={self.status}, "
            f"task_id={self.task_id})>"
        )


class CreditTransaction(Base):
    """
    ORM model for credit_transactions table.

    Immutable ledger of credit deductions and refunds.
    """

    __tablename__ = "credit_transactions"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False, index=True)
    generation_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    description: Mapped[str] = mapped_column(String, nullable=False)
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_credit_transaction_amount_positive"),
        CheckConstraint("kind IN ('charge', 'refund')", name="ck_credit_transaction_kind"),
        Index("idx_credit_transactions_created_at", "created_at"),
    )
