"""
Credit Ledger - Balance checks, atomic deductions, and idempotent refunds.

NO DICTIONARIES - All operations use strongly typed domain models.

Writes are flushed but never committed here; the caller owns the
transaction so that a deduction and the generation rows it pays for
land together.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from timeless.db.models import CreditTransaction, Profile
from timeless.exceptions import (
    InsufficientCreditsError,
    ProfileNotFoundError,
    WriteVerificationError,
)
from timeless.models.api import CreditTransactionKind
from timeless.models.domain import ProfileSnapshot

logger = get_logger(__name__)


def refund_idempotency_key(generation_id: UUID) -> str:
    """Idempotency key guarding the single refund a generation may receive."""
    return f"refund-{generation_id}"


class CreditLedger:
    """
    Credit ledger over the profiles table.

    Deductions use a single conditional UPDATE so two concurrent requests
    can never both spend the same credits.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize credit ledger with database session."""
        self.session = session

    async def get_profile(self, user_id: UUID) -> ProfileSnapshot:
        """
        Read the caller's credit state.

        Raises:
            ProfileNotFoundError: No profile row for the user
        """
        stmt = select(Profile).where(Profile.user_id == user_id)
        result = await self.session.execute(stmt)
        profile = result.scalar_one_or_none()
        if profile is None:
            raise ProfileNotFoundError(user_id)
        return ProfileSnapshot(
            user_id=profile.user_id,
            credits=profile.credits,
            subscription_status=profile.subscription_status,
        )

    async def check(self, user_id: UUID, cost: int) -> ProfileSnapshot:
        """
        Verify the caller can afford a tool.

        Subscribers are always allowed. Everyone else needs credits >= cost.

        Raises:
            ProfileNotFoundError: No profile row for the user
            InsufficientCreditsError: Balance below cost
        """
        profile = await self.get_profile(user_id)
        if profile.is_subscribed:
            return profile
        if profile.credits < cost:
            logger.info(
                "insufficient_credits",
                user_id=str(user_id),
                balance=profile.credits,
                required=cost,
            )
            raise InsufficientCreditsError(profile.credits, cost)
        return profile

    async def deduct(
        self,
        profile: ProfileSnapshot,
        amount: int,
        description: str,
        generation_id: UUID | None = None,
    ) -> int:
        """
        Atomically deduct credits and record a charge.

        Returns the new balance. Subscribers and zero amounts are not charged
        and get their current balance back.

        Raises:
            InsufficientCreditsError: Balance dropped below amount since the check
            WriteVerificationError: Returned balance is inconsistent
        """
        if profile.is_subscribed or amount <= 0:
            return profile.credits

        stmt = (
            update(Profile)
            .where(Profile.user_id == profile.user_id, Profile.credits >= amount)
            .values(credits=Profile.credits - amount)
            .returning(Profile.credits)
        )
        result = await self.session.execute(stmt)
        balance_after = result.scalar_one_or_none()

        if balance_after is None:
            # Lost a race with a concurrent request
            current = await self.get_profile(profile.user_id)
            raise InsufficientCreditsError(current.credits, amount)

        if balance_after < 0:
            raise WriteVerificationError(
                f"Negative balance after deduction for user {profile.user_id}: {balance_after}"
            )

        self.session.add(
            CreditTransaction(
                user_id=profile.user_id,
                generation_id=generation_id,
                kind=CreditTransactionKind.CHARGE.value,
                amount=amount,
                balance_before=balance_after + amount,
                balance_after=balance_after,
                description=description,
            )
        )
        await self.session.flush()

        logger.info(
            "credits_deducted",
            user_id=str(profile.user_id),
            amount=amount,
            balance_after=balance_after,
        )
        return balance_after

    async def refund(
        self,
        user_id: UUID,
        generation_id: UUID,
        amount: int,
        description: str,
    ) -> int:
        """
        Return credits for a failed generation.

        Returns the number of credits refunded: zero when the user is
        subscribed, the amount is not positive, the profile is gone, or
        the generation was already refunded.
        """
        if amount <= 0:
            return 0

        key = refund_idempotency_key(generation_id)
        existing = await self.session.execute(
            select(CreditTransaction.id).where(CreditTransaction.idempotency_key == key)
        )
        if existing.scalar_one_or_none() is not None:
            logger.info("refund_already_applied", generation_id=str(generation_id))
            return 0

        stmt = select(Profile).where(Profile.user_id == user_id).with_for_update()
        result = await self.session.execute(stmt)
        profile = result.scalar_one_or_none()

        if profile is None:
            logger.warning("refund_profile_missing", user_id=str(user_id))
            return 0

        if profile.subscription_status == "active":
            return 0

        balance_before = profile.credits
        profile.credits = balance_before + amount
        self.session.add(
            CreditTransaction(
                user_id=user_id,
                generation_id=generation_id,
                kind=CreditTransactionKind.REFUND.value,
                amount=amount,
                balance_before=balance_before,
                balance_after=balance_before + amount,
                description=description,
                idempotency_key=key,
            )
        )
        await self.session.flush()

        logger.info(
            "credits_refunded",
            user_id=str(user_id),
            generation_id=str(generation_id),
            amount=amount,
            balance_after=profile.credits,
        )
        return amount
