"""
Credit and reconciliation flows against a real database.

Uses an in-memory SQLite database via aiosqlite so the conditional
UPDATE ... RETURNING deduction, the refund idempotency key, and
rollback behaviour run through SQLAlchemy for real. Providers are
still served by httpx.MockTransport.
"""

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from unittest.mock import patch
from uuid import UUID, uuid4

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from timeless.db.models import Base, CreditTransaction, Generation, Profile
from timeless.exceptions import InsufficientCreditsError, UnknownToolError
from timeless.models.api import (
    CreditTransactionKind,
    GenerationStatus,
    ReconcileStatus,
    ToolFamily,
    ToolRequest,
)
from timeless.services.credits import CreditLedger
from timeless.services.generation import GenerationService
from timeless.services.reconciliation import ReconciliationService
from timeless.services.tools.image import ImageToolDispatcher

from helpers import create_generation, fal_client, kie_client

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=UTC)


class FlakyCommitSession(AsyncSession):
    """Session whose next failing_commits commits raise, as a dropped connection would."""

    failing_commits = 0

    async def commit(self) -> None:
        if self.failing_commits:
            self.failing_commits -= 1
            raise RuntimeError("connection reset during commit")
        await super().commit()


async def make_engine():
    engine = create_async_engine("sqlite+aiosqlite://", echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


async def seed_profile(session: AsyncSession, user_id: UUID, credits: int = 10) -> None:
    session.add(Profile(user_id=user_id, credits=credits))
    await session.commit()


async def balance(session: AsyncSession, user_id: UUID) -> int:
    result = await session.execute(select(Profile.credits).where(Profile.user_id == user_id))
    return result.scalar_one()


async def count(session: AsyncSession, model: type, *where) -> int:
    result = await session.execute(select(func.count()).select_from(model).where(*where))
    return result.scalar_one()


@pytest_asyncio.fixture
async def sqlite_session(user_id: UUID) -> AsyncIterator[AsyncSession]:
    """Session on a fresh in-memory database holding one 10-credit profile."""
    engine = await make_engine()
    factory = async_sessionmaker(engine, class_=FlakyCommitSession, expire_on_commit=False)
    async with factory() as session:
        await seed_profile(session, user_id)
        yield session
    await engine.dispose()


def upscale_dispatcher() -> ImageToolDispatcher:
    fal, _ = fal_client(
        lambda request: httpx.Response(200, json={"image": {"url": "https://cdn.test/up.png"}})
    )
    return ImageToolDispatcher(fal=fal)


def failing_fal(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/status"):
        return httpx.Response(200, json={"status": "FAILED", "error": "content policy"})
    return httpx.Response(500, text="unexpected call")


def reconciler(session: AsyncSession) -> ReconciliationService:
    fal, _ = fal_client(failing_fal)
    kie, _ = kie_client(lambda request: httpx.Response(500, text="unexpected call"))
    return ReconciliationService(session, fal=fal, kie=kie, clock=lambda: NOW)


class TestToolDispatchPersistence:
    """Credits and rows written by GenerationService."""

    @pytest.mark.asyncio
    async def test_upscale_deducts_and_records(self, sqlite_session, user_id):
        service = GenerationService(sqlite_session, {ToolFamily.IMAGE: upscale_dispatcher()})

        response = await service.run_tool(
            user_id, ToolFamily.IMAGE, ToolRequest(tool="upscale", image_url="https://in.png")
        )
        await service.close()

        assert response.output_url == "https://cdn.test/up.png"
        assert await balance(sqlite_session, user_id) == 7

        generation = (await sqlite_session.execute(select(Generation))).scalar_one()
        assert generation.status == GenerationStatus.COMPLETED.value
        assert generation.output_url == "https://cdn.test/up.png"
        assert generation.credits_used == 3

        charge = (await sqlite_session.execute(select(CreditTransaction))).scalar_one()
        assert charge.kind == CreditTransactionKind.CHARGE.value
        assert (charge.amount, charge.balance_before, charge.balance_after) == (3, 10, 7)
        assert charge.generation_id == generation.id

    @pytest.mark.asyncio
    async def test_unknown_tool_leaves_balance(self, sqlite_session, user_id):
        service = GenerationService(sqlite_session, {ToolFamily.IMAGE: upscale_dispatcher()})

        with pytest.raises(UnknownToolError):
            await service.run_tool(user_id, ToolFamily.IMAGE, ToolRequest(tool="teleport"))
        await service.close()

        assert await balance(sqlite_session, user_id) == 10
        assert await count(sqlite_session, Generation) == 0
        assert await count(sqlite_session, CreditTransaction) == 0

    @pytest.mark.asyncio
    async def test_upscales_until_broke(self, sqlite_session, user_id):
        """10 credits buy three 3-credit upscales; the fourth is refused."""
        service = GenerationService(sqlite_session, {ToolFamily.IMAGE: upscale_dispatcher()})
        request = ToolRequest(tool="upscale", image_url="https://in.png")

        for _ in range(3):
            await service.run_tool(user_id, ToolFamily.IMAGE, request)
        with pytest.raises(InsufficientCreditsError):
            await service.run_tool(user_id, ToolFamily.IMAGE, request)
        await service.close()

        assert await balance(sqlite_session, user_id) == 1
        assert await count(sqlite_session, Generation) == 3


class TestToolRouteEndToEnd:
    """POST /v1/image-tools over ASGI with a real session."""

    @pytest.mark.asyncio
    async def test_upscale_then_unknown_tool(
        self, app: FastAPI, sqlite_session, user_id, auth_headers
    ):
        from timeless.db.session import get_db

        async def override_get_db():
            yield sqlite_session

        app.dependency_overrides[get_db] = override_get_db
        with patch(
            "timeless.api.tool_routes.GenerationService",
            side_effect=lambda db: GenerationService(db, {ToolFamily.IMAGE: upscale_dispatcher()}),
        ):
            async with httpx.AsyncClient(
                transport=httpx.ASGITransport(app=app), base_url="http://test"
            ) as client:
                ok = await client.post(
                    "/v1/image-tools",
                    json={"tool": "upscale", "imageUrl": "https://in.png"},
                    headers=auth_headers,
                )
                unknown = await client.post(
                    "/v1/image-tools", json={"tool": "teleport"}, headers=auth_headers
                )
        app.dependency_overrides.clear()

        assert ok.status_code == 200
        assert ok.json()["outputUrl"] == "https://cdn.test/up.png"
        assert unknown.status_code == 400
        assert await balance(sqlite_session, user_id) == 7


class TestRefundPersistence:
    """Refunds written by ReconciliationService."""

    @pytest.mark.asyncio
    async def test_failed_row_refunded_once_across_polls(self, sqlite_session, user_id):
        generation = create_generation(user_id=user_id, credits_used=4, created_at=NOW)
        sqlite_session.add(generation)
        await sqlite_session.commit()
        service = reconciler(sqlite_session)

        first = await service.check(user_id, generation.id)
        second = await service.check(user_id, generation.id)
        await service.close()

        assert first.results[0].status == ReconcileStatus.FAILED
        assert first.results[0].credits_refunded == 4
        assert second.results[0].status == ReconcileStatus.FAILED
        assert second.results[0].changed is False
        assert await balance(sqlite_session, user_id) == 14
        assert (
            await count(
                sqlite_session,
                CreditTransaction,
                CreditTransaction.kind == CreditTransactionKind.REFUND.value,
            )
            == 1
        )

    @pytest.mark.asyncio
    async def test_refund_key_blocks_second_refund(self, sqlite_session, user_id):
        ledger = CreditLedger(sqlite_session)
        generation_id = uuid4()

        first = await ledger.refund(user_id, generation_id, 5, description="refund")
        await sqlite_session.commit()
        second = await ledger.refund(user_id, generation_id, 5, description="refund")
        await sqlite_session.commit()

        assert (first, second) == (5, 0)
        assert await balance(sqlite_session, user_id) == 15

    @pytest.mark.asyncio
    async def test_failed_commit_does_not_stop_other_rows(self, sqlite_session, user_id):
        """A commit failure on one row is reported and the next row still reconciles."""
        newer = create_generation(user_id=user_id, credits_used=4, created_at=NOW)
        older = create_generation(
            user_id=user_id, credits_used=6, created_at=NOW - timedelta(minutes=1)
        )
        sqlite_session.add_all([newer, older])
        await sqlite_session.commit()
        # Rollback expires loaded rows, so hold plain ids
        newer_id, older_id = newer.id, older.id
        sqlite_session.failing_commits = 1
        service = reconciler(sqlite_session)

        response = await service.check(user_id)
        await service.close()

        by_id = {result.id: result for result in response.results}
        assert by_id[newer_id].status == ReconcileStatus.ERROR
        assert by_id[newer_id].error == "connection reset during commit"
        assert by_id[older_id].status == ReconcileStatus.FAILED
        assert by_id[older_id].credits_refunded == 6

        assert await balance(sqlite_session, user_id) == 16
        statuses = dict(
            (await sqlite_session.execute(select(Generation.id, Generation.status))).all()
        )
        assert statuses[newer_id] == GenerationStatus.PROCESSING.value
        assert statuses[older_id] == GenerationStatus.FAILED.value
