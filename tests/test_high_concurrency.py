"""
Concurrency Tests for the Secret Vault.

Tests verify:
1. Concurrent writers to the same new (tenant_id, key) never create duplicates
2. Every concurrent replacement is counted in version

Uses a file-backed SQLite database so each writer holds its own connection.

Run with: pytest tests/test_high_concurrency.py -v -s
"""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from engage_core.database.base import Base
from engage_core.models import Secret
from engage_core.services.secrets import SecretsService

pytestmark = pytest.mark.asyncio

WRITERS = 8


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Session factory over a SQLite file; one connection per session."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'vault.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    await engine.dispose()


class TestConcurrentStore:
    """Concurrent store_secret calls on separate sessions."""

    @pytest.mark.asyncio
    async def test_concurrent_writers_create_single_row(self, file_session_factory, encryption_service):
        """
        N writers storing the same new key at once leave exactly one row at version N.
        """
        async def writer(value: str) -> None:
            async with file_session_factory() as session:
                service = SecretsService(session, encryption_service)
                await service.store_secret("tenant-a", "api_key", value)

        values = [f"value-{i}" for i in range(WRITERS)]
        await asyncio.gather(*(writer(value) for value in values))

        async with file_session_factory() as session:
            count = await session.scalar(
                select(func.count()).select_from(Secret).where(
                    Secret.tenant_id == "tenant-a", Secret.key == "api_key"
                )
            )
            row = (
                await session.execute(select(Secret).where(Secret.key == "api_key"))
            ).scalar_one()

            assert count == 1
            assert row.version == WRITERS
            assert encryption_service.decrypt(row.encrypted_value) in values

            service = SecretsService(session, encryption_service)
            assert await service.get_secret("tenant-a", "api_key") in values
