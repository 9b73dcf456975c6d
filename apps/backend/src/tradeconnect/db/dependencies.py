from __future__ import annotations

from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from tradeconnect.db.session import get_session_factory


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """Request-scoped session; any transaction left open is rolled back."""
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
        finally:
            transaction = session.get_transaction()
            if transaction is not None and transaction.is_active:
                await session.rollback()
