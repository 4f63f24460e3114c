"""
Per-match single-writer discipline.

Inside one process an ``asyncio.Lock`` per match serializes operator edits and
sync passes; across processes the match row is locked ``FOR UPDATE`` for the
length of the write transaction. Different matches never wait on each other.
"""
from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.orm import MatchORM

from ledger.errors import NotFoundError


class MatchLockRegistry:
    def __init__(self) -> None:
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._holders: defaultdict[int, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, match_id: int) -> AsyncIterator[None]:
        self._holders[match_id] += 1
        lock = self._locks[match_id]
        try:
            async with lock:
                yield
        finally:
            self._holders[match_id] -= 1
            if self._holders[match_id] == 0:
                del self._holders[match_id]
                self._locks.pop(match_id, None)


async def lock_match(session: AsyncSession, match_id: int) -> MatchORM:
    """Load the match row with a row lock (a no-op on sqlite)."""
    stmt = select(MatchORM).where(MatchORM.id == match_id).with_for_update()
    match = (await session.execute(stmt)).scalar_one_or_none()
    if match is None:
        raise NotFoundError(f"Match {match_id} not found", match_id=match_id)
    return match


async def get_match(session: AsyncSession, match_id: int) -> MatchORM:
    match = await session.get(MatchORM, match_id)
    if match is None:
        raise NotFoundError(f"Match {match_id} not found", match_id=match_id)
    return match
