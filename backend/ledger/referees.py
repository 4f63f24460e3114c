"""Referee assignments. Same append/delete/list shape and state gating as the event ledger."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.domain import RefereeAssignmentCreate
from shared.models.orm import MatchORM, RefereeAssignmentORM, RefereeORM
from shared.utils.logging import get_logger

from ledger.errors import NotFoundError, ValidationError
from ledger.state_machine import ensure_mutable

logger = get_logger(__name__)


class RefereeRegistry:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list(self, match_id: int) -> list[RefereeAssignmentORM]:
        stmt = (
            select(RefereeAssignmentORM)
            .where(RefereeAssignmentORM.match_id == match_id)
            .order_by(RefereeAssignmentORM.id.asc())
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def assign(self, match: MatchORM, data: RefereeAssignmentCreate) -> RefereeAssignmentORM:
        ensure_mutable(match)
        if await self._session.get(RefereeORM, data.referee_id) is None:
            raise NotFoundError(f"Referee {data.referee_id} not found", referee_id=data.referee_id)

        duplicate = select(RefereeAssignmentORM.id).where(
            RefereeAssignmentORM.match_id == match.id,
            RefereeAssignmentORM.referee_id == data.referee_id,
            RefereeAssignmentORM.role == data.role.value,
        )
        if (await self._session.execute(duplicate)).first() is not None:
            raise ValidationError(
                f"Referee {data.referee_id} already holds role {data.role.value} in match {match.id}",
                referee_id=data.referee_id,
                role=data.role.value,
            )

        assignment = RefereeAssignmentORM(match_id=match.id, referee_id=data.referee_id, role=data.role.value)
        self._session.add(assignment)
        await self._session.flush()
        logger.info(
            "referee_assigned",
            match_id=match.id,
            assignment_id=assignment.id,
            referee_id=assignment.referee_id,
            role=assignment.role,
        )
        return assignment

    async def unassign(self, match: MatchORM, assignment_id: int) -> RefereeAssignmentORM:
        ensure_mutable(match)
        assignment = await self._session.get(RefereeAssignmentORM, assignment_id)
        if assignment is None or assignment.match_id != match.id:
            raise NotFoundError(
                f"Referee assignment {assignment_id} not found in match {match.id}",
                assignment_id=assignment_id,
            )
        await self._session.delete(assignment)
        await self._session.flush()
        logger.info("referee_unassigned", match_id=match.id, assignment_id=assignment_id)
        return assignment
