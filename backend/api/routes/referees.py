from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from shared.models.domain import RefereeAssignmentCreate, RefereeAssignmentOut

from api.dependencies import get_service
from ledger.service import MatchDeskService

router = APIRouter(prefix="/v1/matches", tags=["referees"])


@router.get("/{match_id}/referees", response_model=list[RefereeAssignmentOut])
async def list_referees(
    match_id: int, service: MatchDeskService = Depends(get_service)
) -> list[RefereeAssignmentOut]:
    return await service.list_referees(match_id)


@router.post("/{match_id}/referees", response_model=RefereeAssignmentOut, status_code=status.HTTP_201_CREATED)
async def assign_referee(
    match_id: int,
    data: RefereeAssignmentCreate,
    service: MatchDeskService = Depends(get_service),
) -> RefereeAssignmentOut:
    return await service.assign_referee(match_id, data)


@router.delete("/{match_id}/referees/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unassign_referee(
    match_id: int,
    assignment_id: int,
    service: MatchDeskService = Depends(get_service),
) -> Response:
    await service.unassign_referee(match_id, assignment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
