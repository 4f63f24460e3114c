"""
Event ledger endpoints. Every append and delete recomputes the scoreboard in
the same transaction.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from shared.models.domain import MatchEventCreate, MatchEventOut

from api.dependencies import get_service
from ledger.service import MatchDeskService

router = APIRouter(prefix="/v1/matches", tags=["events"])


@router.get("/{match_id}/events", response_model=list[MatchEventOut])
async def list_events(match_id: int, service: MatchDeskService = Depends(get_service)) -> list[MatchEventOut]:
    """Ordered by half, minute, then insertion."""
    return await service.list_events(match_id)


@router.post("/{match_id}/events", response_model=MatchEventOut, status_code=status.HTTP_201_CREATED)
async def append_event(
    match_id: int,
    data: MatchEventCreate,
    service: MatchDeskService = Depends(get_service),
) -> MatchEventOut:
    return await service.append_event(match_id, data)


@router.delete("/{match_id}/events/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event(
    match_id: int,
    event_id: int,
    service: MatchDeskService = Depends(get_service),
) -> Response:
    await service.delete_event(match_id, event_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
