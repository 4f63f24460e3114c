"""
Lineup endpoints.

GET    /v1/matches/{id}/lineup             - Entries, optionally for one team.
POST   /v1/matches/{id}/lineup             - Add a player to the lineup.
DELETE /v1/matches/{id}/lineup/{entry_id}  - Remove an entry no event references.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from shared.models.domain import LineupEntryCreate, LineupEntryOut

from api.dependencies import get_service
from ledger.service import MatchDeskService

router = APIRouter(prefix="/v1/matches", tags=["lineup"])


@router.get("/{match_id}/lineup", response_model=list[LineupEntryOut])
async def list_lineup(
    match_id: int,
    team_id: Optional[int] = Query(None),
    service: MatchDeskService = Depends(get_service),
) -> list[LineupEntryOut]:
    return await service.list_lineup(match_id, team_id)


@router.post("/{match_id}/lineup", response_model=LineupEntryOut, status_code=status.HTTP_201_CREATED)
async def add_lineup_entry(
    match_id: int,
    data: LineupEntryCreate,
    service: MatchDeskService = Depends(get_service),
) -> LineupEntryOut:
    return await service.add_lineup_entry(match_id, data)


@router.delete("/{match_id}/lineup/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_lineup_entry(
    match_id: int,
    entry_id: int,
    service: MatchDeskService = Depends(get_service),
) -> Response:
    await service.remove_lineup_entry(match_id, entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
