"""
Match REST endpoints.

GET   /v1/matches/{id}              - Match with its stored scoreboard.
PATCH /v1/matches/{id}              - Status, manual score, penalties, media, sync flag.
POST  /v1/matches/{id}/reset-status - Reopen a settled match.
POST  /v1/matches/{id}/reconcile    - Recompute the scoreboard and report drift.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from shared.models.domain import MatchOut, MatchPatch, ReconcileResult
from shared.models.enums import MatchStatus
from shared.utils.logging import get_logger

from api.dependencies import get_service, get_sync_runner
from ledger.service import MatchDeskService
from sync.runner import SyncRunner

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/matches", tags=["matches"])


@router.get("/{match_id}", response_model=MatchOut)
async def get_match(match_id: int, service: MatchDeskService = Depends(get_service)) -> MatchOut:
    return await service.get_match(match_id)


@router.patch("/{match_id}", response_model=MatchOut)
async def update_match(
    match_id: int,
    patch: MatchPatch,
    service: MatchDeskService = Depends(get_service),
    runner: SyncRunner = Depends(get_sync_runner),
) -> MatchOut:
    """
    Apply a partial update. Send ``version`` to guard against lost updates.

    Turning ``sync_enabled`` off cancels the match's running sync task;
    already-committed sync events stay in the ledger. A live match with sync
    enabled gets its task started right away instead of at the next discovery.
    """
    match = await service.update_match(match_id, patch)
    if not match.sync_enabled or match.status.is_terminal:
        if await runner.stop(match_id):
            logger.info("sync_task_cancelled_by_patch", match_id=match_id)
    elif match.status == MatchStatus.LIVE:
        runner.start(match_id)
    return match


@router.post("/{match_id}/reset-status", response_model=MatchOut)
async def reset_status(match_id: int, service: MatchDeskService = Depends(get_service)) -> MatchOut:
    return await service.reset_status(match_id)


@router.post("/{match_id}/reconcile", response_model=ReconcileResult)
async def reconcile(match_id: int, service: MatchDeskService = Depends(get_service)) -> ReconcileResult:
    """Idempotent; ``drifted`` reports whether the stored scoreboard was wrong."""
    return await service.reconcile(match_id)
