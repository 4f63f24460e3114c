"""
Operator sync endpoints.

POST /v1/ops/sync/{match_id}/lineup  - Run one lineup sync pass now.
POST /v1/ops/sync/{match_id}/events  - Run one events sync pass now.
GET  /v1/ops/sync/active             - Matches with a running periodic sync task.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from shared.models.domain import SyncReport

from api.dependencies import get_sync_adapter, get_sync_runner
from sync.adapter import SyncAdapter
from sync.runner import SyncRunner

router = APIRouter(prefix="/v1/ops/sync", tags=["ops"])


@router.post("/{match_id}/lineup", response_model=SyncReport)
async def sync_lineup(match_id: int, adapter: SyncAdapter = Depends(get_sync_adapter)) -> SyncReport:
    return await adapter.sync_lineup(match_id)


@router.post("/{match_id}/events", response_model=SyncReport)
async def sync_events(match_id: int, adapter: SyncAdapter = Depends(get_sync_adapter)) -> SyncReport:
    return await adapter.sync_events(match_id)


@router.get("/active")
async def active_syncs(runner: SyncRunner = Depends(get_sync_runner)) -> dict[str, Any]:
    tasks = runner.active()
    return {"count": len(tasks), "tasks": tasks}
