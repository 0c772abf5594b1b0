"""Processing endpoints: manual trigger, stats, and full reset."""

from __future__ import annotations

from fastapi import APIRouter

from src.api.deps import ServicesDep
from src.api.models import ResetResponse, RunResponse
from src.store.models import StoreStats

router = APIRouter()


@router.post("/api/process", response_model=RunResponse)
async def process_new_meetings(services: ServicesDep) -> RunResponse:
    """Manually run a processing pass; skipped if one is already running."""
    result = await services.triggers.trigger("manual")
    return RunResponse.from_result(result)


@router.get("/api/stats", response_model=StoreStats)
async def get_stats(services: ServicesDep) -> StoreStats:
    return services.store.stats()


@router.post("/api/reset", response_model=ResetResponse)
async def reset(services: ServicesDep) -> ResetResponse:
    """Clear all action items and processed markers. Settings are kept."""
    services.store.reset_all()
    return ResetResponse(success=True)
