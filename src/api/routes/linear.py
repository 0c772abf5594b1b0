from __future__ import annotations

from fastapi import APIRouter, HTTPException

from src.api.deps import ServicesDep
from src.api.models import TeamsResponse
from src.linear.client import LinearError

router = APIRouter()


@router.get("/api/linear/teams", response_model=TeamsResponse)
async def list_teams(services: ServicesDep) -> TeamsResponse:
    try:
        teams = await services.linear.get_teams()
    except LinearError as exc:
        raise HTTPException(status_code=502, detail=f"Linear unavailable: {exc}") from exc
    return TeamsResponse(teams=teams)
