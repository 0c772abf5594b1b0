"""Settings endpoints: custom extraction prompt and default Linear team."""

from __future__ import annotations

from fastapi import APIRouter

from src.api.deps import ServicesDep
from src.api.models import SettingsResponse, SettingsUpdate
from src.extraction.extractor import default_prompt
from src.store.models import StoreSettings

router = APIRouter()


@router.get("/api/settings", response_model=SettingsResponse)
async def get_settings(services: ServicesDep) -> SettingsResponse:
    current = services.store.get_settings()
    return SettingsResponse(**current.model_dump(), default_prompt=default_prompt())


@router.patch("/api/settings", response_model=StoreSettings)
async def update_settings(body: SettingsUpdate, services: ServicesDep) -> StoreSettings:
    """Partially update settings; send ``null`` to clear a value."""
    return services.store.update_settings(**body.model_dump(exclude_unset=True))
