from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.deps import ServicesDep
from src.api.models import HealthResponse
from src.api.routes.action_items import router as action_items_router
from src.api.routes.linear import router as linear_router
from src.api.routes.meetings import router as meetings_router
from src.api.routes.processing import router as processing_router
from src.api.routes.settings import router as settings_router
from src.config import settings
from src.services import Services, build_services

logger = logging.getLogger(__name__)


def create_app(services: Services | None = None, *, start_triggers: bool | None = None) -> FastAPI:
    """Build the API app.

    Without *services*, they are built from the environment when the app
    starts. Trigger sources start with the app unless *start_triggers* is
    False (or ``WATCH_ENABLED`` is off).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if not hasattr(app.state, "services"):
            logging.basicConfig(
                level=settings.log_level,
                format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            )
            app.state.services = build_services()
        active: Services = app.state.services
        logger.info("Store file: %s", active.store.path)

        watch = active.settings.watch_enabled if start_triggers is None else start_triggers
        if watch:
            await active.triggers.start()
        try:
            yield
        finally:
            if active.triggers.running:
                await active.triggers.stop()
            await active.linear.aclose()

    app = FastAPI(
        title="Granola → Linear",
        description="Extract action items from Granola meetings and file them in Linear",
        version="0.1.0",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[f"http://localhost:{settings.api_port}"],
        allow_origin_regex=r"http://(localhost|127\.0\.0\.1):\d+",
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(meetings_router)
    app.include_router(action_items_router)
    app.include_router(settings_router)
    app.include_router(linear_router)
    app.include_router(processing_router)

    @app.get("/api/health", response_model=HealthResponse)
    async def health(services: ServicesDep) -> HealthResponse:
        return HealthResponse(
            status="ok",
            linear=await services.linear.test_connection(),
            granola_cache_path=str(services.settings.granola_cache_path),
            watching=services.triggers.watching,
            stats=services.store.stats(),
        )

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
