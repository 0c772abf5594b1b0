"""Per-process construction of the reader, store, adapters, orchestrator and triggers."""

from __future__ import annotations

from dataclasses import dataclass, field

from anthropic import AsyncAnthropic

from src.config import Settings, get_settings
from src.extraction.extractor import ActionItemExtractor
from src.granola.reader import CacheReader
from src.linear.client import LinearClient
from src.processing.orchestrator import Extractor, Orchestrator
from src.processing.triggers import TriggerSources
from src.store.json_store import JsonStore


@dataclass
class Services:
    settings: Settings
    reader: CacheReader
    store: JsonStore
    extractor: Extractor
    linear: LinearClient
    orchestrator: Orchestrator
    triggers: TriggerSources
    # Action item ids with a Linear issue request in flight.
    issues_in_flight: set[str] = field(default_factory=set)


def build_services(
    settings: Settings | None = None,
    *,
    extractor: Extractor | None = None,
    linear: LinearClient | None = None,
) -> Services:
    """Build one instance of every service.

    The store starts empty when its file does not exist yet and the
    orchestrator starts with no pass in flight.
    """
    settings = settings or get_settings()
    reader = CacheReader(settings.granola_cache_path)
    store = JsonStore(settings.store_path)
    extractor = extractor or ActionItemExtractor(
        AsyncAnthropic(api_key=settings.anthropic_api_key),
        model=settings.llm_model,
        max_tokens=settings.extraction_max_tokens,
    )
    linear = linear or LinearClient(
        settings.linear_api_key,
        default_team_id=settings.linear_team_id,
        api_url=settings.linear_api_url,
    )
    orchestrator = Orchestrator(reader, store, extractor)
    triggers = TriggerSources(
        orchestrator,
        settings.granola_cache_path,
        poll_interval=settings.poll_interval,
        startup_delay=settings.startup_delay,
        settle_delay=settings.watch_settle_delay,
    )
    return Services(
        settings=settings,
        reader=reader,
        store=store,
        extractor=extractor,
        linear=linear,
        orchestrator=orchestrator,
        triggers=triggers,
    )
