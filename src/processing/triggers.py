"""Trigger sources that feed the orchestrator.

Four independent sources call :meth:`Orchestrator.run`: a watchdog file watch
on the Granola cache, a fixed-interval poll (the fallback for missed file
events), a one-off startup catch-up, and manual calls from the API. The
watchdog observer runs on its own thread and only hands events over to the
event loop; every pass runs on the loop.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from src.processing.orchestrator import Orchestrator, RunResult

logger = logging.getLogger(__name__)

_WATCHED_EVENTS = frozenset({EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED})


class CacheFileHandler(FileSystemEventHandler):
    """Calls *on_change* for writes to a single file in the watched directory."""

    def __init__(self, file_name: str, on_change: Callable[[], None]) -> None:
        super().__init__()
        self._file_name = file_name
        self._on_change = on_change

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _WATCHED_EVENTS:
            return
        paths = [event.src_path, getattr(event, "dest_path", "")]
        if any(Path(os.fsdecode(p)).name == self._file_name for p in paths if p):
            self._on_change()


class TriggerSources:
    """Starts and stops the file watch, poll loop and startup catch-up."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        cache_path: Path | str,
        poll_interval: float = 30.0,
        startup_delay: float = 1.0,
        settle_delay: float = 2.0,
        stop_timeout: float = 30.0,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        self._orchestrator = orchestrator
        self._cache_path = Path(cache_path)
        self._poll_interval = poll_interval
        self._startup_delay = startup_delay
        self._settle_delay = settle_delay
        self._stop_timeout = stop_timeout
        self._observer_factory = observer_factory

        self._loop: asyncio.AbstractEventLoop | None = None
        self._observer: Any = None
        self._settle_handle: asyncio.TimerHandle | None = None
        # Timer tasks are cancelled on stop; run tasks are allowed to finish.
        self._timers: set[asyncio.Task[Any]] = set()
        self._runs: set[asyncio.Task[Any]] = set()

    @property
    def running(self) -> bool:
        return self._loop is not None

    @property
    def watching(self) -> bool:
        return self._observer is not None

    async def start(self) -> None:
        if self._loop is not None:
            return
        self._loop = asyncio.get_running_loop()

        logger.info("Starting watcher for Granola cache at %s", self._cache_path)
        logger.info("Poll interval: %.0fs", self._poll_interval)
        self._start_watch()
        self._spawn(self._poll_loop(), "poll", self._timers)
        self._spawn(self._catch_up(), "startup", self._timers)

    async def stop(self) -> None:
        """Stop watching and polling, letting a pass already running finish.

        A pass that outlives ``stop_timeout`` is cancelled.
        """
        if self._observer is not None:
            observer, self._observer = self._observer, None
            observer.stop()
            await asyncio.to_thread(observer.join, 5.0)

        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None

        timers = list(self._timers)
        for task in timers:
            task.cancel()
        await asyncio.gather(*timers, return_exceptions=True)

        if self._runs:
            logger.info("Waiting for the running processing pass to finish")
            _, pending = await asyncio.wait(set(self._runs), timeout=self._stop_timeout)
            for task in pending:
                logger.warning("Cancelling processing pass still running after %.0fs", self._stop_timeout)
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        self._loop = None
        logger.info("Watcher stopped")

    async def trigger(self, source: str = "manual") -> RunResult:
        """Run a pass now and return its result (skipped if one is in flight)."""
        logger.info("Processing triggered (%s)", source)
        return await self._orchestrator.run()

    # -- file watch ----------------------------------------------------------

    def _start_watch(self) -> None:
        """Start the watchdog observer; on failure polling remains the fallback."""
        watch_dir = self._cache_path.parent
        if not watch_dir.is_dir():
            logger.warning("Cannot watch %s: directory does not exist; relying on polling", watch_dir)
            return

        observer = self._observer_factory()
        handler = CacheFileHandler(self._cache_path.name, self._on_file_event)
        try:
            observer.schedule(handler, str(watch_dir), recursive=False)
            observer.start()
        except OSError as exc:
            logger.warning("File watch failed for %s: %s; relying on polling", watch_dir, exc)
            return
        self._observer = observer

    def _on_file_event(self) -> None:
        # Called on the observer thread.
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self._schedule_settled_run)

    def _schedule_settled_run(self) -> None:
        """Debounce: a burst of writes produces a single pass once the file settles."""
        if self._loop is None:
            return
        if self._settle_handle is not None:
            self._settle_handle.cancel()
        self._settle_handle = self._loop.call_later(self._settle_delay, self._on_settled)

    def _on_settled(self) -> None:
        self._settle_handle = None
        logger.info("Granola cache updated, checking for new meetings")
        self._start_run("file-change")

    # -- timers --------------------------------------------------------------

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            # shield: cancelling the timer must not cancel the pass itself
            await asyncio.shield(self._start_run("poll"))

    async def _catch_up(self) -> None:
        await asyncio.sleep(self._startup_delay)
        logger.info("Checking for existing unprocessed meetings")
        await asyncio.shield(self._start_run("startup"))

    def _start_run(self, source: str) -> asyncio.Task[RunResult | None]:
        self._require_loop()
        return self._spawn(self._run(source), source, self._runs)

    async def _run(self, source: str) -> RunResult | None:
        try:
            result = await self._orchestrator.run()
        except Exception:
            logger.exception("Processing pass triggered by %s failed", source)
            return None
        if result.skipped:
            logger.debug("Pass from %s skipped: another pass is running", source)
        return result

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("Trigger sources are not started")
        return self._loop

    def _spawn(
        self, coro: Coroutine[Any, Any, Any], name: str, group: set[asyncio.Task[Any]]
    ) -> asyncio.Task[Any]:
        task = self._require_loop().create_task(coro, name=f"trigger-{name}")
        group.add(task)
        task.add_done_callback(group.discard)
        return task
