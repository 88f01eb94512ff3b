"""Index freshness management: stale checks, guarded rebuilds, periodic refresh."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence

from errors import ConfigurationError, SnapshotUnavailableError
from index_store import IndexStore, embedding_text
from models import ContextDocument, as_utc, utcnow
from semantic_scorer import EmbeddingProvider

logger = logging.getLogger(__name__)


class SnapshotProvider(Protocol):
    async def list_all(self) -> List[ContextDocument]: ...

    async def get_one(self, context_id: str) -> Optional[ContextDocument]: ...


class IndexState(str, Enum):
    IDLE = "idle"
    REBUILDING = "rebuilding"


class LifecycleEventKind(str, Enum):
    BUILD_STARTED = "build_started"
    BUILD_COMPLETED = "build_completed"
    BUILD_FAILED = "build_failed"
    BUILD_SKIPPED = "build_skipped"


@dataclass
class LifecycleEvent:
    kind: LifecycleEventKind
    reason: str = ""
    entry_count: int = 0
    duration: float = 0.0
    error: Optional[BaseException] = None


Observer = Callable[[LifecycleEvent], None]


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


class IndexLifecycleManager:
    """Drives rebuilds of an IndexStore from a snapshot provider.

    At most one rebuild runs at a time; the ``rebuilding`` flag is set before the
    first suspension point, so a second request issued while one is in flight
    is a logged no-op. A failed rebuild leaves the previous index in place.
    """

    def __init__(
        self,
        store: IndexStore,
        provider: SnapshotProvider,
        embedder: Optional[EmbeddingProvider] = None,
        stale_interval: float = 300.0,
        refresh_interval: float = 300.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.provider = provider
        self.embedder = embedder
        self.stale_interval = stale_interval
        self.refresh_interval = refresh_interval
        self.clock = clock
        self._rebuilding = False
        self._observers: List[Observer] = []
        self._timer: Optional[asyncio.Task] = None

    @property
    def rebuilding(self) -> bool:
        return self._rebuilding

    @property
    def state(self) -> IndexState:
        return IndexState.REBUILDING if self._rebuilding else IndexState.IDLE

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer; returns a callable that unregisters it."""
        self._observers.append(observer)

        def unsubscribe():
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _publish(self, event: LifecycleEvent) -> None:
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception("Lifecycle observer failed on %s", event.kind.value)

    def is_stale(self) -> bool:
        last = self.store.last_rebuild_time
        if last is None:
            return True
        elapsed = (as_utc(self.clock()) - as_utc(last)).total_seconds()
        return elapsed > self.stale_interval

    async def ensure_fresh(self) -> bool:
        """Rebuild if stale. Data-source failures are reported as events; configuration errors propagate."""
        if self._rebuilding or not self.is_stale():
            return False
        return await self.rebuild(reason="stale", raise_errors=False)

    async def rebuild(self, reason: str = "explicit", raise_errors: bool = True) -> bool:
        """Rebuild the index from a fresh snapshot.

        Returns:
            True if this call performed a rebuild, False if it was skipped or
            failed with ``raise_errors`` disabled
        """
        if self._rebuilding:
            logger.warning("Index rebuild already in progress; ignoring %s request", reason)
            self._publish(LifecycleEvent(LifecycleEventKind.BUILD_SKIPPED, reason=reason))
            return False

        self._rebuilding = True
        self.store.begin_rebuild()
        self._publish(LifecycleEvent(LifecycleEventKind.BUILD_STARTED, reason=reason))
        started = time.perf_counter()
        failure: Optional[BaseException] = None
        count = 0
        try:
            logger.info("Building search index (%s)...", reason)
            documents = await self._fetch_snapshot()
            embeddings = await self._embed(documents)
            count = self.store.rebuild(documents, embeddings)
        except Exception as exc:
            failure = exc
        finally:
            self.store.abort_rebuild()
            self._rebuilding = False

        duration = time.perf_counter() - started
        if failure is not None:
            logger.error("Failed to build search index: %s", failure)
            self._publish(
                LifecycleEvent(LifecycleEventKind.BUILD_FAILED, reason=reason, duration=duration, error=failure)
            )
            # Misconfiguration is fatal to whoever triggered the rebuild.
            if raise_errors or isinstance(failure, ConfigurationError):
                raise failure
            return False

        logger.info("Search index built: %d entries in %.1fms", count, duration * 1000)
        self._publish(
            LifecycleEvent(LifecycleEventKind.BUILD_COMPLETED, reason=reason, entry_count=count, duration=duration)
        )
        return True

    async def _fetch_snapshot(self) -> List[ContextDocument]:
        try:
            documents = await _maybe_await(self.provider.list_all())
        except Exception as exc:
            raise SnapshotUnavailableError(f"Snapshot fetch failed: {exc}") from exc
        return list(documents or [])

    async def _embed(self, documents: Sequence[ContextDocument]) -> Optional[List[List[float]]]:
        if self.embedder is None or not documents:
            return None
        texts = [embedding_text(d) for d in documents]
        return await asyncio.to_thread(self.embedder.embed_batch, texts)

    # ------------------------------------------------------------------
    # Periodic refresh
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Start the refresh timer on the running event loop."""
        if self._timer is not None and not self._timer.done():
            return
        self._timer = asyncio.get_running_loop().create_task(self._run_timer())

    async def stop(self) -> None:
        timer, self._timer = self._timer, None
        if timer is None:
            return
        timer.cancel()
        try:
            await timer
        except asyncio.CancelledError:
            pass

    async def _run_timer(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            if self._rebuilding:
                continue
            try:
                await self.rebuild(reason="timer", raise_errors=False)
            except ConfigurationError:
                logger.exception("Periodic index refresh failed")
