"""Keeps the durable copy of the state blob in step with the in-memory map.

Saves are fire-and-forget: :meth:`PersistenceSync.schedule_save` only
enqueues a snapshot, and a single worker task writes snapshots to the
backend.  A request is acknowledged once the in-memory mutation is done, so
an acknowledged change is not durable until the worker's next successful
save.  Each snapshot gets exactly one attempt; failures are logged and
recorded in :attr:`PersistenceSync.last_outcome`, never retried or raised.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, ValidationError

from pyosb.exceptions import PersistenceError
from pyosb.persistence.gateway import KeyValueStore
from pyosb.state.blob import StateBlob

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SaveOutcome(BaseModel):
    """Result of the most recent save attempt."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    attempted_at: datetime
    instances: int
    error: str | None = None


class PersistenceSync:
    """Bridges :class:`InstanceStore` snapshots to a :class:`KeyValueStore`."""

    def __init__(
        self,
        backend: KeyValueStore,
        key: str,
        *,
        queue_size: int = 64,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._backend = backend
        self._key = key
        self._clock = clock
        self._queue: asyncio.Queue[StateBlob] = asyncio.Queue(maxsize=max(1, queue_size))
        self._worker: asyncio.Task[None] | None = None
        self._initialized = False
        self._persistent = False
        self._last_outcome: SaveOutcome | None = None

    @property
    def key(self) -> str:
        return self._key

    @property
    def persistent(self) -> bool:
        """Whether saves reach the backend (``False`` in in-memory-only mode)."""
        return self._persistent

    @property
    def last_outcome(self) -> SaveOutcome | None:
        return self._last_outcome

    async def init_store(self) -> bool:
        """Prepare the backend once.

        On failure the broker keeps running in in-memory-only mode and every
        later save is skipped.
        """
        if self._initialized:
            return self._persistent
        try:
            await self._backend.create_store(self._key)
        except PersistenceError as exc:
            _logger.error("Error creating key value store %s; state will not be persistent: %s", self._key, exc)
            self._persistent = False
        except Exception:
            _logger.exception("Unexpected failure creating key value store %s; state will not be persistent", self._key)
            self._persistent = False
        else:
            self._persistent = True
        self._initialized = True
        return self._persistent

    async def load(self) -> StateBlob | None:
        """Read the stored blob; ``None`` means start from an empty map."""
        if not self._persistent:
            _logger.warning("Key value store unavailable - state will be set to default")
            return None
        try:
            raw = await self._backend.load(self._key)
        except PersistenceError as exc:
            _logger.warning("Could not load state - data will be set to default: %s", exc)
            return None
        except Exception:
            _logger.exception("Unexpected failure loading state - data will be set to default")
            return None
        if raw is None:
            _logger.warning("No stored state under %s - data will be set to default", self._key)
            return None
        try:
            blob = StateBlob.decode(raw)
        except ValidationError as exc:
            _logger.warning(
                "Stored state under %s is malformed - data will be set to default (%d error(s))",
                self._key,
                exc.error_count(),
            )
            return None
        _logger.debug("Loaded %d service instance(s) from %s", len(blob), self._key)
        return blob

    # ------------------------------------------------------------------
    # Save worker
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the save worker on the running event loop (idempotent)."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run(), name=f"pyosb-save-{self._key}")

    def schedule_save(self, blob: StateBlob) -> None:
        """Queue *blob* for saving and return immediately."""
        if not self._persistent:
            _logger.debug("Skipping save of %s; running in-memory only", self._key)
            return
        self.start()
        if self._queue.full():
            # Every blob is a full snapshot, so the oldest pending one is redundant.
            self._queue.get_nowait()
            self._queue.task_done()
            _logger.debug("Save queue full; dropped oldest pending snapshot")
        self._queue.put_nowait(blob)

    async def flush(self) -> None:
        """Wait until every queued snapshot has been attempted."""
        if self._worker is None:
            return
        await self._queue.join()

    async def close(self) -> None:
        """Flush pending saves, stop the worker and release the backend."""
        await self.flush()
        worker = self._worker
        self._worker = None
        if worker is not None:
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker
        await self._backend.close()

    async def _run(self) -> None:
        while True:
            blob = await self._queue.get()
            # Coalesce: only the newest pending snapshot needs writing.
            while not self._queue.empty():
                self._queue.task_done()
                blob = self._queue.get_nowait()
            try:
                await self._save(blob)
            finally:
                self._queue.task_done()

    async def _save(self, blob: StateBlob) -> None:
        attempted_at = self._clock()
        try:
            await self._backend.save(self._key, blob.encode())
        except PersistenceError as exc:
            _logger.error("Error saving data to key value store %s: %s", self._key, exc)
            self._last_outcome = SaveOutcome(ok=False, attempted_at=attempted_at, instances=len(blob), error=str(exc))
            return
        except Exception as exc:
            _logger.exception("Unexpected failure saving data to key value store %s", self._key)
            self._last_outcome = SaveOutcome(ok=False, attempted_at=attempted_at, instances=len(blob), error=repr(exc))
            return
        _logger.debug("Saved %d service instance(s) to %s", len(blob), self._key)
        self._last_outcome = SaveOutcome(ok=True, attempted_at=attempted_at, instances=len(blob))
