"""
Registry of in-flight loads, at most one per key.

A caller arriving while a key is loading gets the future of the running
operation. The registry entry is dropped before that future settles.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from .core import PendingOperation
from .retry import Loader, RetryController
from .store import CacheStore

logger = logging.getLogger("cache.coalescer")

SettleListener = Callable[[str, Any, Optional[BaseException]], None]


class PendingOperationRegistry:
    """
    Ensures concurrent loads for the same key share one operation.

    Pattern:
    - First load for a key starts the operation (through the retry controller)
    - Subsequent loads for the same key get the same future
    - When the operation settles it leaves the registry, the value is
      written to the store, the settle listener runs, then the future resolves

    Usage:
        registry = PendingOperationRegistry(store)
        value = await registry.load("standings:39", fetch_standings, controller)
    """

    def __init__(
        self,
        store: CacheStore,
        on_settled: Optional[SettleListener] = None,
    ):
        """
        Initialize the registry.

        Args:
            store: Cache store receiving successful values
            on_settled: Called with (key, value, error) once per operation
        """
        self._store = store
        self._on_settled = on_settled
        self._pending: Dict[str, PendingOperation] = {}
        self._stats = {
            "started": 0,
            "joined": 0,
            "succeeded": 0,
            "failed": 0,
        }

    def load(
        self,
        key: str,
        loader: Loader,
        controller: RetryController,
        ttl_seconds: Optional[float] = None,
    ) -> asyncio.Future:
        """
        Either join an existing in-flight operation or start a new one.

        Must be called from a running event loop.

        Args:
            key: Resource key
            loader: Called as loader(key) if a new operation starts
            controller: Retry controller wrapping the loader
            ttl_seconds: TTL for the stored value

        Returns:
            Future shared by every caller of this operation
        """
        op = self._pending.get(key)
        if op is not None:
            op.join_count += 1
            self._stats["joined"] += 1
            logger.debug(f"Coalescing load for {key} (joined: {op.join_count})")
            return op.future

        loop = asyncio.get_running_loop()
        op = PendingOperation(
            key=key,
            future=loop.create_future(),
            join_count=1,
            started_at=self._store.now(),
        )
        self._pending[key] = op
        self._stats["started"] += 1
        logger.debug(f"Initiating load for {key}")
        op.task = loop.create_task(self._run(op, loader, controller, ttl_seconds))
        return op.future

    async def _run(
        self,
        op: PendingOperation,
        loader: Loader,
        controller: RetryController,
        ttl_seconds: Optional[float],
    ) -> None:
        def record_attempt(attempt: int) -> None:
            op.attempt = attempt

        try:
            value = await controller.run(op.key, loader, on_attempt=record_attempt)
        except asyncio.CancelledError:
            self._release(op)
            op.future.cancel()
            raise
        except Exception as e:
            self._release(op)
            self._stats["failed"] += 1
            logger.warning(f"Load failed for {op.key}: {e}")
            self._notify(op.key, None, e)
            if not op.future.done():
                op.future.set_exception(e)
                # Mark retrieved so an operation nobody awaits does not warn
                op.future.exception()
            return

        self._release(op)
        self._stats["succeeded"] += 1
        self._store.set(op.key, value, ttl_seconds)
        self._notify(op.key, value, None)
        if not op.future.done():
            op.future.set_result(value)

    def _release(self, op: PendingOperation) -> None:
        if self._pending.get(op.key) is op:
            del self._pending[op.key]

    def _notify(self, key: str, value: Any, error: Optional[BaseException]) -> None:
        if self._on_settled is None:
            return
        try:
            self._on_settled(key, value, error)
        except Exception:
            logger.exception(f"Settle listener failed for {key}")

    def get(self, key: str) -> Optional[PendingOperation]:
        """The pending operation for a key, if any."""
        return self._pending.get(key)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def pending_keys(self) -> List[str]:
        return list(self._pending.keys())

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight operations."""
        return len(self._pending)

    def get_stats(self) -> Dict[str, Any]:
        """Get registry statistics."""
        return {
            **self._stats,
            "active_requests": len(self._pending),
            "active_keys": list(self._pending.keys()),
        }
