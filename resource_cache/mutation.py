"""
Optimistic writes with commit or rollback.

Overlapping mutations on the same key are neither merged nor queued. Each
one snapshots whatever was current when it started, so a late rollback can
overwrite an earlier mutation's commit (last write wins).
"""
import asyncio
import inspect
import logging
from typing import Any, Callable

from .core import MutationSnapshot, ResourceState, Status
from .store import CacheStore
from .subscriptions import SubscriptionManager

logger = logging.getLogger("cache.mutation")


class MutationEngine:
    """Applies a local change, runs the remote write, then commits or rolls back."""

    def __init__(self, store: CacheStore, subscriptions: SubscriptionManager):
        self._store = store
        self._subscriptions = subscriptions
        self._stats = {
            "committed": 0,
            "rolled_back": 0,
        }

    def _begin(self, key: str, optimistic_updater: Callable[[Any], Any]) -> MutationSnapshot:
        previous_entry = self._store.get_entry(key)
        current = self._store.get(key)
        snapshot = MutationSnapshot(
            key=key,
            previous_entry=previous_entry,
            optimistic_value=optimistic_updater(current),
        )
        self._store.set(key, snapshot.optimistic_value)
        self._subscriptions.publish(
            ResourceState.success(key, snapshot.optimistic_value, optimistic=True)
        )
        return snapshot

    def _rollback(self, snapshot: MutationSnapshot) -> None:
        self._store.restore(snapshot.key, snapshot.previous_entry)
        self._stats["rolled_back"] += 1

    async def mutate(
        self,
        key: str,
        optimistic_updater: Callable[[Any], Any],
        remote_op: Callable[[Any], Any],
    ) -> Any:
        """
        Run an optimistic mutation.

        Args:
            key: Resource key
            optimistic_updater: Maps the current value (None if absent) to
                the value shown while the remote write runs
            remote_op: Called with the optimistic value; its result
                (awaited if needed) becomes the cached value

        Returns:
            The authoritative value from remote_op

        Raises:
            Whatever remote_op raised, after the cache has been restored
        """
        snapshot = self._begin(key, optimistic_updater)
        logger.debug(f"Optimistic write applied for {key}")

        try:
            result = remote_op(snapshot.optimistic_value)
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            self._rollback(snapshot)
            logger.info(f"Mutation for {key} cancelled, rolled back")
            status = Status.SUCCESS if snapshot.previous_entry else Status.IDLE
            self._subscriptions.publish(
                ResourceState(key=key, status=status, value=snapshot.previous_value)
            )
            raise
        except Exception as e:
            self._rollback(snapshot)
            logger.warning(f"Mutation for {key} failed, rolled back: {e}")
            self._subscriptions.publish(
                ResourceState.failure(key, e, value=snapshot.previous_value)
            )
            raise

        self._store.set(key, result)
        self._stats["committed"] += 1
        self._subscriptions.publish(ResourceState.success(key, result))
        logger.debug(f"Mutation committed for {key}")
        return result

    def get_stats(self):
        return dict(self._stats)
