"""
Subscriber registry with ordered fan-out and wake-triggered refetch.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from .core import ResourceState, Subscriber

logger = logging.getLogger("cache.subscriptions")

Unsubscribe = Callable[[], None]


class SubscriptionManager:
    """
    Tracks which consumers observe which keys.

    - Notifications for one key reach its subscribers synchronously, in
      registration order, all with the same payload
    - No ordering is defined between different keys
    - A wake signal refetches only keys that have an active subscriber
    """

    def __init__(self, refetch: Optional[Callable[[str], Any]] = None):
        """
        Args:
            refetch: Called with a key when a wake signal asks for a reload
        """
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._refetch = refetch

    def subscribe(
        self,
        key: str,
        notify: Callable[[ResourceState], None],
        refetch_on_wake: bool = True,
    ) -> Unsubscribe:
        """
        Register a subscriber for a key.

        Returns:
            Function removing the subscriber; calling it twice is harmless
        """
        subscriber = Subscriber(key=key, notify=notify, refetch_on_wake=refetch_on_wake)
        self._subscribers.setdefault(key, []).append(subscriber)
        logger.debug(f"Subscribed to {key} (subscribers: {len(self._subscribers[key])})")

        def unsubscribe() -> None:
            if not subscriber.active:
                return
            subscriber.active = False
            subscribers = self._subscribers.get(key)
            if subscribers is None:
                return
            if subscriber in subscribers:
                subscribers.remove(subscriber)
            if not subscribers:
                del self._subscribers[key]
            logger.debug(f"Unsubscribed from {key}")

        return unsubscribe

    def publish(self, state: ResourceState) -> int:
        """
        Deliver a state change to every active subscriber of its key.

        A subscriber that raises is logged and skipped.

        Returns:
            Number of subscribers notified
        """
        # Copy so subscribers may unsubscribe during dispatch
        subscribers = list(self._subscribers.get(state.key, ()))
        delivered = 0
        for subscriber in subscribers:
            if not subscriber.active:
                continue
            try:
                subscriber.notify(state)
            except Exception:
                logger.exception(f"Subscriber for {state.key} failed on {state.status.value}")
            delivered += 1
        return delivered

    def subscriber_count(self, key: str) -> int:
        return sum(1 for s in self._subscribers.get(key, ()) if s.active)

    def active_keys(self) -> Set[str]:
        """Keys with at least one active subscriber."""
        return {
            key for key, subscribers in self._subscribers.items()
            if any(s.active for s in subscribers)
        }

    def wake_keys(self) -> Set[str]:
        """Active keys where at least one subscriber wants refetch on wake."""
        return {
            key for key, subscribers in self._subscribers.items()
            if any(s.active and s.refetch_on_wake for s in subscribers)
        }

    def on_wake_signal(self) -> Set[str]:
        """
        Refetch every observed key, ignoring cache freshness.

        Keys with no active subscriber are left alone, even if cached.

        Returns:
            Keys that were refetched
        """
        keys = self.wake_keys()
        if not keys:
            return keys
        if self._refetch is None:
            logger.warning("Wake signal received but no refetch handler is set")
            return set()

        logger.info(f"Wake signal: refetching {len(keys)} keys")
        for key in sorted(keys):
            self._refetch(key)
        return keys

    def get_stats(self) -> Dict[str, Any]:
        """Get subscription statistics."""
        return {
            "observed_keys": len(self.active_keys()),
            "subscribers": sum(self.subscriber_count(k) for k in self._subscribers),
        }
