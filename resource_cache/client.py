"""
Consumer-facing cache client.

Wires the store, the pending-operation registry, the subscription manager
and the mutation engine together. Create one client per independent cache;
there is no process-wide instance.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from config.settings import settings

from .coalescer import PendingOperationRegistry
from .core import ResourceState, Status
from .errors import LoaderNotConfigured
from .mutation import MutationEngine
from .policies import OptionsLike, QueryOptions, resolve_options
from .retry import Classifier, Loader, RetryController
from .store import CacheStore
from .subscriptions import SubscriptionManager

logger = logging.getLogger("cache.client")


@dataclass(frozen=True)
class _Binding:
    """Loader and options last used for a key."""
    loader: Loader
    options: QueryOptions


class Observation:
    """
    A consumer's live view of one key.

    State is updated synchronously by the client's subscription fan-out;
    ``on_change`` (if given) is called with the new ResourceState each time.
    """

    def __init__(
        self,
        client: "ResourceClient",
        key: str,
        on_change: Optional[Callable[[ResourceState], None]] = None,
    ):
        self.key = key
        self._client = client
        self._on_change = on_change
        self._state = ResourceState(key=key, status=Status.IDLE)
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def state(self) -> ResourceState:
        return self._state

    @property
    def status(self) -> Status:
        return self._state.status

    @property
    def current_value(self) -> Any:
        return self._state.value

    @property
    def current_error(self) -> Optional[BaseException]:
        return self._state.error

    @property
    def is_loading(self) -> bool:
        """True while an operation for this key is in flight."""
        return self._client.registry.is_pending(self.key)

    @property
    def is_subscribed(self) -> bool:
        return self._unsubscribe is not None

    def _apply(self, state: ResourceState) -> None:
        if state.status is Status.LOADING:
            # Keep showing the last value and error while reloading
            state = ResourceState(
                key=self.key,
                status=Status.LOADING,
                value=self._state.value,
                error=self._state.error,
            )
        self._state = state
        if self._on_change is not None:
            self._on_change(state)

    async def result(self) -> Any:
        """
        Wait for the in-flight operation, if any, and return the value.

        Raises:
            The operation's terminal error, or the last error observed
        """
        op = self._client.registry.get(self.key)
        if op is not None:
            return await asyncio.shield(op.future)
        if self._state.status is Status.ERROR and self._state.error is not None:
            raise self._state.error
        return self._state.value

    async def refetch(self) -> Any:
        """Reload the key even if the cached value is fresh."""
        return await self._client.refetch(self.key)

    def unsubscribe(self) -> None:
        """Stop receiving updates. In-flight loads keep running."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __repr__(self) -> str:
        return f"Observation(key={self.key!r}, status={self.status.value})"


class ResourceClient:
    """
    Asynchronous resource cache with:
    - TTL-based freshness
    - Deduplication of concurrent loads per key
    - Retry with exponential backoff for transient failures
    - Subscriber notification and wake-triggered refetch
    - Optimistic mutations with rollback

    Usage:
        client = ResourceClient(loader=fetch_user)
        view = client.observe("user:42", options={"ttl": 60})
        user = await view.result()
    """

    def __init__(
        self,
        loader: Optional[Loader] = None,
        options: OptionsLike = None,
        classifier: Optional[Classifier] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the client.

        Args:
            loader: Default loader for keys observed without one
            options: Defaults for every key (merged over config settings)
            classifier: Maps a loader error to TRANSIENT or TERMINAL
            clock: Time source in seconds
            sleep: Coroutine used for backoff waits
        """
        self._defaults = resolve_options(QueryOptions.from_settings(settings), options)
        self._loader = loader
        self._classifier = classifier
        self._sleep = sleep
        self._bindings: Dict[str, _Binding] = {}

        self.store = CacheStore(default_ttl=self._defaults.ttl_seconds, clock=clock)
        self.subscriptions = SubscriptionManager(refetch=self._trigger_refetch)
        self.registry = PendingOperationRegistry(self.store, on_settled=self._publish_settled)
        self.mutations = MutationEngine(self.store, self.subscriptions)

    @property
    def defaults(self) -> QueryOptions:
        return self._defaults

    def _bind(
        self,
        key: str,
        loader: Optional[Loader],
        options: OptionsLike,
    ) -> _Binding:
        previous = self._bindings.get(key)
        loader = loader or (previous.loader if previous else None) or self._loader
        if loader is None:
            raise LoaderNotConfigured(f"No loader configured for {key}", key=key)

        if options is not None:
            resolved = resolve_options(self._defaults, options)
        elif previous is not None:
            resolved = previous.options
        else:
            resolved = self._defaults

        binding = _Binding(loader=loader, options=resolved)
        self._bindings[key] = binding
        return binding

    def _start(self, key: str, binding: _Binding) -> asyncio.Future:
        """Start a load for key, or join the one already in flight."""
        joining = self.registry.is_pending(key)
        controller = RetryController(
            policy=binding.options.retry_policy(),
            classifier=self._classifier,
            sleep=self._sleep,
        )
        future = self.registry.load(key, binding.loader, controller, binding.options.ttl_seconds)
        if not joining:
            # The operation task has not run yet, so LOADING precedes any result
            entry = self.store.get_entry(key)
            self.subscriptions.publish(
                ResourceState.loading(key, entry.value if entry else None)
            )
        return future

    def _publish_settled(self, key: str, value: Any, error: Optional[BaseException]) -> None:
        if error is None:
            self.subscriptions.publish(ResourceState.success(key, value))
            return
        entry = self.store.get_entry(key)
        self.subscriptions.publish(
            ResourceState.failure(key, error, value=entry.value if entry else None)
        )

    def _trigger_refetch(self, key: str) -> Optional[asyncio.Future]:
        binding = self._bindings.get(key)
        if binding is None:
            logger.warning(f"Refetch requested for {key} but it was never loaded")
            return None
        return self._start(key, binding)

    def observe(
        self,
        key: str,
        loader: Optional[Loader] = None,
        options: OptionsLike = None,
        on_change: Optional[Callable[[ResourceState], None]] = None,
    ) -> Observation:
        """
        Start observing a key.

        Serves a fresh cached value directly; otherwise starts a load or
        joins the one in flight. Needs a running event loop when a load
        has to start.

        Args:
            key: Resource key
            loader: Loader for this key (falls back to the last one used, then the client default)
            options: QueryOptions or a partial mapping (ttl, max_attempts, base_delay, ...)
            on_change: Called with every state change delivered to this observation

        Returns:
            Observation exposing current_value, is_loading, current_error,
            refetch() and unsubscribe()
        """
        binding = self._bind(key, loader, options)
        observation = Observation(self, key, on_change=on_change)
        observation._unsubscribe = self.subscriptions.subscribe(
            key,
            observation._apply,
            refetch_on_wake=binding.options.refetch_on_wake,
        )

        if self.store.has_fresh(key):
            observation._apply(ResourceState.success(key, self.store.get(key)))
            return observation

        if self.registry.is_pending(key):
            observation._apply(ResourceState.loading(key))
        try:
            self._start(key, binding)
        except Exception:
            # The caller never receives the observation, so drop its subscription
            observation.unsubscribe()
            raise
        return observation

    async def fetch(
        self,
        key: str,
        loader: Optional[Loader] = None,
        options: OptionsLike = None,
        force: bool = False,
    ) -> Any:
        """
        Return the value for key, loading it if absent, stale, or forced.

        Raises:
            TerminalFailure: The loader failed with a non-retryable error
            AttemptsExhausted: Every attempt failed with a transient error
        """
        binding = self._bind(key, loader, options)
        if not force and self.store.has_fresh(key):
            return self.store.get(key)
        return await asyncio.shield(self._start(key, binding))

    async def refetch(self, key: str) -> Any:
        """Reload a previously loaded key, ignoring freshness."""
        return await self.fetch(key, force=True)

    async def mutate(
        self,
        key: str,
        optimistic_updater: Callable[[Any], Any],
        remote_op: Callable[[Any], Any],
    ) -> Any:
        """Optimistically update key, then commit or roll back on remote_op's outcome."""
        return await self.mutations.mutate(key, optimistic_updater, remote_op)

    def on_wake_signal(self) -> set:
        """Refetch every key that currently has a subscriber wanting wake refetch."""
        return self.subscriptions.on_wake_signal()

    def invalidate(self, key: Optional[str] = None) -> int:
        return self.store.invalidate(key)

    def invalidate_prefix(self, prefix: str) -> int:
        return self.store.invalidate_prefix(prefix)

    def purge_expired(self) -> int:
        return self.store.purge_expired()

    async def drain(self) -> None:
        """Wait until no operation is in flight. Failures are not raised."""
        while self.registry.active_requests:
            futures = [
                asyncio.shield(op.future) for op in
                (self.registry.get(k) for k in self.registry.pending_keys())
                if op is not None
            ]
            await asyncio.gather(*futures, return_exceptions=True)

    def get_stats(self) -> Dict[str, Any]:
        """Get client statistics."""
        return {
            "store": self.store.get_stats(),
            "coalescer": self.registry.get_stats(),
            "subscriptions": self.subscriptions.get_stats(),
            "mutations": self.mutations.get_stats(),
        }
