"""
Asynchronous resource cache with TTL, request coalescing, retry with
backoff, subscriber notification and optimistic mutation.
"""
from .core import (
    CacheEntry,
    FailureKind,
    MutationSnapshot,
    PendingOperation,
    ResourceState,
    Status,
    Subscriber,
)
from .errors import (
    AttemptsExhausted,
    LoaderNotConfigured,
    ResourceCacheError,
    TerminalFailure,
    TransientFailure,
)
from .store import CacheStore
from .retry import RetryController, RetryPolicy, default_classifier
from .coalescer import PendingOperationRegistry
from .subscriptions import SubscriptionManager
from .mutation import MutationEngine
from .policies import QueryOptions, resolve_options
from .client import Observation, ResourceClient

__all__ = [
    # Core types
    "CacheEntry",
    "FailureKind",
    "MutationSnapshot",
    "PendingOperation",
    "ResourceState",
    "Status",
    "Subscriber",
    # Errors
    "AttemptsExhausted",
    "LoaderNotConfigured",
    "ResourceCacheError",
    "TerminalFailure",
    "TransientFailure",
    # Components
    "CacheStore",
    "RetryController",
    "RetryPolicy",
    "default_classifier",
    "PendingOperationRegistry",
    "SubscriptionManager",
    "MutationEngine",
    # Options
    "QueryOptions",
    "resolve_options",
    # Client
    "Observation",
    "ResourceClient",
]
