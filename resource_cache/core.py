"""
Entries, pending operations, subscribers and the states published for a key.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from enum import Enum


class Status(Enum):
    """Lifecycle states published to subscribers of a key."""
    IDLE = "idle"         # Nothing loaded yet
    LOADING = "loading"   # An operation is in flight
    SUCCESS = "success"   # Value available
    ERROR = "error"       # Last operation ended in a terminal error


class FailureKind(Enum):
    """Classification of a failed attempt."""
    TRANSIENT = "transient"  # Retryable: timeouts, transport errors
    TERMINAL = "terminal"    # Not retryable: validation, permission


@dataclass(frozen=True)
class CacheEntry:
    """
    Most recent successful value for a key.

    Entries are never changed in place; a refetch or mutation commit
    replaces the whole entry.
    """
    key: str
    value: Any
    stored_at: float
    ttl_seconds: float

    def age(self, now: float) -> float:
        """Seconds since the value was stored."""
        return now - self.stored_at

    def is_fresh(self, now: float) -> bool:
        """Check if the value is still within its TTL (boundary inclusive)."""
        return self.age(now) <= self.ttl_seconds


@dataclass
class PendingOperation:
    """Tracks an in-flight load shared by every caller that joins it."""
    key: str
    future: asyncio.Future
    join_count: int = 0
    attempt: int = 0
    started_at: float = 0.0
    task: Optional[asyncio.Task] = None


@dataclass
class Subscriber:
    """A consumer observing one key."""
    key: str
    notify: Callable[["ResourceState"], None]
    active: bool = True
    refetch_on_wake: bool = True


@dataclass(frozen=True)
class MutationSnapshot:
    """
    State captured right before an optimistic write.

    previous_entry is the whole prior entry (None when the key was absent),
    so a rollback puts the store back exactly as it was.
    """
    key: str
    previous_entry: Optional[CacheEntry]
    optimistic_value: Any

    @property
    def previous_value(self) -> Any:
        return self.previous_entry.value if self.previous_entry else None


@dataclass(frozen=True)
class ResourceState:
    """
    Payload delivered to subscribers on every state change.
    """
    key: str
    status: Status
    value: Any = None
    error: Optional[BaseException] = None
    optimistic: bool = False

    @classmethod
    def loading(cls, key: str, value: Any = None) -> "ResourceState":
        return cls(key=key, status=Status.LOADING, value=value)

    @classmethod
    def success(cls, key: str, value: Any, optimistic: bool = False) -> "ResourceState":
        return cls(key=key, status=Status.SUCCESS, value=value, optimistic=optimistic)

    @classmethod
    def failure(cls, key: str, error: BaseException, value: Any = None) -> "ResourceState":
        return cls(key=key, status=Status.ERROR, value=value, error=error)

    @property
    def is_loading(self) -> bool:
        return self.status is Status.LOADING

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging or debugging output."""
        result: Dict[str, Any] = {
            "key": self.key,
            "status": self.status.value,
        }
        if self.optimistic:
            result["optimistic"] = True
        if self.error is not None:
            result["error"] = f"{type(self.error).__name__}: {self.error}"
        return result
