"""
Per-key query options and how they are resolved against defaults.
"""
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional, Union

from .retry import RetryPolicy


@dataclass(frozen=True)
class QueryOptions:
    """
    Caching and retry behavior for one observed key.

    ttl_seconds:      How long a loaded value counts as fresh
    max_attempts:     Loader attempts before giving up (first call included)
    base_delay:       Delay before the first retry, doubled for each later one
    max_delay:        Upper bound on a single retry delay (None = unbounded)
    attempt_timeout:  Per-attempt timeout, expiry counts as transient
    refetch_on_wake:  Reload on wake signals while observed
    """
    ttl_seconds: float = 300.0
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: Optional[float] = 30.0
    attempt_timeout: Optional[float] = None
    refetch_on_wake: bool = True

    def __post_init__(self):
        if self.ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        # Validates the retry fields
        self.retry_policy()

    @classmethod
    def from_settings(cls, settings: Any) -> "QueryOptions":
        """Build defaults from a config.settings.Settings instance."""
        return cls(
            ttl_seconds=settings.default_ttl_seconds,
            max_attempts=settings.max_attempts,
            base_delay=settings.base_delay_seconds,
            max_delay=settings.max_delay_seconds,
            attempt_timeout=settings.attempt_timeout_seconds,
            refetch_on_wake=settings.refetch_on_wake,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            attempt_timeout=self.attempt_timeout,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


OptionsLike = Union[QueryOptions, Mapping[str, Any], None]

_OPTION_NAMES = {f.name for f in fields(QueryOptions)}

# Short names accepted in option mappings
_ALIASES = {
    "ttl": "ttl_seconds",
    "timeout": "attempt_timeout",
}


def resolve_options(defaults: QueryOptions, overrides: OptionsLike = None) -> QueryOptions:
    """
    Merge caller overrides into defaults.

    Args:
        defaults: Options used for anything not overridden
        overrides: A full QueryOptions, a partial mapping, or None

    Returns:
        Resolved QueryOptions

    Raises:
        ValueError: Unknown option name or invalid value
    """
    if overrides is None:
        return defaults
    if isinstance(overrides, QueryOptions):
        return overrides

    changes: Dict[str, Any] = {}
    for name, value in overrides.items():
        name = _ALIASES.get(name, name)
        if name not in _OPTION_NAMES:
            raise ValueError(f"Unknown query option: {name}")
        changes[name] = value
    return replace(defaults, **changes)
