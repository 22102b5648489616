"""
Tests for query option resolution and settings defaults.
"""
import pytest

from config.settings import Settings
from resource_cache import QueryOptions, RetryPolicy, resolve_options


def test_defaults_from_settings(monkeypatch):
    """RESOURCE_CACHE_* environment variables seed the defaults"""
    monkeypatch.setenv("RESOURCE_CACHE_DEFAULT_TTL_SECONDS", "12.5")
    monkeypatch.setenv("RESOURCE_CACHE_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("RESOURCE_CACHE_REFETCH_ON_WAKE", "false")

    options = QueryOptions.from_settings(Settings())

    assert options.ttl_seconds == 12.5
    assert options.max_attempts == 5
    assert options.refetch_on_wake is False


def test_resolve_none_returns_defaults():
    defaults = QueryOptions()
    assert resolve_options(defaults, None) is defaults


def test_resolve_mapping_with_aliases():
    options = resolve_options(QueryOptions(), {"ttl": 30, "timeout": 2.0, "max_attempts": 4})
    assert options.ttl_seconds == 30
    assert options.attempt_timeout == 2.0
    assert options.max_attempts == 4
    assert options.base_delay == QueryOptions().base_delay


def test_resolve_full_options_replaces_defaults():
    explicit = QueryOptions(ttl_seconds=1)
    assert resolve_options(QueryOptions(), explicit) is explicit


def test_unknown_option_rejected():
    with pytest.raises(ValueError, match="Unknown query option"):
        resolve_options(QueryOptions(), {"stale_time": 5})


@pytest.mark.parametrize("overrides", [
    {"ttl": -1},
    {"max_attempts": 0},
    {"base_delay": -0.5},
])
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValueError):
        resolve_options(QueryOptions(), overrides)


def test_retry_policy_from_options():
    options = QueryOptions(max_attempts=4, base_delay=0.2, max_delay=None, attempt_timeout=1.0)
    assert options.retry_policy() == RetryPolicy(
        max_attempts=4, base_delay=0.2, max_delay=None, attempt_timeout=1.0
    )


def test_to_dict_round_trips_field_names():
    assert set(QueryOptions().to_dict()) == {
        "ttl_seconds",
        "max_attempts",
        "base_delay",
        "max_delay",
        "attempt_timeout",
        "refetch_on_wake",
    }
