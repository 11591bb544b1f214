"""Tests for elector configuration."""

import pytest

from leaderlease import ElectorConfig


def test_defaults() -> None:
    """Test derived defaults."""
    config = ElectorConfig()
    assert config.lease_duration == 10.0
    assert config.renewal_interval == pytest.approx(10.0 / 3)
    assert config.cleanup_interval == 60.0
    assert config.jitter_range == 2.0
    assert config.lock_id == 1
    assert config.schema == "public"
    assert config.create_table_on_init
    assert config.reclaim_grace == 5.0
    assert config.reclaim_scope == "all"
    assert not config.unique_owner_index


def test_intervals_follow_lease_duration() -> None:
    """Test that unset intervals scale with the lease duration."""
    config = ElectorConfig(lease_duration=30.0)
    assert config.renewal_interval == pytest.approx(10.0)
    assert config.cleanup_interval == pytest.approx(180.0)


def test_explicit_values_kept() -> None:
    """Test that explicit values are not overridden by derived defaults."""
    config = ElectorConfig(
        lease_duration=15.0,
        renewal_interval=4.0,
        cleanup_interval=20.0,
        instance_id="node-a",
        lock_id=42,
        schema=None,
    )
    assert config.renewal_interval == 4.0
    assert config.cleanup_interval == 20.0
    assert config.instance_id == "node-a"
    assert config.lock_id == 42
    assert config.schema is None


def test_instance_id_generated() -> None:
    """Test that each config gets its own short random instance id."""
    first = ElectorConfig()
    second = ElectorConfig()
    assert first.instance_id
    assert len(first.instance_id) == 6
    assert first.instance_id != second.instance_id


def test_config_immutability() -> None:
    """Test that configs are immutable."""
    config = ElectorConfig()
    with pytest.raises(AttributeError):  # FrozenInstanceError
        config.lock_id = 2  # type: ignore[misc]


def test_with_overrides() -> None:
    """Test copying a config with changed fields."""
    config = ElectorConfig(instance_id="node-a")
    other = config.with_overrides(lock_id=7)
    assert other.lock_id == 7
    assert other.instance_id == "node-a"
    assert config.lock_id == 1


def test_with_overrides_rederives_intervals() -> None:
    """Test that derived intervals follow a changed lease duration."""
    config = ElectorConfig(lease_duration=60.0)
    assert config.renewal_interval == pytest.approx(20.0)
    assert config.cleanup_interval == pytest.approx(360.0)

    other = config.with_overrides(lease_duration=3.0)
    assert other.renewal_interval == pytest.approx(1.0)
    assert other.cleanup_interval == pytest.approx(18.0)
    assert other.instance_id == config.instance_id


def test_with_overrides_keeps_explicit_intervals() -> None:
    """Test that explicitly set intervals survive a lease duration change."""
    config = ElectorConfig(lease_duration=60.0, renewal_interval=5.0)
    other = config.with_overrides(lease_duration=3.0)
    assert other.renewal_interval == 5.0
    assert other.cleanup_interval == pytest.approx(18.0)

    pinned = ElectorConfig(lease_duration=60.0).with_overrides(lease_duration=3.0, cleanup_interval=9.0)
    assert pinned.renewal_interval == pytest.approx(1.0)
    assert pinned.cleanup_interval == 9.0
    assert pinned.with_overrides(lease_duration=6.0).cleanup_interval == 9.0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"lease_duration": 0},
        {"lease_duration": -1.0},
        {"renewal_interval": 0},
        {"cleanup_interval": -5.0},
        {"jitter_range": -0.1},
        {"reclaim_grace": -1.0},
        {"reclaim_scope": "some"},
        {"instance_id": ""},
    ],
)
def test_invalid_values_rejected(kwargs: dict) -> None:
    """Test validation of configuration values."""
    with pytest.raises(ValueError):
        ElectorConfig(**kwargs)


def test_ratio_not_enforced() -> None:
    """Test that a renewal interval above the lease duration is accepted."""
    config = ElectorConfig(lease_duration=1.0, renewal_interval=5.0)
    assert config.renewal_interval == 5.0


def test_from_env() -> None:
    """Test building a config from environment variables."""
    environ = {
        "LEADER_LEASE_LEASE_DURATION": "12",
        "LEADER_LEASE_RENEWAL_INTERVAL": "3.5",
        "LEADER_LEASE_LOCK_ID": "9",
        "LEADER_LEASE_INSTANCE_ID": " worker-1 ",
        "LEADER_LEASE_SCHEMA": "",
        "LEADER_LEASE_CREATE_TABLE_ON_INIT": "false",
        "LEADER_LEASE_RECLAIM_SCOPE": "leader",
        "UNRELATED": "x",
    }
    config = ElectorConfig.from_env(environ=environ)
    assert config.lease_duration == 12.0
    assert config.renewal_interval == 3.5
    assert config.cleanup_interval == 72.0
    assert config.lock_id == 9
    assert config.instance_id == "worker-1"
    assert config.schema is None
    assert not config.create_table_on_init
    assert config.reclaim_scope == "leader"


def test_from_env_custom_prefix() -> None:
    """Test reading variables under a custom prefix."""
    config = ElectorConfig.from_env(prefix="APP_", environ={"APP_JITTER_RANGE": "0.5"})
    assert config.jitter_range == 0.5


def test_from_env_invalid_number() -> None:
    """Test that unparsable numbers raise ValueError."""
    with pytest.raises(ValueError):
        ElectorConfig.from_env(environ={"LEADER_LEASE_LOCK_ID": "one"})


@pytest.mark.parametrize("raw", ["ture", "2", "enabled", ""])
def test_from_env_invalid_boolean(raw: str) -> None:
    """Test that unrecognised boolean strings raise ValueError."""
    with pytest.raises(ValueError, match="CREATE_TABLE_ON_INIT"):
        ElectorConfig.from_env(environ={"LEADER_LEASE_CREATE_TABLE_ON_INIT": raw})


def test_from_env_false_booleans() -> None:
    """Test the accepted spellings of false."""
    for raw in ("0", "false", "No", " OFF "):
        config = ElectorConfig.from_env(environ={"LEADER_LEASE_UNIQUE_OWNER_INDEX": raw})
        assert config.unique_owner_index is False
