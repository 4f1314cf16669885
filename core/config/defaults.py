# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for store access, leases, locks and retries
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides sensible defaults for the coordination layer.
These can be overridden via environment variables.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
import socket
from dataclasses import dataclass, field
from typing import Optional, Tuple

from core.contracts import ConsistencyMode


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class CassandraDefaults:
    """
    Defaults for the backing Cassandra store.

    Controls contact points, keyspace, auth and driver tuning.
    """
    contact_points: Tuple[str, ...] = ("127.0.0.1",)
    port: int = 9042
    keyspace: str = "reaper_db"
    username: Optional[str] = None
    password: Optional[str] = None
    local_dc: Optional[str] = None

    # Statement-level network timeout (seconds); unrelated to row TTLs
    request_timeout: float = 10.0
    mode: ConsistencyMode = ConsistencyMode.CASSANDRA

    # Pooling
    executor_threads: int = 2
    connect_timeout: float = 5.0

    activate_query_logger: bool = False
    skip_schema_check: bool = False

    @classmethod
    def from_env(cls) -> "CassandraDefaults":
        """Create from environment variables."""
        contact_points = os.getenv("CASSANDRA_CONTACT_POINTS", "127.0.0.1")
        return cls(
            contact_points=tuple(p.strip() for p in contact_points.split(",") if p.strip()),
            port=int(os.getenv("CASSANDRA_PORT", 9042)),
            keyspace=os.getenv("CASSANDRA_KEYSPACE", "reaper_db"),
            username=os.getenv("CASSANDRA_USERNAME"),
            password=os.getenv("CASSANDRA_PASSWORD"),
            local_dc=os.getenv("CASSANDRA_LOCAL_DC"),
            request_timeout=float(os.getenv("CASSANDRA_REQUEST_TIMEOUT", 10.0)),
            executor_threads=int(os.getenv("CASSANDRA_EXECUTOR_THREADS", 2)),
            mode=ConsistencyMode(os.getenv("CASSANDRA_MODE", "cassandra").lower()),
            activate_query_logger=_env_bool("CASSANDRA_QUERY_LOGGER", False),
            skip_schema_check=_env_bool("REPAIR_SKIP_SCHEMA_CHECK", False),
        )


@dataclass(frozen=True)
class CoordinationDefaults:
    """
    Defaults for leases, node locks, heartbeats and retries.

    Renewal loops run at ttl / renew_divisor so that a single missed
    renewal never lets a live claim expire.
    """
    lead_ttl_seconds: int = 90
    lock_ttl_seconds: int = 90
    renew_divisor: int = 3

    heartbeat_interval_seconds: float = 30.0

    # Read timeouts on idempotent statements
    read_retry_attempts: int = 10
    read_retry_delay_seconds: float = 0.1

    instance_address: str = field(default_factory=socket.gethostname)

    @property
    def lead_renew_interval(self) -> float:
        return self.lead_ttl_seconds / self.renew_divisor

    @property
    def lock_renew_interval(self) -> float:
        return self.lock_ttl_seconds / self.renew_divisor

    @classmethod
    def from_env(cls) -> "CoordinationDefaults":
        """Create from environment variables."""
        return cls(
            lead_ttl_seconds=int(os.getenv("LEAD_TTL_SECONDS", 90)),
            lock_ttl_seconds=int(os.getenv("LOCK_TTL_SECONDS", 90)),
            renew_divisor=int(os.getenv("RENEW_DIVISOR", 3)),
            heartbeat_interval_seconds=float(os.getenv("HEARTBEAT_INTERVAL_SEC", 30.0)),
            read_retry_attempts=int(os.getenv("READ_RETRY_ATTEMPTS", 10)),
            read_retry_delay_seconds=float(os.getenv("READ_RETRY_DELAY_SEC", 0.1)),
            instance_address=os.getenv("INSTANCE_ADDRESS", socket.gethostname()),
        )


@dataclass
class Defaults:
    """Container for all default configurations."""
    cassandra: CassandraDefaults = field(default_factory=CassandraDefaults)
    coordination: CoordinationDefaults = field(default_factory=CoordinationDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            cassandra=CassandraDefaults.from_env(),
            coordination=CoordinationDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "CassandraDefaults",
    "CoordinationDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
