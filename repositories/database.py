# ============================================================================
# CASSANDRA SESSION
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Async-facing Cassandra session management
# PURPOSE: Build the cluster, prepare statements, execute off the event loop
# CREATED: 19 OCT 2026
# ============================================================================
"""
Cassandra Session

Manages the driver Cluster/Session used by every coordination registry.
Singleton pattern ensures one session per application.

Blocking driver calls run in the default executor so the asyncio loop is
never blocked; fire-and-forget writes use the driver's own async path and
are not awaited.

Usage:
    from repositories.database import get_session

    session = await get_session()
    stmt = await session.prepare("SELECT * FROM leader", idempotent=True)
    result = await session.execute(stmt)
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from cassandra import ConsistencyLevel
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import EXEC_PROFILE_DEFAULT, Cluster, ExecutionProfile
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy
from cassandra.query import BatchStatement, BatchType, dict_factory

from core.config import CassandraDefaults, CoordinationDefaults, get_defaults
from infrastructure.retry_policy import CoordinationRetryPolicy

logger = logging.getLogger(__name__)

# Global session instance
_session: Optional["CoordinationSession"] = None

# Driver metrics register process-wide; only the first cluster may enable them
_metrics_lock = threading.Lock()
_metrics_registered = False


# ============================================================================
# TABLE CONSTANTS
# ============================================================================

TABLE_LEADER = "leader"
TABLE_RUNNING_REAPERS = "running_reapers"
TABLE_RUNNING_REPAIRS = "running_repairs"
TABLE_REPAIR_RUN = "repair_run"


# ============================================================================
# RESULTS
# ============================================================================

@dataclass
class StatementResult:
    """
    Materialized result of one statement.

    Rows are dicts (dict_factory). For conditional writes the store adds an
    `[applied]` column to the first row; when it is False the remaining
    columns describe the row(s) that blocked the write.
    """
    rows: List[Dict[str, Any]] = field(default_factory=list)
    applied: bool = True

    @classmethod
    def from_rows(cls, rows: Iterable[Dict[str, Any]]) -> "StatementResult":
        rows = list(rows)
        applied = True
        if rows and "[applied]" in rows[0]:
            applied = bool(rows[0]["[applied]"])
        return cls(rows=rows, applied=applied)

    def one(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None


# ============================================================================
# VERSION HELPERS
# ============================================================================

def parse_version(version: Optional[str]) -> Tuple[int, ...]:
    """Parse a release version such as '3.11.4' or '4.0-rc1' into a tuple."""
    if not version:
        return ()
    parts = []
    for piece in version.split("-")[0].split("."):
        if not piece.isdigit():
            break
        parts.append(int(piece))
    return tuple(parts)


def select_time_function(lowest_version: Optional[str]) -> str:
    """
    Pick the CQL function that turns now() into a timestamp.

    dateOf() was replaced by toTimestamp() in 2.2; the lowest release in
    the fleet decides which one every node understands.
    """
    parsed = parse_version(lowest_version)
    if parsed and parsed < (2, 2):
        return "dateOf"
    return "toTimestamp"


def lowest_release_version(cluster: Cluster) -> Optional[str]:
    """Lowest release_version among the hosts known to the driver."""
    versions = [
        host.release_version
        for host in cluster.metadata.all_hosts()
        if getattr(host, "release_version", None)
    ]
    if not versions:
        return None
    return min(versions, key=parse_version)


def claim_metrics_registration() -> bool:
    """
    Return True exactly once per process.

    Reconnecting after a failed start must not register driver metrics
    a second time.
    """
    global _metrics_registered
    with _metrics_lock:
        if _metrics_registered:
            return False
        _metrics_registered = True
        return True


# ============================================================================
# SESSION WRAPPER
# ============================================================================

class CoordinationSession:
    """
    Thin async-facing wrapper around a driver Session.

    Registries depend only on this interface: prepare, batch, execute,
    execute_nowait and time_function.
    """

    def __init__(self, session, time_function: str = "toTimestamp", cluster: Optional[Cluster] = None):
        self._session = session
        self._cluster = cluster
        self.time_function = time_function

    async def prepare(
        self,
        cql: str,
        consistency_level: Optional[int] = None,
        serial_consistency_level: Optional[int] = None,
        idempotent: bool = True,
    ):
        """
        Prepare a statement and pin its consistency and idempotence.

        Args:
            cql: Statement text
            consistency_level: Overrides the profile default when set
            serial_consistency_level: Paxos consistency for conditional writes
            idempotent: Whether the retry policy may replay it on timeout
        """
        loop = asyncio.get_running_loop()
        statement = await loop.run_in_executor(None, self._session.prepare, cql)
        if consistency_level is not None:
            statement.consistency_level = consistency_level
        if serial_consistency_level is not None:
            statement.serial_consistency_level = serial_consistency_level
        statement.is_idempotent = idempotent
        return statement

    def batch(
        self,
        statements: Iterable[Any],
        consistency_level: Optional[int] = None,
        serial_consistency_level: Optional[int] = None,
        logged: bool = True,
        idempotent: bool = False,
    ) -> BatchStatement:
        """
        Build a batch.

        A batch of conditional statements must target a single partition;
        the store then applies all of them or none.
        """
        batch = BatchStatement(
            batch_type=BatchType.LOGGED if logged else BatchType.UNLOGGED,
            consistency_level=consistency_level,
            serial_consistency_level=serial_consistency_level,
        )
        for statement in statements:
            batch.add(statement)
        batch.is_idempotent = idempotent
        return batch

    async def execute(self, statement) -> StatementResult:
        """
        Execute a statement in the default executor and materialize rows.

        Iterating a ResultSet fetches further pages synchronously, so the
        rows are listed on the executor thread too.
        """
        loop = asyncio.get_running_loop()
        rows = await loop.run_in_executor(None, lambda: list(self._session.execute(statement)))
        return StatementResult.from_rows(rows)

    def execute_nowait(self, statement) -> None:
        """Fire-and-forget execution; failures are logged, never raised."""
        future = self._session.execute_async(statement)
        future.add_errback(self._log_background_failure)

    @staticmethod
    def _log_background_failure(exc: Exception) -> None:
        logger.warning(f"Background statement failed: {exc}")

    def is_connected(self) -> bool:
        return self._session is not None and not self._session.is_shutdown

    def shutdown(self) -> None:
        if self._cluster is not None:
            self._cluster.shutdown()
        elif self._session is not None:
            self._session.shutdown()


# ============================================================================
# CLUSTER CONSTRUCTION
# ============================================================================

def build_cluster(
    config: CassandraDefaults,
    coordination: CoordinationDefaults,
    metrics_enabled: bool = False,
) -> Cluster:
    """
    Build a driver Cluster with the coordination defaults.

    - Coordination retry policy on every statement
    - Default consistency from the deployment mode
    - SERIAL paxos consistency for conditional writes
    - dict rows
    """
    auth = None
    if config.username and config.password:
        auth = PlainTextAuthProvider(config.username, config.password)

    profile = ExecutionProfile(
        load_balancing_policy=TokenAwarePolicy(
            DCAwareRoundRobinPolicy(local_dc=config.local_dc)
        ),
        retry_policy=CoordinationRetryPolicy(
            max_read_attempts=coordination.read_retry_attempts,
            read_retry_delay=coordination.read_retry_delay_seconds,
        ),
        consistency_level=config.mode.default_consistency,
        serial_consistency_level=ConsistencyLevel.SERIAL,
        request_timeout=config.request_timeout,
        row_factory=dict_factory,
    )

    return Cluster(
        contact_points=list(config.contact_points),
        port=config.port,
        auth_provider=auth,
        execution_profiles={EXEC_PROFILE_DEFAULT: profile},
        connect_timeout=config.connect_timeout,
        executor_threads=config.executor_threads,
        metrics_enabled=metrics_enabled and claim_metrics_registration(),
    )


def _log_request(response_future) -> None:
    logger.debug(f"CQL: {response_future.query}")


async def init_session(
    config: Optional[CassandraDefaults] = None,
    coordination: Optional[CoordinationDefaults] = None,
) -> CoordinationSession:
    """
    Initialize the global session.

    Args:
        config: Store settings (defaults to environment)
        coordination: Retry settings (defaults to environment)

    Returns:
        CoordinationSession instance
    """
    global _session

    if _session is not None:
        logger.warning("Session already initialized, returning existing session")
        return _session

    defaults = get_defaults()
    config = config or defaults.cassandra
    coordination = coordination or defaults.coordination

    logger.info(
        f"Connecting to Cassandra: {','.join(config.contact_points)}:{config.port}/"
        f"{config.keyspace} (mode={config.mode.value})"
    )

    cluster = build_cluster(config, coordination)
    loop = asyncio.get_running_loop()
    session = await loop.run_in_executor(None, cluster.connect, config.keyspace)

    if config.activate_query_logger:
        session.add_request_init_listener(_log_request)

    version = lowest_release_version(cluster)
    time_function = select_time_function(version)
    if config.skip_schema_check:
        logger.info("Skipping schema check as requested.")

    _session = CoordinationSession(session, time_function=time_function, cluster=cluster)
    logger.info(f"Cassandra session opened (lowest_version={version}, time_function={time_function})")

    return _session


async def get_session() -> CoordinationSession:
    """Get the global session, initializing if needed."""
    global _session

    if _session is None:
        await init_session()

    return _session


async def close_session() -> None:
    """Close the global session."""
    global _session

    if _session is not None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, _session.shutdown)
        _session = None
        logger.info("Cassandra session closed")


class StoreSession:
    """
    Context manager for session lifecycle.

    Usage:
        async with StoreSession() as session:
            registry = LeaseRegistry(session, instance_id, address)
    """

    def __init__(
        self,
        config: Optional[CassandraDefaults] = None,
        coordination: Optional[CoordinationDefaults] = None,
    ):
        self.config = config
        self.coordination = coordination

    async def __aenter__(self) -> CoordinationSession:
        return await init_session(self.config, self.coordination)

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await close_session()
