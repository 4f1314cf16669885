# ============================================================================
# STORE SESSION TESTS
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Tests - Session wrapper and cluster construction
# PURPOSE: Verify version handling, result parsing and driver wiring
# CREATED: 19 OCT 2026
# ============================================================================
"""
Store Session Tests

Driver Session/Cluster objects are mocked; no Cassandra needed.

Run with:
    pytest tests/test_database.py -v
"""

import asyncio
import threading
import pytest
from unittest.mock import MagicMock, patch

from cassandra import ConsistencyLevel
from cassandra.cluster import EXEC_PROFILE_DEFAULT
from cassandra.query import BatchType, dict_factory

from core.config import CassandraDefaults, CoordinationDefaults, get_defaults
from core.contracts import ConsistencyMode
from infrastructure import CoordinationRetryPolicy
from repositories import database
from repositories.database import (
    CoordinationSession,
    StatementResult,
    build_cluster,
    lowest_release_version,
    parse_version,
    select_time_function,
)


# ============================================================================
# VERSIONS
# ============================================================================

class TestVersions:

    def test_parse_version(self):
        assert parse_version("3.11.4") == (3, 11, 4)
        assert parse_version("4.0-rc1") == (4, 0)
        assert parse_version(None) == ()

    @pytest.mark.parametrize("version,expected", [
        ("2.1.22", "dateOf"),
        ("2.2.0", "toTimestamp"),
        ("4.1.3", "toTimestamp"),
        (None, "toTimestamp"),
    ])
    def test_time_function(self, version, expected):
        assert select_time_function(version) == expected

    def test_lowest_release_version(self):
        cluster = MagicMock()
        cluster.metadata.all_hosts.return_value = [
            MagicMock(release_version="3.11.10"),
            MagicMock(release_version="3.0.27"),
            MagicMock(release_version=None),
        ]

        assert lowest_release_version(cluster) == "3.0.27"


# ============================================================================
# RESULTS
# ============================================================================

class TestStatementResult:

    def test_applied_column(self):
        assert StatementResult.from_rows([{"[applied]": True}]).applied is True
        failed = StatementResult.from_rows([{"[applied]": False, "reaper_instance_id": "x"}])
        assert failed.applied is False
        assert failed.one()["reaper_instance_id"] == "x"

    def test_plain_rows(self):
        result = StatementResult.from_rows(iter([{"a": 1}, {"a": 2}]))
        assert result.applied is True
        assert len(result.rows) == 2
        assert StatementResult.from_rows([]).one() is None


# ============================================================================
# SESSION WRAPPER
# ============================================================================

class TestCoordinationSession:

    def test_prepare_pins_consistency_and_idempotence(self):
        driver = MagicMock()
        session = CoordinationSession(driver)

        statement = asyncio.run(session.prepare(
            "SELECT * FROM leader",
            consistency_level=ConsistencyLevel.QUORUM,
            serial_consistency_level=ConsistencyLevel.SERIAL,
            idempotent=False,
        ))

        driver.prepare.assert_called_once_with("SELECT * FROM leader")
        assert statement.consistency_level == ConsistencyLevel.QUORUM
        assert statement.serial_consistency_level == ConsistencyLevel.SERIAL
        assert statement.is_idempotent is False

    def test_batch(self):
        session = CoordinationSession(MagicMock())
        first, second = MagicMock(), MagicMock()

        with patch.object(database, "BatchStatement") as batch_cls:
            batch = session.batch(
                [first, second],
                consistency_level=ConsistencyLevel.QUORUM,
                logged=False,
                idempotent=True,
            )

        batch_cls.assert_called_once_with(
            batch_type=BatchType.UNLOGGED,
            consistency_level=ConsistencyLevel.QUORUM,
            serial_consistency_level=None,
        )
        assert batch.add.call_count == 2
        assert batch.is_idempotent is True

    def test_execute_materializes_rows(self):
        driver = MagicMock()
        driver.execute.return_value = iter([{"[applied]": False}])
        session = CoordinationSession(driver)

        result = asyncio.run(session.execute("stmt"))

        assert result.applied is False
        driver.execute.assert_called_once_with("stmt")

    def test_execute_pages_off_the_event_loop(self):
        iterated_on = []

        class PagedRows:
            def __iter__(self):
                iterated_on.append(threading.get_ident())
                return iter([{"a": 1}, {"a": 2}])

        driver = MagicMock()
        driver.execute.return_value = PagedRows()
        session = CoordinationSession(driver)

        async def run():
            result = await session.execute("stmt")
            return result, threading.get_ident()

        result, loop_thread = asyncio.run(run())

        assert len(result.rows) == 2
        assert iterated_on and loop_thread not in iterated_on

    def test_execute_nowait_logs_failures(self, caplog):
        driver = MagicMock()
        session = CoordinationSession(driver)

        session.execute_nowait("stmt")

        future = driver.execute_async.return_value
        errback = future.add_errback.call_args[0][0]
        with caplog.at_level("WARNING", logger="repositories.database"):
            errback(Exception("write timeout"))
        assert "Background statement failed" in caplog.text

    def test_is_connected(self):
        driver = MagicMock(is_shutdown=False)
        assert CoordinationSession(driver).is_connected() is True
        driver.is_shutdown = True
        assert CoordinationSession(driver).is_connected() is False


# ============================================================================
# CLUSTER
# ============================================================================

class TestBuildCluster:

    def test_profile_wiring(self):
        config = CassandraDefaults(
            contact_points=("10.0.0.1", "10.0.0.2"),
            username="reaper",
            password="secret",
            mode=ConsistencyMode.ASTRA,
        )
        coordination = CoordinationDefaults(read_retry_attempts=4)

        with patch.object(database, "Cluster") as cluster_cls:
            build_cluster(config, coordination)

        kwargs = cluster_cls.call_args.kwargs
        assert kwargs["contact_points"] == ["10.0.0.1", "10.0.0.2"]
        assert kwargs["auth_provider"] is not None
        assert kwargs["metrics_enabled"] is False

        profile = kwargs["execution_profiles"][EXEC_PROFILE_DEFAULT]
        assert profile.consistency_level == ConsistencyLevel.LOCAL_QUORUM
        assert profile.serial_consistency_level == ConsistencyLevel.SERIAL
        assert profile.row_factory is dict_factory
        assert isinstance(profile.retry_policy, CoordinationRetryPolicy)
        assert profile.retry_policy.max_read_attempts == 4

    def test_metrics_registered_once_per_process(self):
        with patch.object(database, "_metrics_registered", False), \
                patch.object(database, "Cluster") as cluster_cls:
            build_cluster(CassandraDefaults(), CoordinationDefaults(), metrics_enabled=True)
            build_cluster(CassandraDefaults(), CoordinationDefaults(), metrics_enabled=True)

        flags = [c.kwargs["metrics_enabled"] for c in cluster_cls.call_args_list]
        assert flags == [True, False]


# ============================================================================
# CONFIGURATION
# ============================================================================

class TestDefaults:

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("CASSANDRA_CONTACT_POINTS", "a, b ,c")
        monkeypatch.setenv("CASSANDRA_MODE", "ASTRA")
        monkeypatch.setenv("LOCK_TTL_SECONDS", "60")
        monkeypatch.setenv("INSTANCE_ADDRESS", "10.1.1.1")

        defaults = get_defaults()

        assert defaults.cassandra.contact_points == ("a", "b", "c")
        assert defaults.cassandra.mode == ConsistencyMode.ASTRA
        assert defaults.coordination.lock_ttl_seconds == 60
        assert defaults.coordination.lock_renew_interval == 20
        assert defaults.coordination.instance_address == "10.1.1.1"

    def test_default_consistency_per_mode(self):
        assert ConsistencyMode.CASSANDRA.default_consistency == ConsistencyLevel.LOCAL_ONE
        assert ConsistencyMode.ASTRA.default_consistency == ConsistencyLevel.LOCAL_QUORUM
