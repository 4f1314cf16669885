# ============================================================================
# SEGMENT SERVICE TESTS
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Tests - Segment lifecycle under locks
# PURPOSE: Verify claims and lock-gated state transitions
# CREATED: 19 OCT 2026
# ============================================================================
"""
Segment Service Tests

Covers:
1. Claiming the first free candidate
2. Updates refused once node locks are lost
3. Incremental repairs gated by the run lease
4. QUORUM re-read before RUNNING
5. Failure reset allowed without locks

Run with:
    pytest tests/test_segment_service.py -v
"""

import asyncio
import pytest
from datetime import datetime
from uuid import uuid4

from cassandra import ConsistencyLevel

from core.contracts import SegmentState
from repositories import LeaseRegistry, NodeLockRegistry, SegmentRepository
from services import SegmentService

from store_fakes import make_segment


def _build_service(session, address="10.0.0.1"):
    instance_id = uuid4()
    return SegmentService(
        SegmentRepository(session),
        NodeLockRegistry(session, instance_id, address, default_ttl=30),
        LeaseRegistry(session, instance_id, address, default_ttl=30),
    )


@pytest.fixture
def run_id():
    return uuid4()


@pytest.fixture
def alice(session):
    return _build_service(session)


@pytest.fixture
def bob(other_session):
    return _build_service(other_session, "10.0.0.2")


def _stored_state(store, segment):
    return SegmentState.from_ordinal(store.repair_run[(segment.run_id, segment.id)]["segment_state"])


# ============================================================================
# CLAIMS
# ============================================================================

class TestClaim:

    def test_claim_locks_all_replicas(self, alice, store, run_id):
        segment = make_segment(run_id, ["n1", "n2", "n3"])
        store.add_segment(segment)

        claimed = asyncio.run(alice.claim_next_segment(run_id))

        assert claimed.id == segment.id
        assert {store.node_owner(run_id, n) for n in ("n1", "n2", "n3")} == {
            alice.node_locks.instance_id
        }

    def test_claim_returns_none_when_everything_locked(self, alice, bob, store, run_id):
        store.add_segment(make_segment(run_id, ["n1", "n2"]))
        store.add_segment(make_segment(run_id, ["n2", "n3"]))

        assert asyncio.run(alice.claim_next_segment(run_id)) is not None
        assert asyncio.run(bob.claim_next_segment(run_id)) is None

    def test_two_instances_get_disjoint_segments(self, alice, bob, store, run_id):
        segments = [
            make_segment(run_id, ["A", "B", "C"]),
            make_segment(run_id, ["C", "D", "E"]),
            make_segment(run_id, ["F", "G", "H"]),
        ]
        for segment in segments:
            store.add_segment(segment)

        first = asyncio.run(alice.claim_next_segment(run_id))
        second = asyncio.run(bob.claim_next_segment(run_id))

        assert first is not None and second is not None
        assert first.id != second.id
        assert not (first.replica_nodes & second.replica_nodes)

    def test_release_frees_replicas(self, alice, bob, store, run_id):
        store.add_segment(make_segment(run_id, ["n1"]))
        claimed = asyncio.run(alice.claim_next_segment(run_id))

        assert asyncio.run(alice.release_segment(claimed)) is True
        assert asyncio.run(bob.claim_next_segment(run_id)) is not None


# ============================================================================
# TRANSITIONS
# ============================================================================

class TestTransitions:

    def test_full_lifecycle(self, alice, store, run_id):
        store.add_segment(make_segment(run_id, ["n1", "n2"]))
        segment = asyncio.run(alice.claim_next_segment(run_id))

        assert asyncio.run(alice.start_segment(segment, "10.0.0.1")) is True
        assert _stored_state(store, segment) == SegmentState.STARTED
        assert asyncio.run(alice.mark_segment_running(segment)) is True
        assert _stored_state(store, segment) == SegmentState.RUNNING
        assert asyncio.run(alice.complete_segment(segment)) is True
        assert _stored_state(store, segment) == SegmentState.DONE

    def test_update_refused_after_lock_loss(self, alice, bob, store, clock, run_id):
        store.add_segment(make_segment(run_id, ["n1", "n2"]))
        segment = asyncio.run(alice.claim_next_segment(run_id))
        clock.advance(31)
        asyncio.run(bob.node_locks.lock(run_id, uuid4(), ["n2"]))

        assert asyncio.run(alice.start_segment(segment)) is False
        assert _stored_state(store, segment) == SegmentState.NOT_STARTED

    def test_incremental_update_checks_run_lease(self, alice, store, run_id):
        segment = make_segment(run_id, ["n1"])
        store.add_segment(segment)

        assert asyncio.run(alice.start_segment(segment, incremental=True)) is False

        asyncio.run(alice.leases.acquire(run_id))
        segment = asyncio.run(alice.segment_repo.get_segment(run_id, segment.id))
        assert asyncio.run(alice.start_segment(segment, incremental=True)) is True
        assert _stored_state(store, segment) == SegmentState.STARTED

    def test_running_requires_started_in_store(self, alice, store, session, run_id):
        store.add_segment(make_segment(run_id, ["n1"]))
        segment = asyncio.run(alice.claim_next_segment(run_id))
        # Moved to STARTED in memory only
        segment.mark_started()

        assert asyncio.run(alice.mark_segment_running(segment)) is False
        assert _stored_state(store, segment) == SegmentState.NOT_STARTED

        reread = [s for s in session.executed if getattr(s, "table", None) == "repair_run"][-1]
        assert reread.consistency_level == ConsistencyLevel.QUORUM

    def test_fail_segment_without_locks(self, alice, store, run_id):
        store.add_segment(make_segment(run_id, ["n1"]))
        segment = asyncio.run(alice.claim_next_segment(run_id))
        asyncio.run(alice.start_segment(segment))
        asyncio.run(alice.release_segment(segment))

        assert asyncio.run(alice.fail_segment(segment)) is True

        row = store.repair_run[(run_id, segment.id)]
        assert row["segment_state"] == SegmentState.NOT_STARTED.ordinal
        assert row["fail_count"] == 1
        assert row["segment_end_time"] is None


# ============================================================================
# RECOVERY
# ============================================================================

class TestRecovery:

    def test_orphaned_segment_is_reset(self, alice, store, run_id):
        segment = make_segment(run_id, ["n1", "n2"], state=SegmentState.RUNNING)
        store.add_segment(segment)

        assert asyncio.run(alice.recover_orphaned_segments(run_id)) == 1

        row = store.repair_run[(run_id, segment.id)]
        assert row["segment_state"] == SegmentState.NOT_STARTED.ordinal
        assert row["fail_count"] == 1
        assert store.node_owner(run_id, "n1") is None
        assert asyncio.run(alice.claim_next_segment(run_id)).id == segment.id

    def test_locked_segment_is_left_alone(self, alice, bob, store, run_id):
        segment = make_segment(run_id, ["n1"], state=SegmentState.STARTED)
        store.add_segment(segment)
        asyncio.run(bob.node_locks.lock(run_id, segment.id, ["n1"]))

        assert asyncio.run(alice.recover_orphaned_segments(run_id)) == 0

        assert _stored_state(store, segment) == SegmentState.STARTED
        assert store.node_owner(run_id, "n1") == bob.node_locks.instance_id

    def test_finished_segments_are_not_reset(self, alice, store, run_id):
        done = make_segment(run_id, ["n1"], state=SegmentState.DONE, end_time=datetime(2026, 1, 1))
        fresh = make_segment(run_id, ["n2"])
        store.add_segment(done)
        store.add_segment(fresh)

        assert asyncio.run(alice.recover_orphaned_segments(run_id)) == 0
        assert _stored_state(store, done) == SegmentState.DONE
        assert store.repair_run[(run_id, fresh.id)]["fail_count"] == 0

    def test_reset_in_flight_rereads_store(self, alice, store, run_id):
        segment = make_segment(run_id, ["n1"], state=SegmentState.DONE, end_time=datetime(2026, 1, 1))
        store.add_segment(segment)
        stale = make_segment(run_id, ["n1"], id=segment.id, state=SegmentState.RUNNING)

        assert asyncio.run(alice.reset_in_flight_segment(stale)) is False
        assert _stored_state(store, segment) == SegmentState.DONE
