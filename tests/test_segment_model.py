# ============================================================================
# SEGMENT MODEL TESTS
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Tests - Segment state machine
# PURPOSE: Verify transitions and end time invariants of RepairSegment
# CREATED: 19 OCT 2026
# ============================================================================
"""
RepairSegment Tests

Run with:
    pytest tests/test_segment_model.py -v
"""

import pytest
from datetime import datetime
from uuid import uuid4

from core.contracts import SegmentState
from core.models import RepairSegment, SegmentInvariantError

from store_fakes import make_segment


@pytest.fixture
def segment():
    return make_segment(uuid4(), ["n1", "n2", "n3"])


# ============================================================================
# STATES
# ============================================================================

class TestSegmentState:

    def test_ordinals_follow_declaration_order(self):
        assert [s.ordinal for s in SegmentState] == [0, 1, 2, 3]
        assert SegmentState.from_ordinal(2) == SegmentState.RUNNING

    def test_unknown_ordinal_rejected(self):
        with pytest.raises(ValueError):
            SegmentState.from_ordinal(7)

    def test_only_done_is_terminal(self):
        assert [s for s in SegmentState if s.is_terminal()] == [SegmentState.DONE]


# ============================================================================
# TRANSITIONS
# ============================================================================

class TestTransitions:

    def test_happy_path(self, segment):
        segment.mark_started("10.0.0.1")
        assert segment.state == SegmentState.STARTED
        assert segment.coordinator_host == "10.0.0.1"
        assert segment.start_time is not None
        assert segment.end_time is None

        segment.mark_running()
        assert segment.state == SegmentState.RUNNING

        end = datetime(2026, 10, 19, 12, 0)
        segment.mark_done(end)
        assert segment.state == SegmentState.DONE
        assert segment.end_time == end

    def test_cannot_skip_started(self, segment):
        with pytest.raises(ValueError):
            segment.mark_running()

    def test_done_is_terminal(self, segment):
        segment.mark_started()
        segment.mark_running()
        segment.mark_done()
        with pytest.raises(ValueError):
            segment.mark_failed()
        with pytest.raises(ValueError):
            segment.mark_started()

    @pytest.mark.parametrize("steps", [1, 2])
    def test_failure_resets_and_counts(self, segment, steps):
        segment.mark_started("host")
        if steps == 2:
            segment.mark_running()

        segment.mark_failed()

        assert segment.state == SegmentState.NOT_STARTED
        assert segment.fail_count == 1
        assert segment.coordinator_host is None
        assert segment.start_time is None
        assert segment.end_time is None

    def test_replica_nodes(self, segment):
        assert segment.replica_nodes == {"n1", "n2", "n3"}
        assert segment.start_token == 0
        assert segment.end_token == 100


# ============================================================================
# END TIME INVARIANTS
# ============================================================================

class TestEndTimeInvariants:

    def test_done_requires_end_time(self, segment):
        done = segment.model_copy(update={"state": SegmentState.DONE, "end_time": None})
        with pytest.raises(SegmentInvariantError):
            done.check_end_time_invariants()

    def test_running_with_end_time_rejected(self, segment):
        running = segment.model_copy(update={"state": SegmentState.RUNNING, "end_time": datetime.utcnow()})
        with pytest.raises(SegmentInvariantError):
            running.check_end_time_invariants()

    def test_not_started_with_end_time_rejected(self, segment):
        reset = segment.model_copy(update={"end_time": datetime.utcnow()})
        with pytest.raises(SegmentInvariantError):
            reset.check_end_time_invariants()

    def test_started_with_end_time_rejected(self, segment):
        started = segment.model_copy(update={"state": SegmentState.STARTED, "end_time": datetime.utcnow()})
        with pytest.raises(SegmentInvariantError, match="STARTED"):
            started.check_end_time_invariants()

    def test_valid_shapes_pass(self, segment):
        segment.check_end_time_invariants()
        segment.mark_started()
        segment.check_end_time_invariants()
        segment.mark_running()
        segment.check_end_time_invariants()
        segment.mark_done()
        segment.check_end_time_invariants()

    def test_invariant_error_is_value_error(self):
        assert issubclass(SegmentInvariantError, ValueError)

    def test_end_time_column_written_on_reset_and_done(self, segment):
        assert segment.writes_end_time()
        segment.mark_started()
        assert not segment.writes_end_time()
        segment.mark_running()
        assert not segment.writes_end_time()
        segment.mark_done()
        assert segment.writes_end_time()

    def test_segment_validates_fail_count(self):
        with pytest.raises(ValueError):
            RepairSegment(id=uuid4(), run_id=uuid4(), repair_unit_id=uuid4(), fail_count=-1)
