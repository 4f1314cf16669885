# ============================================================================
# CLAUDE CONTEXT - REPAIR SEGMENT MODEL
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core model - Unit of repair work
# PURPOSE: Segment runtime state and its lifecycle transitions
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: RepairSegment, SegmentInvariantError
# DEPENDENCIES: pydantic
# ============================================================================
"""
Repair Segment Model

A RepairSegment is the smallest schedulable unit of repair work: a set of
token sub-ranges replicated on a fixed set of nodes. Segments belong to a
repair run and are stored in the run's partition of the repair_run table.

Lifecycle:
    1. Created NOT_STARTED when the run is generated
    2. STARTED once an instance holds the node locks of every replica
    3. RUNNING once the repair session is confirmed on the coordinator
    4. DONE with an end time, or back to NOT_STARTED with fail_count + 1

Transitions only change the in-memory model; they are persisted through
SegmentRepository.update_segment_unsafe(), which enforces the end time
invariants below.
"""

from datetime import datetime
from typing import Dict, List, Optional, Set
from uuid import UUID

from pydantic import BaseModel, Field

from core.contracts import SegmentState
from core.models.ring_range import RingRange


class SegmentInvariantError(ValueError):
    """Raised when a segment is about to be persisted in an impossible shape."""


class RepairSegment(BaseModel):
    """
    Runtime state of one repair segment.

    Maps to: repair_run table (segment columns)
    Primary Key: (id, segment_id) - id is the run id
    """

    id: UUID = Field(description="Segment id")
    run_id: UUID = Field(description="Owning repair run")
    repair_unit_id: UUID

    token_ranges: List[RingRange] = Field(default_factory=list)
    replicas: Dict[str, str] = Field(
        default_factory=dict,
        description="Replica node name -> datacenter",
    )

    state: SegmentState = Field(default=SegmentState.NOT_STARTED)
    coordinator_host: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    fail_count: int = Field(default=0, ge=0)
    host_id: Optional[UUID] = Field(
        default=None,
        description="Host id of the node coordinating the repair",
    )

    @property
    def replica_nodes(self) -> Set[str]:
        """Node names whose locks must be held to work on this segment."""
        return set(self.replicas.keys())

    @property
    def start_token(self) -> Optional[int]:
        return self.token_ranges[0].start if self.token_ranges else None

    @property
    def end_token(self) -> Optional[int]:
        return self.token_ranges[-1].end if self.token_ranges else None

    def can_transition_to(self, new_state: SegmentState) -> bool:
        """
        Validate if a state transition is allowed.

        Valid transitions:
            NOT_STARTED -> STARTED
            STARTED -> RUNNING, NOT_STARTED (failure)
            RUNNING -> DONE, NOT_STARTED (failure)
            DONE -> (none, terminal)
        """
        if self.state == new_state:
            return True

        allowed = {
            SegmentState.NOT_STARTED: {SegmentState.STARTED},
            SegmentState.STARTED: {SegmentState.RUNNING, SegmentState.NOT_STARTED},
            SegmentState.RUNNING: {SegmentState.DONE, SegmentState.NOT_STARTED},
            SegmentState.DONE: set(),
        }
        return new_state in allowed[self.state]

    def mark_started(self, coordinator_host: Optional[str] = None) -> None:
        """Mark segment as started (node locks held)."""
        if not self.can_transition_to(SegmentState.STARTED):
            raise ValueError(f"Cannot transition from {self.state} to STARTED")
        self.state = SegmentState.STARTED
        self.coordinator_host = coordinator_host
        self.start_time = datetime.utcnow()
        self.end_time = None

    def mark_running(self) -> None:
        """Mark segment as running on its coordinator."""
        if not self.can_transition_to(SegmentState.RUNNING):
            raise ValueError(f"Cannot transition from {self.state} to RUNNING")
        self.state = SegmentState.RUNNING

    def mark_done(self, end_time: Optional[datetime] = None) -> None:
        """Mark segment as repaired."""
        if not self.can_transition_to(SegmentState.DONE):
            raise ValueError(f"Cannot transition from {self.state} to DONE")
        self.state = SegmentState.DONE
        self.end_time = end_time or datetime.utcnow()

    def mark_failed(self) -> None:
        """Reset to NOT_STARTED so the segment can be retried."""
        if not self.can_transition_to(SegmentState.NOT_STARTED):
            raise ValueError(f"Cannot reset a segment in state {self.state}")
        self.state = SegmentState.NOT_STARTED
        self.fail_count += 1
        self.coordinator_host = None
        self.start_time = None
        self.end_time = None

    def check_end_time_invariants(self) -> None:
        """
        Verify the end time is consistent with the state.

        The end time column is only written when it is set or when the
        segment is reset, and each of those writes must match the state.

        Raises:
            SegmentInvariantError: on any violation
        """
        if self.state == SegmentState.DONE:
            if self.end_time is None:
                raise SegmentInvariantError("end_time can't be null when state is DONE")
            return

        if self.end_time is None:
            return
        if self.state == SegmentState.RUNNING:
            raise SegmentInvariantError("un/setting end_time not permitted when state is RUNNING")
        if self.state == SegmentState.NOT_STARTED:
            raise SegmentInvariantError("end_time can only be nulled when state is NOT_STARTED")
        raise SegmentInvariantError(f"end_time can't be set when state is {self.state.name}")

    def writes_end_time(self) -> bool:
        """True when persisting this segment also writes the end time column."""
        return self.end_time is not None or self.state == SegmentState.NOT_STARTED


__all__ = ["RepairSegment", "SegmentInvariantError"]
