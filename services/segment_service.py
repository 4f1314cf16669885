# ============================================================================
# SEGMENT SERVICE
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Segment lifecycle under node locks
# PURPOSE: Claim segments and persist their transitions while locks are held
# CREATED: 19 OCT 2026
# ============================================================================
"""
Segment Service

Manages segment state transitions:
- Claim a segment (candidate selection + atomic node lock)
- NOT_STARTED -> STARTED -> RUNNING -> DONE, persisted only while the
  node locks of every replica are still ours
- Failure: reset to NOT_STARTED with fail_count + 1 (allowed without locks)
- Release the node locks
- Recovery: STARTED or RUNNING segments nobody holds locks for are reset

Every lock-gated update renews the locks first; a failed renewal means
another instance may own the replicas now, so the update is refused and
False is returned.
"""

import logging
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from cassandra import ConsistencyLevel

from core.contracts import SegmentState
from core.models import RepairSegment, RingRange
from repositories import LeaseRegistry, NodeLockRegistry, SegmentRepository
from .candidate_selector import CandidateSelector

logger = logging.getLogger(__name__)

IN_FLIGHT_STATES = (SegmentState.STARTED, SegmentState.RUNNING)


class SegmentService:
    """Service for segment claims and state transitions."""

    def __init__(
        self,
        segment_repo: SegmentRepository,
        node_locks: NodeLockRegistry,
        leases: LeaseRegistry,
        selector: Optional[CandidateSelector] = None,
    ):
        """
        Initialize segment service.

        Args:
            segment_repo: Segment store access
            node_locks: Node lock registry of this instance
            leases: Lease registry of this instance (run leases for incremental repair)
            selector: Candidate selector; built from the registries when omitted
        """
        self.segment_repo = segment_repo
        self.node_locks = node_locks
        self.leases = leases
        self.selector = selector or CandidateSelector(segment_repo, node_locks)

    # =========================================================================
    # CLAIMS
    # =========================================================================

    async def claim_next_segment(
        self,
        run_id: UUID,
        ranges: Optional[Sequence[RingRange]] = None,
    ) -> Optional[RepairSegment]:
        """
        Lock the replicas of the first free candidate segment.

        Returns:
            The claimed segment, or None when every candidate was taken
        """
        candidates = await self.selector.next_candidates(run_id, ranges=ranges)
        for segment in candidates:
            if await self.node_locks.lock(run_id, segment.id, segment.replica_nodes):
                logger.info(f"Claimed segment {segment.id} of run {run_id}")
                return segment
            logger.debug(f"Segment {segment.id} of run {run_id} was claimed concurrently")

        return None

    async def has_lead_on_segment(self, segment: RepairSegment) -> bool:
        """Renew the segment's node locks; True if they are still ours."""
        return await self.node_locks.renew(segment.run_id, segment.id, segment.replica_nodes)

    async def release_segment(self, segment: RepairSegment) -> bool:
        """Free the segment's node locks."""
        return await self.node_locks.release(segment.run_id, segment.id, segment.replica_nodes)

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def update_segment(self, segment: RepairSegment, incremental: bool = False) -> bool:
        """
        Persist a segment while holding its locks.

        Incremental repairs lock the whole run through the run lease rather
        than per-node locks.

        Returns:
            True if persisted, False if this instance no longer holds the
            segment (nothing was written)
        """
        if incremental:
            held = await self.leases.renew(segment.run_id)
        else:
            held = await self.has_lead_on_segment(segment)

        if not held:
            logger.error(
                f"Non-leader trying to update repair segment {segment.id} of run {segment.run_id}"
            )
            return False

        return await self.segment_repo.update_segment_unsafe(segment)

    async def start_segment(
        self,
        segment: RepairSegment,
        coordinator_host: Optional[str] = None,
        incremental: bool = False,
    ) -> bool:
        """NOT_STARTED -> STARTED."""
        segment.mark_started(coordinator_host)
        return await self.update_segment(segment, incremental)

    async def mark_segment_running(self, segment: RepairSegment, incremental: bool = False) -> bool:
        """
        STARTED -> RUNNING.

        Re-reads the segment at QUORUM first: under weak consistency two
        instances could otherwise both believe they progressed it.
        """
        stored = await self.segment_repo.get_segment(
            segment.run_id, segment.id, consistency=ConsistencyLevel.QUORUM,
        )
        if stored is None or stored.state != SegmentState.STARTED:
            logger.warning(
                f"Segment {segment.id} of run {segment.run_id} is "
                f"{stored.state.name if stored else 'missing'} in store, not moving to RUNNING"
            )
            return False

        segment.mark_running()
        return await self.update_segment(segment, incremental)

    async def complete_segment(
        self,
        segment: RepairSegment,
        end_time: Optional[datetime] = None,
        incremental: bool = False,
    ) -> bool:
        """RUNNING -> DONE."""
        segment.mark_done(end_time)
        return await self.update_segment(segment, incremental)

    async def fail_segment(self, segment: RepairSegment) -> bool:
        """
        Reset a segment to NOT_STARTED and count the failure.

        Allowed without holding the locks: the reset is what lets another
        instance pick the segment up again.
        """
        segment.mark_failed()
        logger.info(
            f"Segment {segment.id} of run {segment.run_id} reset "
            f"(fail_count={segment.fail_count})"
        )
        return await self.segment_repo.update_segment_unsafe(segment)

    async def reset_in_flight_segment(self, segment: RepairSegment) -> bool:
        """
        Reset the stored segment if it is still STARTED or RUNNING.

        The stored row is re-read at QUORUM first; a segment another write
        already moved to DONE or NOT_STARTED is left alone. Callers hold the
        segment's node locks, or nobody does.

        Returns:
            True if the segment was reset
        """
        stored = await self.segment_repo.get_segment(
            segment.run_id, segment.id, consistency=ConsistencyLevel.QUORUM,
        )
        if stored is None or stored.state not in IN_FLIGHT_STATES:
            return False
        return await self.fail_segment(stored)

    # =========================================================================
    # RECOVERY
    # =========================================================================

    async def recover_orphaned_segments(self, run_id: UUID) -> int:
        """
        Reset STARTED or RUNNING segments whose node locks are gone.

        Such segments were left by an instance that died, or lost the store,
        in the middle of a repair. They are never candidates again until
        reset. Each one is locked before the reset so a segment that an
        instance is progressing right now is never touched.

        Returns:
            Number of segments reset
        """
        in_flight = [
            segment
            for segment in await self.segment_repo.get_segments_for_run(run_id)
            if segment.state in IN_FLIGHT_STATES and segment.replica_nodes
        ]
        if not in_flight:
            return 0

        locked = await self.node_locks.locked_segments(run_id)
        recovered = 0
        for segment in in_flight:
            if segment.id in locked:
                continue
            if not await self.node_locks.lock(run_id, segment.id, segment.replica_nodes):
                continue

            if await self.reset_in_flight_segment(segment):
                logger.warning(
                    f"Recovered orphaned segment {segment.id} of run {run_id} "
                    f"(was {segment.state.name})"
                )
                recovered += 1
            await self.release_segment(segment)

        return recovered


__all__ = ["SegmentService"]
