# ============================================================================
# SEGMENT CANDIDATE SELECTOR
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Work selection
# PURPOSE: Pick NOT_STARTED segments whose replicas are not locked
# CREATED: 19 OCT 2026
# ============================================================================
"""
Segment Candidate Selector

Optimistic pre-filter in front of NodeLockRegistry.lock():
1. Read all segments of the run
2. Shuffle them, so racing instances spread over different segments
3. Read the run's locked nodes once
4. Keep NOT_STARTED segments whose replicas are all free, optionally
   restricted to token ranges

The result is a hint, not a guarantee: locks can change between the
snapshot and the lock attempt, and lock() settles the race.
"""

import logging
import random
from typing import Iterable, List, Optional, Sequence, Set
from uuid import UUID

from core.contracts import SegmentState
from core.models import RepairSegment, RingRange
from repositories import NodeLockRegistry, SegmentRepository

logger = logging.getLogger(__name__)


def segment_is_candidate(segment: RepairSegment, locked_nodes: Set[str]) -> bool:
    """NOT_STARTED and none of its replicas currently locked."""
    return (
        segment.state == SegmentState.NOT_STARTED
        and not (segment.replica_nodes & locked_nodes)
    )


def segment_is_within_ranges(segment: RepairSegment, ranges: Sequence[RingRange]) -> bool:
    """True if one of the segment's token sub-ranges is enclosed by one of `ranges`."""
    return any(
        outer.encloses(token_range)
        for outer in ranges
        for token_range in segment.token_ranges
    )


class CandidateSelector:
    """Selects runnable segments for a repair run."""

    def __init__(
        self,
        segment_repo: SegmentRepository,
        node_locks: NodeLockRegistry,
        rng: Optional[random.Random] = None,
    ):
        self.segment_repo = segment_repo
        self.node_locks = node_locks
        self._rng = rng or random.Random()

    async def next_candidates(
        self,
        run_id: UUID,
        segments: Optional[Iterable[RepairSegment]] = None,
        ranges: Optional[Sequence[RingRange]] = None,
    ) -> List[RepairSegment]:
        """
        Runnable segments of a run, in random order.

        Args:
            run_id: Repair run
            segments: Segments already read by the caller; read from the
                store when omitted
            ranges: Only keep segments with a sub-range inside one of these

        Returns:
            Shuffled candidates; try lock() on them in order
        """
        if segments is None:
            segments = await self.segment_repo.get_segments_for_run(run_id)

        shuffled = list(segments)
        self._rng.shuffle(shuffled)

        locked_nodes = await self.node_locks.locked_nodes(run_id)

        candidates = [
            segment for segment in shuffled
            if segment_is_candidate(segment, locked_nodes)
            and (ranges is None or segment_is_within_ranges(segment, ranges))
        ]

        logger.debug(
            f"Run {run_id}: {len(candidates)}/{len(shuffled)} candidate segments, "
            f"{len(locked_nodes)} locked nodes"
        )
        return candidates


__all__ = ["CandidateSelector", "segment_is_candidate", "segment_is_within_ranges"]
