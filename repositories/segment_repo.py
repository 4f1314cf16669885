# ============================================================================
# SEGMENT REPOSITORY
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - RepairSegment reads and state updates
# PURPOSE: Store access for segment rows of the repair_run table
# CREATED: 19 OCT 2026
# ============================================================================
"""
Segment Repository

Reads and updates repair segments. Segments live in their run's partition
of `repair_run` (partition key id = run id, clustering key segment_id).

update_segment_unsafe() does not check node locks; callers that progress a
segment go through SegmentService.update_segment(), which does.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from cassandra import ConsistencyLevel
from pydantic import TypeAdapter

from core.contracts import SegmentState
from core.models import RepairSegment, RingRange
from .database import CoordinationSession, TABLE_REPAIR_RUN

logger = logging.getLogger(__name__)

_RING_RANGES = TypeAdapter(List[RingRange])

SEGMENT_COLUMNS = (
    "id, segment_id, repair_unit_id, start_token, end_token, segment_state,"
    " coordinator_host, segment_start_time, segment_end_time, fail_count,"
    " token_ranges, replicas, host_id"
)


def parse_token_ranges(raw: Optional[str]) -> List[RingRange]:
    """Parse the token_ranges JSON column; empty or missing means none."""
    if not raw:
        return []
    return _RING_RANGES.validate_json(raw)


def segment_from_row(row: Dict[str, Any]) -> RepairSegment:
    """
    Build a RepairSegment from a repair_run row.

    Rows written before token_ranges existed only carry start/end tokens.
    """
    token_ranges = parse_token_ranges(row.get("token_ranges"))
    if not token_ranges and row.get("start_token") is not None:
        token_ranges = [RingRange(start=int(row["start_token"]), end=int(row["end_token"]))]

    return RepairSegment(
        id=row["segment_id"],
        run_id=row["id"],
        repair_unit_id=row["repair_unit_id"],
        token_ranges=token_ranges,
        replicas=dict(row.get("replicas") or {}),
        state=SegmentState.from_ordinal(row["segment_state"]),
        coordinator_host=row.get("coordinator_host"),
        start_time=row.get("segment_start_time"),
        end_time=row.get("segment_end_time"),
        fail_count=row.get("fail_count") or 0,
        host_id=row.get("host_id"),
    )


class SegmentRepository:
    """Repository for RepairSegment entities."""

    def __init__(self, session: CoordinationSession):
        self.session = session
        self._get_stmt = None
        self._by_run_stmt = None
        self._update_stmt = None
        self._end_time_stmt = None

    async def _prepare(self) -> None:
        if self._get_stmt is not None:
            return

        self._get_stmt = await self.session.prepare(
            f"SELECT {SEGMENT_COLUMNS} FROM {TABLE_REPAIR_RUN} WHERE id = ? AND segment_id = ?",
        )
        self._by_run_stmt = await self.session.prepare(
            f"SELECT {SEGMENT_COLUMNS} FROM {TABLE_REPAIR_RUN} WHERE id = ?",
        )
        self._update_stmt = await self.session.prepare(
            f"INSERT INTO {TABLE_REPAIR_RUN}"
            "(id, segment_id, segment_state, coordinator_host, segment_start_time, fail_count, host_id)"
            " VALUES(?, ?, ?, ?, ?, ?, ?)",
        )
        self._end_time_stmt = await self.session.prepare(
            f"INSERT INTO {TABLE_REPAIR_RUN}(id, segment_id, segment_end_time) VALUES(?, ?, ?)",
        )

    async def get_segment(
        self,
        run_id: UUID,
        segment_id: UUID,
        consistency: Optional[int] = None,
    ) -> Optional[RepairSegment]:
        """
        Get one segment.

        Args:
            run_id: Repair run
            segment_id: Segment
            consistency: Stronger read consistency when the caller is about
                to act on the state (e.g. QUORUM before RUNNING)
        """
        await self._prepare()
        bound = self._get_stmt.bind((run_id, segment_id))
        if consistency is not None:
            bound.consistency_level = consistency

        row = (await self.session.execute(bound)).one()
        if row is None or row.get("segment_id") is None:
            return None
        return segment_from_row(row)

    async def get_segments_for_run(self, run_id: UUID) -> List[RepairSegment]:
        """All segments of a run."""
        await self._prepare()
        result = await self.session.execute(self._by_run_stmt.bind((run_id,)))
        return [segment_from_row(row) for row in result.rows if row.get("segment_id") is not None]

    async def get_segments_with_state(self, run_id: UUID, state: SegmentState) -> List[RepairSegment]:
        """
        Segments of a run in the given state.

        STARTED segments are read at LOCAL_QUORUM: they are what an
        instance checks before deciding a segment is stuck.
        """
        await self._prepare()
        bound = self._by_run_stmt.bind((run_id,))
        if state == SegmentState.STARTED:
            bound.consistency_level = ConsistencyLevel.LOCAL_QUORUM

        result = await self.session.execute(bound)
        return [
            segment_from_row(row)
            for row in result.rows
            if row.get("segment_id") is not None and row.get("segment_state") == state.ordinal
        ]

    async def count_segments(self, run_id: UUID) -> int:
        return len(await self.get_segments_for_run(run_id))

    async def count_segments_with_state(self, run_id: UUID, state: SegmentState) -> int:
        return len(await self.get_segments_with_state(run_id, state))

    async def update_segment_unsafe(self, segment: RepairSegment) -> bool:
        """
        Persist a segment's state without checking node locks.

        The end time column is written together with the state when it is
        set, or cleared when the segment is reset to NOT_STARTED.

        Raises:
            SegmentInvariantError: when the end time contradicts the state
        """
        segment.check_end_time_invariants()
        await self._prepare()

        statements = [
            self._update_stmt.bind((
                segment.run_id,
                segment.id,
                segment.state.ordinal,
                segment.coordinator_host,
                segment.start_time,
                segment.fail_count,
                segment.host_id,
            ))
        ]
        consistency = None
        if segment.writes_end_time():
            statements.append(
                self._end_time_stmt.bind((segment.run_id, segment.id, segment.end_time))
            )
        elif segment.state == SegmentState.STARTED:
            consistency = ConsistencyLevel.EACH_QUORUM

        batch = self.session.batch(
            statements,
            consistency_level=consistency,
            logged=False,
            idempotent=True,
        )
        await self.session.execute(batch)
        logger.debug(f"Updated segment {segment.id} of run {segment.run_id} to {segment.state.name}")
        return True


__all__ = [
    "SegmentRepository",
    "segment_from_row",
    "parse_token_ranges",
]
