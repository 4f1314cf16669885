# ============================================================================
# NODE LOCK REGISTRY
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Per-run node locking
# PURPOSE: Atomically claim the replicas of a segment for one instance
# CREATED: 19 OCT 2026
# ============================================================================
"""
Node Lock Registry

Uses conditional batches on the `running_repairs` table:
- One row per (repair run, node), all rows of a run in one partition
- lock/renew/release each send ONE batch with one conditional UPDATE per
  replica; a single-partition conditional batch is applied atomically, so
  either every node is claimed or none is
- Rows carry a TTL; an instance that stops renewing loses its nodes

Lock Layers:
- Layer 1: lease on a run or scheduling scope (LeaseRegistry)
- Layer 2: node locks for the replicas of the segment being repaired (here)
- Layer 3: candidate pre-filter on a snapshot of locked nodes (CandidateSelector)

Usage:
    from repositories import NodeLockRegistry

    locks = NodeLockRegistry(session, instance_id, address)

    if await locks.lock(run_id, segment.id, segment.replica_nodes):
        ...
        if not await locks.renew(run_id, segment.id, segment.replica_nodes):
            abort_repair()
        await locks.release(run_id, segment.id, segment.replica_nodes)
"""

import logging
from typing import Iterable, List, Optional, Set
from uuid import UUID

from cassandra import ConsistencyLevel

from core.models import NodeLock
from .database import CoordinationSession, StatementResult, TABLE_RUNNING_REPAIRS

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL_SECONDS = 90


class NodeLockRegistry:
    """
    Per-run node locks for one coordinator instance.

    A lock conflict is the expected outcome of contention and is reported
    as False, never raised. Transient store failures propagate after the
    driver retry policy gives up.
    """

    def __init__(
        self,
        session: CoordinationSession,
        instance_id: UUID,
        instance_address: Optional[str] = None,
        default_ttl: int = DEFAULT_LOCK_TTL_SECONDS,
    ):
        """
        Initialize node lock registry.

        Args:
            session: Store session
            instance_id: Identity written as lock owner
            instance_address: Address written next to the owner
            default_ttl: TTL in seconds for lock and renew
        """
        self.session = session
        self.instance_id = instance_id
        self.instance_address = instance_address
        self.default_ttl = default_ttl
        self._set_stmt = None
        self._get_stmt = None

    async def _prepare(self) -> None:
        if self._set_stmt is not None:
            return

        # A replayed claim could observe its own write and report a conflict,
        # so the conditional update is left to the conservative retry path.
        self._set_stmt = await self.session.prepare(
            f"UPDATE {TABLE_RUNNING_REPAIRS} USING TTL ?"
            " SET reaper_instance_host = ?, reaper_instance_id = ?, segment_id = ?"
            " WHERE repair_id = ? AND node = ? IF reaper_instance_id = ?",
            consistency_level=ConsistencyLevel.QUORUM,
            serial_consistency_level=ConsistencyLevel.SERIAL,
            idempotent=False,
        )
        self._get_stmt = await self.session.prepare(
            "SELECT repair_id, node, reaper_instance_host, reaper_instance_id, segment_id"
            f" FROM {TABLE_RUNNING_REPAIRS} WHERE repair_id = ?",
            consistency_level=ConsistencyLevel.QUORUM,
        )

    # =========================================================================
    # CONDITIONAL BATCHES
    # =========================================================================

    async def _apply(
        self,
        run_id: UUID,
        segment_id: UUID,
        nodes: Iterable[str],
        ttl: int,
        new_owner: Optional[UUID],
        new_address: Optional[str],
        new_segment: Optional[UUID],
        expected_owner: Optional[UUID],
    ) -> bool:
        nodes = sorted(set(nodes))
        if not nodes:
            raise ValueError(f"No replicas given for segment {segment_id} of run {run_id}")

        await self._prepare()
        statements = [
            self._set_stmt.bind((
                ttl,
                new_address,
                new_owner,
                new_segment,
                run_id,
                node,
                expected_owner,
            ))
            for node in nodes
        ]
        batch = self.session.batch(
            statements,
            consistency_level=ConsistencyLevel.QUORUM,
            serial_consistency_level=ConsistencyLevel.SERIAL,
        )

        result = await self.session.execute(batch)
        if not result.applied:
            self._log_failed_lead(result, run_id, segment_id)
        return result.applied

    async def lock(
        self,
        run_id: UUID,
        segment_id: UUID,
        nodes: Iterable[str],
        ttl: Optional[int] = None,
    ) -> bool:
        """
        Claim every node for this instance, or none of them.

        Each node must currently be free (null owner).

        Returns:
            True if all nodes are now owned by this instance
        """
        return await self._apply(
            run_id, segment_id, nodes,
            ttl=ttl or self.default_ttl,
            new_owner=self.instance_id,
            new_address=self.instance_address,
            new_segment=segment_id,
            expected_owner=None,
        )

    async def renew(
        self,
        run_id: UUID,
        segment_id: UUID,
        nodes: Iterable[str],
        ttl: Optional[int] = None,
    ) -> bool:
        """
        Extend locks this instance holds on every node.

        Returns:
            True if renewed. False means at least one node is no longer
            ours: the repair relying on these locks must stop.
        """
        return await self._apply(
            run_id, segment_id, nodes,
            ttl=ttl or self.default_ttl,
            new_owner=self.instance_id,
            new_address=self.instance_address,
            new_segment=segment_id,
            expected_owner=self.instance_id,
        )

    async def release(self, run_id: UUID, segment_id: UUID, nodes: Iterable[str]) -> bool:
        """
        Free nodes this instance holds.

        Returns:
            True if released; False when some node was not ours any more
            (already expired or taken), which TTL expiry makes harmless.
        """
        return await self._apply(
            run_id, segment_id, nodes,
            ttl=self.default_ttl,
            new_owner=None,
            new_address=None,
            new_segment=None,
            expected_owner=self.instance_id,
        )

    def _log_failed_lead(self, result: StatementResult, run_id: UUID, segment_id: UUID) -> None:
        logger.debug(
            f"Failed taking/renewing lock for repair {run_id} and segment {segment_id} "
            "because segments are already running for some nodes."
        )
        for row in result.rows:
            logger.debug(
                f"node {row.get('node', 'unknown')} is locked by "
                f"{row.get('reaper_instance_host', 'unknown')}/"
                f"{row.get('reaper_instance_id', 'unknown')} "
                f"for segment {row.get('segment_id', 'unknown')}"
            )

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    async def locks(self, run_id: UUID) -> List[NodeLock]:
        """
        Current lock rows of a run, free nodes included.

        Point-in-time snapshot; a concurrent lock() may change it at once.
        """
        await self._prepare()
        result = await self.session.execute(self._get_stmt.bind((run_id,)))
        return [NodeLock.model_validate(row) for row in result.rows]

    async def locked_nodes(self, run_id: UUID) -> Set[str]:
        """Nodes of a run currently owned by any instance."""
        return {lock.node for lock in await self.locks(run_id) if lock.is_locked}

    async def locked_segments(self, run_id: UUID) -> Set[UUID]:
        """Segments of a run currently justifying a node lock."""
        return {
            lock.segment_id
            for lock in await self.locks(run_id)
            if lock.is_locked and lock.segment_id is not None
        }


__all__ = ["NodeLockRegistry", "DEFAULT_LOCK_TTL_SECONDS"]
