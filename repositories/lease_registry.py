# ============================================================================
# LEASE REGISTRY
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Leader election on store-side TTL leases
# PURPOSE: Acquire/renew/release single-owner leases with conditional writes
# CREATED: 19 OCT 2026
# ============================================================================
"""
Lease Registry

Leader election over the `leader` table. Every mutation is a lightweight
transaction on the lease's own partition, so racing instances are totally
ordered by the store and exactly one of them wins:

- acquire: INSERT ... IF NOT EXISTS USING TTL  (first writer wins)
- renew:   UPDATE ... USING TTL ... IF owner = me  (False = lost the lease)
- release: DELETE ... IF owner = me  (best effort, TTL is the backstop)

Contention is not an error: acquire() returning False simply means another
instance owns the lease. A renew() returning False is a hard stop for any
work gated by the lease.

Usage:
    registry = LeaseRegistry(session, instance_id, "10.0.0.5")

    if await registry.acquire(run_id):
        ...
        if not await registry.renew(run_id):
            stop_work()
        await registry.release(run_id)
"""

import logging
from typing import List, Optional, Set
from uuid import UUID

from cassandra import ConsistencyLevel

from core.models import Lease
from .database import CoordinationSession, TABLE_LEADER

logger = logging.getLogger(__name__)

DEFAULT_LEAD_TTL_SECONDS = 90


class LeaseRegistry:
    """Lease-based leader election for one coordinator instance."""

    def __init__(
        self,
        session: CoordinationSession,
        instance_id: UUID,
        instance_address: Optional[str] = None,
        default_ttl: int = DEFAULT_LEAD_TTL_SECONDS,
    ):
        """
        Initialize lease registry.

        Args:
            session: Store session
            instance_id: Identity written as lease owner
            instance_address: Address written next to the owner, for operators
            default_ttl: TTL in seconds used when a call does not pass one
        """
        self.session = session
        self.instance_id = instance_id
        self.instance_address = instance_address
        self.default_ttl = default_ttl
        self._take_stmt = None
        self._renew_stmt = None
        self._release_stmt = None
        self._list_stmt = None

    async def _prepare(self) -> None:
        if self._take_stmt is not None:
            return

        time_fn = self.session.time_function
        self._take_stmt = await self.session.prepare(
            f"INSERT INTO {TABLE_LEADER}"
            "(leader_id, reaper_instance_id, reaper_instance_host, last_heartbeat)"
            f" VALUES(?, ?, ?, {time_fn}(now())) IF NOT EXISTS USING TTL ?",
            consistency_level=ConsistencyLevel.QUORUM,
            serial_consistency_level=ConsistencyLevel.SERIAL,
        )
        self._renew_stmt = await self.session.prepare(
            f"UPDATE {TABLE_LEADER} USING TTL ?"
            " SET reaper_instance_id = ?, reaper_instance_host = ?,"
            f" last_heartbeat = {time_fn}(now())"
            " WHERE leader_id = ? IF reaper_instance_id = ?",
            consistency_level=ConsistencyLevel.QUORUM,
            serial_consistency_level=ConsistencyLevel.SERIAL,
        )
        self._release_stmt = await self.session.prepare(
            f"DELETE FROM {TABLE_LEADER} WHERE leader_id = ? IF reaper_instance_id = ?",
            consistency_level=ConsistencyLevel.QUORUM,
            serial_consistency_level=ConsistencyLevel.SERIAL,
        )
        self._list_stmt = await self.session.prepare(
            "SELECT leader_id, reaper_instance_id, reaper_instance_host, last_heartbeat"
            f" FROM {TABLE_LEADER}",
        )

    async def acquire(self, lease_id: UUID, ttl: Optional[int] = None) -> bool:
        """
        Try to take a lease.

        Args:
            lease_id: Lease to take
            ttl: Seconds before the lease expires unless renewed

        Returns:
            True if this instance now owns the lease, False if another does
        """
        await self._prepare()
        ttl = ttl or self.default_ttl
        logger.debug(f"Trying to take lead on {lease_id}")

        result = await self.session.execute(
            self._take_stmt.bind((lease_id, self.instance_id, self.instance_address, ttl))
        )

        if result.applied:
            logger.debug(f"Took lead on {lease_id}")
            return True

        logger.debug(f"Could not take lead on {lease_id}")
        return False

    async def renew(self, lease_id: UUID, ttl: Optional[int] = None) -> bool:
        """
        Extend a lease this instance owns.

        Returns:
            True if renewed. False means ownership was lost: whatever the
            lease was guarding must stop now.
        """
        await self._prepare()
        ttl = ttl or self.default_ttl

        result = await self.session.execute(
            self._renew_stmt.bind((
                ttl,
                self.instance_id,
                self.instance_address,
                lease_id,
                self.instance_id,
            ))
        )

        if result.applied:
            logger.debug(f"Renewed lead on {lease_id}")
            return True

        logger.error(f"Failed to renew lead on {lease_id}")
        return False

    async def release(self, lease_id: UUID) -> None:
        """
        Release a lease this instance owns.

        Not applied means the lease already expired or changed hands; TTL
        expiry makes this harmless, so it is only logged.
        """
        if lease_id is None:
            raise ValueError("lease_id is required")
        await self._prepare()

        logger.info(f"Trying to release lead on {lease_id} for instance {self.instance_id}")
        result = await self.session.execute(
            self._release_stmt.bind((lease_id, self.instance_id))
        )

        if result.applied:
            logger.info(f"Released lead on {lease_id}")
        else:
            logger.warning(f"Could not release lead on {lease_id}")

    async def list_leases(self) -> List[Lease]:
        """All unexpired leases (diagnostics only)."""
        await self._prepare()
        result = await self.session.execute(self._list_stmt.bind(()))
        return [Lease.model_validate(row) for row in result.rows]

    async def list_owners(self) -> Set[UUID]:
        """Ids of all currently held leases (diagnostics only)."""
        return {lease.leader_id for lease in await self.list_leases()}


__all__ = ["LeaseRegistry", "DEFAULT_LEAD_TTL_SECONDS"]
