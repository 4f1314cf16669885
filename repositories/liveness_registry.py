# ============================================================================
# LIVENESS REGISTRY
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Instance heartbeats
# PURPOSE: Announce running instances and estimate fleet size
# CREATED: 19 OCT 2026
# ============================================================================
"""
Liveness Registry

Every coordinator instance upserts a row in `running_reapers` on a fixed
period and deletes it on graceful shutdown. The row count sizes each
instance's share of work; a crashed instance leaves a stale row behind, so
nothing here may be used for correctness decisions.
"""

import logging
from typing import List, Optional, Set
from uuid import UUID

from core.models import Heartbeat
from .database import CoordinationSession, TABLE_RUNNING_REAPERS

logger = logging.getLogger(__name__)


class LivenessRegistry:
    """Heartbeat registry for coordinator instances."""

    def __init__(
        self,
        session: CoordinationSession,
        instance_id: UUID,
        instance_address: Optional[str] = None,
    ):
        self.session = session
        self.instance_id = instance_id
        self.instance_address = instance_address
        self._save_stmt = None
        self._list_stmt = None
        self._delete_stmt = None

    async def _prepare(self) -> None:
        if self._save_stmt is not None:
            return

        self._save_stmt = await self.session.prepare(
            f"INSERT INTO {TABLE_RUNNING_REAPERS}"
            "(reaper_instance_id, reaper_instance_host, last_heartbeat)"
            f" VALUES(?, ?, {self.session.time_function}(now()))",
            idempotent=False,
        )
        self._list_stmt = await self.session.prepare(
            "SELECT reaper_instance_id, reaper_instance_host, last_heartbeat"
            f" FROM {TABLE_RUNNING_REAPERS}",
        )
        self._delete_stmt = await self.session.prepare(
            f"DELETE FROM {TABLE_RUNNING_REAPERS} WHERE reaper_instance_id = ?",
        )

    async def heartbeat(self) -> None:
        """
        Announce this instance.

        Fire-and-forget: the write is handed to the driver and not awaited,
        so a slow store never delays the caller's scheduling loop.
        """
        await self._prepare()
        self.session.execute_nowait(
            self._save_stmt.bind((self.instance_id, self.instance_address))
        )

    async def list_heartbeats(self) -> List[Heartbeat]:
        """Heartbeat rows of all instances (diagnostics only)."""
        await self._prepare()
        result = await self.session.execute(self._list_stmt.bind(()))
        return [Heartbeat.model_validate(row) for row in result.rows]

    async def list_live(self) -> Set[UUID]:
        """Ids of all instances with a heartbeat row."""
        return {heartbeat.reaper_instance_id for heartbeat in await self.list_heartbeats()}

    async def count(self) -> int:
        """
        Number of running instances, never less than 1.

        Safe to use as a denominator when sizing a per-instance share.
        """
        running = len(await self.list_live())
        logger.debug(f"Running instances = {running}")
        return running if running > 0 else 1

    async def forget(self) -> None:
        """Remove this instance's heartbeat (graceful shutdown)."""
        await self._prepare()
        logger.info("Instance is stopping, removing it from running instances...")
        await self.session.execute(self._delete_stmt.bind((self.instance_id,)))


__all__ = ["LivenessRegistry"]
