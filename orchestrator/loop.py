# ============================================================================
# COORDINATION LOOP - MULTI-INSTANCE
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Per-instance coordinator
# PURPOSE: Heartbeat, lead work under a lease, repair segments under node locks
# CREATED: 19 OCT 2026
# ============================================================================
"""
Coordination Loop - Multi-Instance Design

Every instance runs one Coordinator. Instances never talk to each other;
they share the store and settle every race with lightweight transactions:

1. Background heartbeat keeps this instance in the liveness registry
2. lead() holds a lease while work runs, renewing at ttl / renew_divisor
3. repair_next_segment() claims a segment by locking its replicas,
   drives it STARTED -> RUNNING -> DONE and renews the locks meanwhile
4. A failed renewal cancels the work: ownership is gone, stop immediately
5. Store failures that survive the retry policy are reported as PAUSED;
   nothing here brings the process down

Runs as a background task in the FastAPI application.
"""

import asyncio
import logging
import math
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from cassandra import DriverException

from core.config import CoordinationDefaults, get_defaults
from core.logging import ComponentType, log_checkpoint, log_context
from core.models import RepairSegment, RingRange
from repositories import (
    CoordinationSession,
    LeaseRegistry,
    LivenessRegistry,
    NodeLockRegistry,
    SegmentRepository,
)
from services import SegmentService

logger = logging.getLogger(__name__)

RepairCallable = Callable[[RepairSegment], Awaitable[Any]]


class RepairOutcome(str, Enum):
    """Result of one lead() or repair_next_segment() call."""
    IDLE = "idle"        # nothing claimable / lease held elsewhere
    DONE = "done"
    FAILED = "failed"    # work raised or reported failure; segment reset
    LOST = "lost"        # ownership lost while working
    PAUSED = "paused"    # store unavailable, try again later


class Coordinator:
    """
    Repair coordinator for one instance.

    Each instance:
    - Has a unique instance_id (UUID) written as owner of leases and locks
    - Sends heartbeats so peers can count live instances
    - Claims segments only through the node lock registry
    - Stops work the moment a renewal fails
    """

    def __init__(
        self,
        session: CoordinationSession,
        config: Optional[CoordinationDefaults] = None,
        instance_id: Optional[UUID] = None,
    ):
        """
        Initialize coordinator.

        Args:
            session: Store session shared by all registries
            config: Coordination settings (defaults to environment)
            instance_id: Identity of this instance (random when omitted)
        """
        self.session = session
        self.config = config or get_defaults().coordination
        self._instance_id = instance_id or uuid.uuid4()
        self.address = self.config.instance_address

        # Registries
        self.leases = LeaseRegistry(
            session, self._instance_id, self.address, default_ttl=self.config.lead_ttl_seconds,
        )
        self.liveness = LivenessRegistry(session, self._instance_id, self.address)
        self.node_locks = NodeLockRegistry(
            session, self._instance_id, self.address, default_ttl=self.config.lock_ttl_seconds,
        )
        self.segment_repo = SegmentRepository(session)

        # Services
        self.segments = SegmentService(self.segment_repo, self.node_locks, self.leases)

        # State
        self._running = False
        self._stop_event = asyncio.Event()
        self._heartbeat_task: Optional[asyncio.Task] = None

        # Metrics
        self._started_at: Optional[datetime] = None
        self._last_heartbeat_at: Optional[datetime] = None
        self._heartbeat_errors = 0
        self._segments_claimed = 0
        self._outcomes: Dict[str, int] = {outcome.value: 0 for outcome in RepairOutcome}

    @property
    def instance_id(self) -> UUID:
        """This coordinator's unique ID."""
        return self._instance_id

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Start the heartbeat loop."""
        if self._running:
            logger.warning("Coordinator already running")
            return

        self._running = True
        self._started_at = datetime.now(timezone.utc)
        self._stop_event.clear()

        self._heartbeat_task = asyncio.create_task(
            self._heartbeat_loop(),
            name=f"coordinator-heartbeat-{str(self._instance_id)[:8]}",
        )
        logger.info(f"Coordinator started (instance_id={self._instance_id}, address={self.address})")

    async def stop(self) -> None:
        """
        Stop the coordinator gracefully.

        Cancels the heartbeat loop and removes this instance from the
        liveness registry. Leases and node locks still held simply expire.
        """
        logger.info(f"Stopping coordinator (instance_id={self._instance_id})")

        self._running = False
        self._stop_event.set()

        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

        try:
            await self.liveness.forget()
        except DriverException as e:
            logger.warning(f"Could not remove heartbeat of {self._instance_id}: {e}")

        logger.info(
            f"Coordinator stopped (instance_id={self._instance_id}, "
            f"segments_claimed={self._segments_claimed}, outcomes={self._outcomes})"
        )

    # =========================================================================
    # HEARTBEAT LOOP
    # =========================================================================

    async def _heartbeat_loop(self) -> None:
        """Background loop that refreshes this instance's liveness row."""
        interval = self.config.heartbeat_interval_seconds
        logger.info(f"Starting heartbeat loop (instance={self._instance_id}, interval={interval}s)")

        while not self._stop_event.is_set():
            try:
                await self.liveness.heartbeat()
                self._last_heartbeat_at = datetime.now(timezone.utc)
            except DriverException as e:
                self._heartbeat_errors += 1
                logger.error(f"Heartbeat error: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass

        logger.info(f"Heartbeat loop stopped (instance={self._instance_id})")

    # =========================================================================
    # HELD WORK
    # =========================================================================

    async def _run_while_held(
        self,
        work: Callable[[], Awaitable[Any]],
        renew: Callable[[], Awaitable[bool]],
        interval: float,
    ) -> Tuple[bool, Any]:
        """
        Run work() while renew() keeps succeeding every `interval` seconds.

        Returns:
            (True, result of work) or (False, None) if a renewal failed and
            the work was cancelled

        Raises:
            Whatever work raised, or the error a renewal raised other than a
            driver error, after work has been cancelled
        """
        work_task = asyncio.ensure_future(work())
        lost = asyncio.Event()
        renew_errors: List[Exception] = []

        async def renewal() -> None:
            while True:
                await asyncio.sleep(interval)
                try:
                    held = await renew()
                except DriverException as e:
                    logger.error(f"Renewal failed: {e}")
                    held = False
                except Exception as e:
                    logger.error(f"Renewal raised, stopping work: {e}", exc_info=True)
                    renew_errors.append(e)
                    held = False
                if not held:
                    lost.set()
                    work_task.cancel()
                    return

        renew_task = asyncio.create_task(renewal())
        try:
            result = await work_task
        except asyncio.CancelledError:
            if not lost.is_set():
                raise
            if renew_errors:
                raise renew_errors[0]
            return False, None
        finally:
            renew_task.cancel()
            try:
                await renew_task
            except asyncio.CancelledError:
                pass

        return True, result

    def _record(self, outcome: RepairOutcome) -> RepairOutcome:
        self._outcomes[outcome.value] += 1
        return outcome

    async def lead(self, lease_id: UUID, work: Callable[[], Awaitable[Any]]) -> RepairOutcome:
        """
        Run work() while holding the lease `lease_id`.

        Returns:
            IDLE if another instance holds the lease, DONE when work finished,
            LOST if the lease could not be renewed (work was cancelled),
            FAILED if work raised, PAUSED if the store was unavailable
        """
        with log_context(
            lease_id=str(lease_id),
            instance_id=str(self._instance_id),
            component=ComponentType.COORDINATOR.value,
            operation="lead",
        ):
            try:
                if not await self.leases.acquire(lease_id):
                    return self._record(RepairOutcome.IDLE)
            except DriverException as e:
                logger.warning(f"Could not acquire lease {lease_id}: {e}")
                return self._record(RepairOutcome.PAUSED)

            log_checkpoint("lease_acquired")
            outcome = RepairOutcome.DONE
            try:
                held, _ = await self._run_while_held(
                    work,
                    lambda: self.leases.renew(lease_id),
                    self.config.lead_renew_interval,
                )
                if not held:
                    log_checkpoint("lease_lost")
                    return self._record(RepairOutcome.LOST)
            except DriverException as e:
                logger.warning(f"Store unavailable while leading {lease_id}: {e}")
                outcome = RepairOutcome.PAUSED
            except Exception as e:
                logger.error(f"Work under lease {lease_id} failed: {e}", exc_info=True)
                outcome = RepairOutcome.FAILED

            try:
                await self.leases.release(lease_id)
                log_checkpoint("lease_released")
            except DriverException as e:
                logger.warning(f"Could not release lease {lease_id}, it will expire: {e}")

            return self._record(outcome)

    # =========================================================================
    # SEGMENT REPAIR
    # =========================================================================

    async def repair_next_segment(
        self,
        run_id: UUID,
        repair: RepairCallable,
        ranges: Optional[Sequence[RingRange]] = None,
    ) -> RepairOutcome:
        """
        Claim one segment of a run and drive it to DONE.

        `repair(segment)` performs the actual repair; returning False or
        raising counts as failure and resets the segment to NOT_STARTED.

        Args:
            run_id: Repair run
            repair: Async callable doing the repair of one segment
            ranges: Only claim segments inside these token ranges

        Returns:
            RepairOutcome
        """
        with log_context(
            run_id=str(run_id),
            instance_id=str(self._instance_id),
            component=ComponentType.COORDINATOR.value,
            operation="repair_next_segment",
        ):
            try:
                await self.segments.recover_orphaned_segments(run_id)
                segment = await self.segments.claim_next_segment(run_id, ranges)
            except DriverException as e:
                logger.warning(f"Store unavailable while claiming a segment of run {run_id}: {e}")
                return self._record(RepairOutcome.PAUSED)

            if segment is None:
                return self._record(RepairOutcome.IDLE)

            self._segments_claimed += 1
            with log_context(segment_id=str(segment.id)):
                log_checkpoint("segment_claimed", {"replicas": sorted(segment.replica_nodes)})

                try:
                    outcome = await self._repair_segment(segment, repair)
                except DriverException as e:
                    logger.warning(f"Store unavailable while repairing segment {segment.id}: {e}")
                    await self._reset_quietly(segment)
                    outcome = RepairOutcome.PAUSED

                if outcome != RepairOutcome.LOST:
                    await self._release_quietly(segment)

                return self._record(outcome)

    async def _repair_segment(self, segment: RepairSegment, repair: RepairCallable) -> RepairOutcome:
        if not await self.segments.start_segment(segment, self.address):
            return RepairOutcome.LOST
        if not await self.segments.mark_segment_running(segment):
            if not await self.segments.has_lead_on_segment(segment):
                return RepairOutcome.LOST
            await self.segments.reset_in_flight_segment(segment)
            return RepairOutcome.FAILED

        try:
            held, result = await self._run_while_held(
                lambda: repair(segment),
                lambda: self.segments.has_lead_on_segment(segment),
                self.config.lock_renew_interval,
            )
        except DriverException:
            raise
        except Exception as e:
            logger.error(f"Repair of segment {segment.id} failed: {e}", exc_info=True)
            await self.segments.fail_segment(segment)
            return RepairOutcome.FAILED

        if not held:
            # The repair was aborted mid-way, so the segment goes back to the pool.
            log_checkpoint("segment_lost")
            await self.segments.fail_segment(segment)
            return RepairOutcome.LOST

        if result is False:
            await self.segments.fail_segment(segment)
            return RepairOutcome.FAILED

        if not await self.segments.complete_segment(segment):
            return RepairOutcome.LOST

        log_checkpoint("segment_done")
        return RepairOutcome.DONE

    async def _reset_quietly(self, segment: RepairSegment) -> None:
        try:
            await self.segments.reset_in_flight_segment(segment)
        except DriverException as e:
            logger.warning(
                f"Could not reset segment {segment.id}, it is recovered once its locks are gone: {e}"
            )

    async def _release_quietly(self, segment: RepairSegment) -> None:
        try:
            await self.segments.release_segment(segment)
        except DriverException as e:
            logger.warning(f"Could not release locks of segment {segment.id}, they will expire: {e}")

    # =========================================================================
    # CAPACITY
    # =========================================================================

    async def max_parallel_share(self, total: int) -> int:
        """This instance's share of `total` parallel work: ceil(total / live instances)."""
        return math.ceil(total / await self.liveness.count())

    # =========================================================================
    # STATUS
    # =========================================================================

    def status(self) -> Dict[str, Any]:
        """Get coordinator statistics."""
        uptime_seconds = None
        if self._started_at:
            uptime_seconds = (datetime.now(timezone.utc) - self._started_at).total_seconds()

        return {
            "running": self._running,
            "instance_id": str(self._instance_id),
            "address": self.address,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "uptime_seconds": uptime_seconds,
            "heartbeat_interval": self.config.heartbeat_interval_seconds,
            "lead_ttl": self.config.lead_ttl_seconds,
            "lock_ttl": self.config.lock_ttl_seconds,
            "last_heartbeat_at": self._last_heartbeat_at.isoformat() if self._last_heartbeat_at else None,
            "heartbeat_errors": self._heartbeat_errors,
            "segments_claimed": self._segments_claimed,
            "outcomes": dict(self._outcomes),
            "store_connected": self.session.is_connected(),
        }
