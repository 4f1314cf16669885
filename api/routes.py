# ============================================================================
# API ROUTES
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - FastAPI route definitions
# PURPOSE: Read-only diagnostics of leases, instances and node locks
# CREATED: 19 OCT 2026
# ============================================================================
"""
API Routes

FastAPI routes for inspecting coordination state. Everything here is a
snapshot for operators; no decision is ever taken from these reads.
"""

import logging
from uuid import UUID

from cassandra import DriverException
from fastapi import APIRouter, HTTPException

from __version__ import __version__
from .schemas import (
    CoordinatorStatusResponse,
    HealthResponse,
    InstanceListResponse,
    InstanceResponse,
    LeaderListResponse,
    LeaderResponse,
    NodeLockResponse,
    RunLocksResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================
# Set by the main app at startup

_coordinator = None


def set_services(coordinator):
    """Set service instances for dependency injection."""
    global _coordinator
    _coordinator = coordinator


def get_coordinator():
    if _coordinator is None:
        raise HTTPException(500, "Coordinator not initialized")
    return _coordinator


def _store_unavailable(e: DriverException) -> HTTPException:
    logger.warning(f"Store read failed: {e}")
    return HTTPException(503, f"Store unavailable: {e}")


# ============================================================================
# HEALTH
# ============================================================================

@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health():
    """Process health: store session connected and coordinator running."""
    if _coordinator is None:
        return HealthResponse(
            status="degraded",
            store_connected=False,
            coordinator_running=False,
            version=__version__,
        )

    connected = _coordinator.session.is_connected()
    running = _coordinator.is_running
    return HealthResponse(
        status="ok" if connected and running else "degraded",
        store_connected=connected,
        coordinator_running=running,
        instance_id=str(_coordinator.instance_id),
        version=__version__,
    )


# ============================================================================
# COORDINATION STATE
# ============================================================================

@router.get("/coordination/leaders", response_model=LeaderListResponse, tags=["Coordination"])
async def list_leaders():
    """Leases currently held, across all instances."""
    coordinator = get_coordinator()
    try:
        leases = await coordinator.leases.list_leases()
    except DriverException as e:
        raise _store_unavailable(e)

    return LeaderListResponse(
        leaders=[LeaderResponse.from_lease(lease) for lease in leases],
        count=len(leases),
    )


@router.get("/coordination/instances", response_model=InstanceListResponse, tags=["Coordination"])
async def list_instances():
    """Instances with a live heartbeat."""
    coordinator = get_coordinator()
    try:
        heartbeats = await coordinator.liveness.list_heartbeats()
    except DriverException as e:
        raise _store_unavailable(e)

    heartbeats.sort(key=lambda heartbeat: str(heartbeat.reaper_instance_id))
    return InstanceListResponse(
        instances=[InstanceResponse.from_heartbeat(heartbeat) for heartbeat in heartbeats],
        count=len(heartbeats),
        self_id=coordinator.instance_id,
    )


@router.get(
    "/coordination/runs/{run_id}/locks",
    response_model=RunLocksResponse,
    tags=["Coordination"],
)
async def get_run_locks(run_id: UUID):
    """Node locks held for one repair run."""
    coordinator = get_coordinator()
    try:
        locks = [lock for lock in await coordinator.node_locks.locks(run_id) if lock.is_locked]
    except DriverException as e:
        raise _store_unavailable(e)

    return RunLocksResponse(
        run_id=run_id,
        locks=[NodeLockResponse.from_lock(lock) for lock in locks],
        locked_nodes=sorted(lock.node for lock in locks),
        locked_segments=sorted({lock.segment_id for lock in locks if lock.segment_id}, key=str),
    )


@router.get(
    "/coordination/status",
    response_model=CoordinatorStatusResponse,
    tags=["Coordination"],
)
async def get_coordinator_status():
    """
    Get coordinator status and statistics.

    Returns:
    - Running state and uptime
    - Last heartbeat
    - Segment outcomes since start
    - Number of live instances (None if the store is unreachable)
    """
    coordinator = get_coordinator()
    stats = coordinator.status()

    try:
        live_instances = await coordinator.liveness.count()
    except DriverException as e:
        logger.warning(f"Could not count live instances: {e}")
        live_instances = None

    return CoordinatorStatusResponse(
        status="running" if stats["running"] else "stopped",
        instance_id=stats["instance_id"],
        address=stats["address"],
        started_at=stats["started_at"],
        uptime_seconds=stats["uptime_seconds"],
        last_heartbeat_at=stats["last_heartbeat_at"],
        segments_claimed=stats["segments_claimed"],
        outcomes=stats["outcomes"],
        live_instances=live_instances,
    )
