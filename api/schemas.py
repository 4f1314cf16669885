# ============================================================================
# API SCHEMAS
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Response schemas
# PURPOSE: Pydantic models for the diagnostics API
# CREATED: 19 OCT 2026
# ============================================================================
"""
API Schemas

Response models for the read-only coordination inventory.
"""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from core.models import Heartbeat, Lease, NodeLock


class HealthResponse(BaseModel):
    """Liveness of the process and its store session."""
    status: str = Field(..., description="ok or degraded")
    store_connected: bool
    coordinator_running: bool
    instance_id: Optional[str] = None
    version: str


class LeaderResponse(BaseModel):
    """One held lease."""
    leader_id: UUID
    reaper_instance_id: UUID
    reaper_instance_host: Optional[str] = None
    last_heartbeat: Optional[datetime] = None

    @classmethod
    def from_lease(cls, lease: Lease) -> "LeaderResponse":
        return cls(
            leader_id=lease.leader_id,
            reaper_instance_id=lease.reaper_instance_id,
            reaper_instance_host=lease.reaper_instance_host,
            last_heartbeat=lease.last_heartbeat,
        )


class LeaderListResponse(BaseModel):
    leaders: List[LeaderResponse]
    count: int


class InstanceResponse(BaseModel):
    reaper_instance_id: UUID
    reaper_instance_host: Optional[str] = None
    last_heartbeat: Optional[datetime] = None

    @classmethod
    def from_heartbeat(cls, heartbeat: Heartbeat) -> "InstanceResponse":
        return cls(**heartbeat.model_dump())


class InstanceListResponse(BaseModel):
    """Instances with a live heartbeat."""
    instances: List[InstanceResponse]
    count: int
    self_id: UUID


class NodeLockResponse(BaseModel):
    node: str
    reaper_instance_id: Optional[UUID] = None
    reaper_instance_host: Optional[str] = None
    segment_id: Optional[UUID] = None

    @classmethod
    def from_lock(cls, lock: NodeLock) -> "NodeLockResponse":
        return cls(
            node=lock.node,
            reaper_instance_id=lock.reaper_instance_id,
            reaper_instance_host=lock.reaper_instance_host,
            segment_id=lock.segment_id,
        )


class RunLocksResponse(BaseModel):
    """Held node locks of one repair run."""
    run_id: UUID
    locks: List[NodeLockResponse]
    locked_nodes: List[str]
    locked_segments: List[UUID]


class CoordinatorStatusResponse(BaseModel):
    status: str
    instance_id: str
    address: Optional[str] = None
    started_at: Optional[str] = None
    uptime_seconds: Optional[float] = None
    last_heartbeat_at: Optional[str] = None
    segments_claimed: int = 0
    outcomes: Dict[str, int] = Field(default_factory=dict)
    live_instances: Optional[int] = None
