# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Store access layer
# PURPOSE: Leases, heartbeats, node locks and segment state in Cassandra
# CREATED: 19 OCT 2026
# ============================================================================
"""
Repositories Module

Provides store access for the coordination layer.
Uses the Cassandra driver with lightweight transactions for every claim.

Usage:
    from repositories import get_session, LeaseRegistry

    session = await get_session()
    leases = LeaseRegistry(session, instance_id, address)
    owned = await leases.acquire(lease_id)
"""

from .database import (
    CoordinationSession,
    StatementResult,
    StoreSession,
    init_session,
    get_session,
    close_session,
)
from .lease_registry import LeaseRegistry
from .liveness_registry import LivenessRegistry
from .node_lock_registry import NodeLockRegistry
from .segment_repo import SegmentRepository

__all__ = [
    "CoordinationSession",
    "StatementResult",
    "StoreSession",
    "init_session",
    "get_session",
    "close_session",
    "LeaseRegistry",
    "LivenessRegistry",
    "NodeLockRegistry",
    "SegmentRepository",
]
