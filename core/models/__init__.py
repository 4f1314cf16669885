# ============================================================================
# CLAUDE CONTEXT - MODELS MODULE
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

All Pydantic models for the repair coordination layer.
Models carry their CQL table name via __cql_* ClassVar attributes.
"""

from core.models.ring_range import RingRange
from core.models.lease import Lease
from core.models.heartbeat import Heartbeat
from core.models.node_lock import NodeLock
from core.models.segment import RepairSegment, SegmentInvariantError

__all__ = [
    # Tokens
    "RingRange",
    # Coordination rows
    "Lease",
    "Heartbeat",
    "NodeLock",
    # Segment
    "RepairSegment",
    "SegmentInvariantError",
]
