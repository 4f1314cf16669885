# ============================================================================
# CLAUDE CONTEXT - CORE MODULE
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core module initialization
# PURPOSE: Export core contracts and models
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================

from core.contracts import SegmentState, ConsistencyMode
from core.models import (
    RingRange,
    Lease,
    Heartbeat,
    NodeLock,
    RepairSegment,
    SegmentInvariantError,
)

__all__ = [
    # Enums
    "SegmentState",
    "ConsistencyMode",
    # Models
    "RingRange",
    "Lease",
    "Heartbeat",
    "NodeLock",
    "RepairSegment",
    "SegmentInvariantError",
]
