# ============================================================================
# CLAUDE CONTEXT - BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Foundation - Core enums shared by storage and coordination
# PURPOSE: Segment lifecycle states and store consistency modes
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: SegmentState, ConsistencyMode
# DEPENDENCIES: enum, cassandra-driver
# ============================================================================
"""
Base contracts for the repair coordination layer.

These enums cross two boundaries:
- Store (Cassandra) - SegmentState is persisted as its ordinal (int column)
- Python (internal processing) - str values used in logs and API payloads
"""

from enum import Enum
from typing import List

from cassandra import ConsistencyLevel


# ============================================================================
# SEGMENT STATE
# ============================================================================

class SegmentState(str, Enum):
    """
    Repair segment lifecycle states.

    State transitions:
        NOT_STARTED -> STARTED -> RUNNING -> DONE
                    <- (failure: reset, fail_count + 1)

    Declaration order is significant: the store keeps the ordinal.
    """
    NOT_STARTED = "not_started"  # Free to be claimed
    STARTED = "started"          # Claimed, repair being triggered
    RUNNING = "running"          # Repair session running on the coordinator
    DONE = "done"                # Repaired successfully

    @property
    def ordinal(self) -> int:
        """Position of this state as stored in the segment_state column."""
        return _SEGMENT_STATE_ORDER.index(self)

    @classmethod
    def from_ordinal(cls, ordinal: int) -> "SegmentState":
        """Decode a stored segment_state value."""
        if ordinal < 0 or ordinal >= len(_SEGMENT_STATE_ORDER):
            raise ValueError(f"Unknown segment state ordinal: {ordinal}")
        return _SEGMENT_STATE_ORDER[ordinal]

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no further transitions)."""
        return self is SegmentState.DONE


_SEGMENT_STATE_ORDER: List[SegmentState] = list(SegmentState)


# ============================================================================
# STORE CONSISTENCY MODE
# ============================================================================

class ConsistencyMode(str, Enum):
    """
    Deployment flavour of the backing store.

    Managed (Astra) clusters reject LOCAL_ONE writes, so the default
    consistency level depends on the mode.
    """
    CASSANDRA = "cassandra"
    ASTRA = "astra"

    @property
    def default_consistency(self) -> int:
        if self is ConsistencyMode.ASTRA:
            return ConsistencyLevel.LOCAL_QUORUM
        return ConsistencyLevel.LOCAL_ONE


__all__ = ["SegmentState", "ConsistencyMode"]
