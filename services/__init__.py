# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Business logic layer
# PURPOSE: Segment selection and lifecycle services
# CREATED: 19 OCT 2026
# ============================================================================
"""
Services Module

Business logic for repair coordination.
Services coordinate between the registries and the segment repository.

Usage:
    from services import SegmentService

    segments = SegmentService(segment_repo, node_locks, leases)
    segment = await segments.claim_next_segment(run_id)
"""

from .candidate_selector import CandidateSelector
from .segment_service import SegmentService

__all__ = [
    "CandidateSelector",
    "SegmentService",
]
