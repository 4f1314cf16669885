# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Coordination loop
# PURPOSE: Per-instance coordinator driving leases, heartbeats and segments
# CREATED: 19 OCT 2026
# ============================================================================
"""
Orchestrator Module

Usage:
    from orchestrator import Coordinator, RepairOutcome

    coordinator = Coordinator(session)
    await coordinator.start()
    outcome = await coordinator.repair_next_segment(run_id, repair)
"""

from .loop import Coordinator, RepairOutcome

__all__ = [
    "Coordinator",
    "RepairOutcome",
]
