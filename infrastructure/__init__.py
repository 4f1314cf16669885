# ============================================================================
# INFRASTRUCTURE MODULE
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Infrastructure - Store driver integration
# PURPOSE: Driver-level policies shared by every store statement
# CREATED: 19 OCT 2026
# ============================================================================
"""
Infrastructure module for the repair coordination layer.

Provides:
- CoordinationRetryPolicy: bounded read retries, unbounded idempotent write retries
- CasConsistencyError: raised for CAS write timeouts at non-serial consistency

Usage:
    from infrastructure import CoordinationRetryPolicy

    profile = ExecutionProfile(retry_policy=CoordinationRetryPolicy())
"""

from infrastructure.retry_policy import (
    CoordinationRetryPolicy,
    CasConsistencyError,
)

__all__ = [
    "CoordinationRetryPolicy",
    "CasConsistencyError",
]
