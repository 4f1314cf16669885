# ============================================================================
# LEASE MODEL
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Lease-based coordination
# PURPOSE: Row shape of the leader table (store-side TTL leases)
# CREATED: 19 OCT 2026
# ============================================================================
"""
Lease Model

Time-bounded, single-owner claim on an arbitrary lease id (a segment id, a
repair run id or a scheduling scope). The row is written with a store-side
TTL, so an owner that stops renewing loses the lease without any sweep.

Key properties:
- Created by INSERT ... IF NOT EXISTS (exactly one racing winner)
- Extended by UPDATE ... IF owner = caller
- Removed by DELETE ... IF owner = caller, or by TTL expiry
"""

from datetime import datetime
from typing import ClassVar, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class Lease(BaseModel):
    """
    Lease held by one coordinator instance.

    Table: leader (partition key leader_id)
    """

    __cql_table__: ClassVar[str] = "leader"
    __cql_primary_key__: ClassVar[List[str]] = ["leader_id"]

    leader_id: UUID = Field(description="Lease identifier")
    reaper_instance_id: UUID = Field(description="Owning instance")
    reaper_instance_host: Optional[str] = Field(
        default=None,
        description="Address of the owning instance",
    )
    last_heartbeat: Optional[datetime] = Field(
        default=None,
        description="Store time of the last acquire/renew",
    )


__all__ = ["Lease"]
