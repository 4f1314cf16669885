# ============================================================================
# NODE LOCK MODEL
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Per-run node locking
# PURPOSE: Row shape of the running_repairs table
# CREATED: 19 OCT 2026
# ============================================================================
"""
Node Lock Model

One row per (repair run, node). All rows of a run share the repair_id
partition, which is what lets a single conditional batch claim several
nodes atomically. A row whose owner is null is a free node.
"""

from typing import ClassVar, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class NodeLock(BaseModel):
    """
    Claim on one node for the duration of a repair segment.

    Table: running_repairs
    Primary Key: (repair_id, node)
    """

    __cql_table__: ClassVar[str] = "running_repairs"
    __cql_primary_key__: ClassVar[List[str]] = ["repair_id", "node"]

    repair_id: UUID = Field(description="Repair run id (partition key)")
    node: str = Field(description="Node name (clustering key)")
    reaper_instance_id: Optional[UUID] = Field(default=None, description="Owner, None when free")
    reaper_instance_host: Optional[str] = None
    segment_id: Optional[UUID] = Field(
        default=None,
        description="Segment currently justifying the lock",
    )

    @property
    def is_locked(self) -> bool:
        return self.reaper_instance_id is not None


__all__ = ["NodeLock"]
