# ============================================================================
# HEARTBEAT MODEL
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Instance liveness
# PURPOSE: Row shape of the running_reapers table
# CREATED: 19 OCT 2026
# ============================================================================
"""
Heartbeat Model

Each coordinator instance upserts one row on a fixed period and deletes it
at graceful shutdown. Presence is only a load-estimation signal.
"""

from datetime import datetime
from typing import ClassVar, List, Optional
from uuid import UUID

from pydantic import BaseModel


class Heartbeat(BaseModel):
    """
    Liveness announcement of a coordinator instance.

    Table: running_reapers (partition key reaper_instance_id)
    """

    __cql_table__: ClassVar[str] = "running_reapers"
    __cql_primary_key__: ClassVar[List[str]] = ["reaper_instance_id"]

    reaper_instance_id: UUID
    reaper_instance_host: Optional[str] = None
    last_heartbeat: Optional[datetime] = None


__all__ = ["Heartbeat"]
