# ============================================================================
# CLAUDE CONTEXT - RING RANGE MODEL
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core model - Token ranges on the partitioner ring
# PURPOSE: Token sub-range arithmetic used to filter segments by range
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: RingRange
# DEPENDENCIES: pydantic
# ============================================================================
"""
Ring Range Model

A RingRange is a (start, end] slice of the token ring. When start >= end
the range wraps around the end of the ring (and a range with start == end
covers the whole ring).
"""

from typing import Optional

from pydantic import BaseModel, Field


class RingRange(BaseModel):
    """Token range (start, end] on the ring."""

    start: int = Field(description="Exclusive lower token")
    end: int = Field(description="Inclusive upper token")

    model_config = {"frozen": True}

    def is_wrapping(self) -> bool:
        """True if the range crosses the end of the ring."""
        return self.start >= self.end

    def encloses(self, other: "RingRange") -> bool:
        """
        Check whether `other` lies completely inside this range.

        A non-wrapping range can only enclose another non-wrapping range.
        A wrapping range encloses a non-wrapping range sitting on either
        side of the ring boundary, or a wrapping range nested inside it.
        """
        if not self.is_wrapping():
            return (
                not other.is_wrapping()
                and other.start >= self.start
                and other.end <= self.end
            )

        if not other.is_wrapping() and (other.start >= self.start or other.end <= self.end):
            return True
        return other.start >= self.start and other.end <= self.end

    def span(self, ring_size: Optional[int] = None) -> int:
        """Number of tokens covered; wrapping ranges need the ring size."""
        if not self.is_wrapping():
            return self.end - self.start
        if ring_size is None:
            raise ValueError("ring_size is required to measure a wrapping range")
        return ring_size - self.start + self.end

    def __str__(self) -> str:
        return f"({self.start},{self.end}]"


__all__ = ["RingRange"]
