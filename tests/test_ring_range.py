# ============================================================================
# RING RANGE TESTS
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Tests - Token range arithmetic
# PURPOSE: Verify enclosure checks with and without wrap-around
# CREATED: 19 OCT 2026
# ============================================================================
"""
RingRange Tests

Run with:
    pytest tests/test_ring_range.py -v
"""

import pytest
from pydantic import ValidationError

from core.models import RingRange


def _r(start, end):
    return RingRange(start=start, end=end)


class TestEncloses:

    def test_plain_range_encloses_inner_range(self):
        assert _r(0, 100).encloses(_r(10, 20))
        assert _r(0, 100).encloses(_r(0, 100))

    def test_plain_range_rejects_overlap(self):
        assert not _r(0, 100).encloses(_r(50, 150))
        assert not _r(10, 100).encloses(_r(0, 20))

    def test_plain_range_never_encloses_wrapping_range(self):
        assert not _r(-100, 100).encloses(_r(90, -90))

    def test_wrapping_range_encloses_both_sides_of_boundary(self):
        wrapping = _r(1000, -1000)
        assert wrapping.encloses(_r(1500, 2000))
        assert wrapping.encloses(_r(-5000, -2000))

    def test_wrapping_range_rejects_middle(self):
        assert not _r(1000, -1000).encloses(_r(-500, 500))

    def test_wrapping_range_encloses_nested_wrapping_range(self):
        assert _r(1000, -1000).encloses(_r(2000, -2000))
        assert not _r(1000, -1000).encloses(_r(500, -2000))


class TestSpan:

    def test_plain_span(self):
        assert _r(-10, 10).span() == 20

    def test_wrapping_span_needs_ring_size(self):
        with pytest.raises(ValueError):
            _r(90, 10).span()
        assert _r(90, 10).span(ring_size=100) == 20

    def test_ranges_are_immutable(self):
        with pytest.raises(ValidationError):
            _r(0, 1).start = 5

    def test_str(self):
        assert str(_r(0, 10)) == "(0,10]"
