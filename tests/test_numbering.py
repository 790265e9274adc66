"""Tests for trámite number generation.

Tests cover:
- PREFIX-YYYYMMDD-NNNN formatting and zero padding
- Sequence values above four digits
- Per-day counters and custom prefixes
"""

from datetime import date

import pytest

from rdam.services.numbering import TramiteNumberGenerator, format_tramite_number
from tests.fakes import FakeSequenceSource


class TestFormatTramiteNumber:
    """Tests for format_tramite_number."""

    def test_zero_padded(self):
        """Test the sequence is padded to four digits."""
        assert format_tramite_number("RDAM", date(2026, 3, 2), 7) == "RDAM-20260302-0007"

    def test_large_values_keep_all_digits(self):
        """Test values past 9999 are not truncated."""
        assert format_tramite_number("RDAM", date(2026, 3, 2), 12345) == "RDAM-20260302-12345"


class TestTramiteNumberGenerator:
    """Tests for TramiteNumberGenerator."""

    @pytest.mark.asyncio
    async def test_counts_per_day(self):
        """Test each day has its own counter."""
        generator = TramiteNumberGenerator(FakeSequenceSource())

        numbers = [
            await generator.next_number(date(2026, 3, 2)),
            await generator.next_number(date(2026, 3, 2)),
            await generator.next_number(date(2026, 3, 3)),
        ]

        assert numbers == ["RDAM-20260302-0001", "RDAM-20260302-0002", "RDAM-20260303-0001"]

    @pytest.mark.asyncio
    async def test_custom_prefix(self):
        """Test the configured prefix is used."""
        generator = TramiteNumberGenerator(FakeSequenceSource(), prefix="SFE")

        assert await generator.next_number(date(2026, 10, 19)) == "SFE-20261019-0001"
