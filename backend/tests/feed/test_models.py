"""Tests for feed data models."""

import math
from datetime import date, datetime, timedelta, timezone

import pytest

from pushfeed.models import EventRecord, SubKey, parse_time


class TestEventRecord:
    """Unit tests for EventRecord."""

    def test_from_values(self):
        """Symbol, time and index are lifted from the wire fields."""
        record = EventRecord.from_values(
            "TimeAndSale", ["eventSymbol", "time", "index", "price"], ["AAPL", 1000, 3, 190.5]
        )
        assert record.symbol == "AAPL"
        assert record.time == 1000
        assert record.index == 3
        assert record.key == SubKey("TimeAndSale", "AAPL")

    def test_immutable(self):
        """Neither attributes nor fields can be changed."""
        record = EventRecord.from_values("Quote", ["eventSymbol", "bidPrice"], ["AAPL", 1.0])
        with pytest.raises(AttributeError):
            record.symbol = "MSFT"  # type: ignore[misc]
        with pytest.raises(TypeError):
            record.fields["bidPrice"] = 2.0  # type: ignore[index]

    def test_get_default(self):
        """Missing fields fall back to the default."""
        record = EventRecord("Quote", "AAPL", {"eventSymbol": "AAPL"})
        assert record.get("bidPrice") is None
        assert record.get("bidPrice", 0.0) == 0.0

    def test_to_dict(self):
        """Wire form includes the event type."""
        record = EventRecord.from_values("Quote", ["eventSymbol", "bidPrice"], ["AAPL", 1.0])
        assert record.to_dict() == {"eventSymbol": "AAPL", "bidPrice": 1.0, "eventType": "Quote"}

    def test_regular_record_has_no_index(self):
        """Records without time/index fields leave them None."""
        record = EventRecord.from_values("Quote", ["eventSymbol"], ["AAPL"])
        assert record.time is None
        assert record.index is None


class TestParseTime:
    """Unit tests for parse_time."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (1704067200000, 1704067200000),
            (1704067200000.7, 1704067200000),
            ("1704067200000", 1704067200000),
            ("2024-01-01T00:00:00Z", 1704067200000),
            ("2024-01-01T00:00:00", 1704067200000),
            ("2024-01-01T01:00:00+01:00", 1704067200000),
            (datetime(2024, 1, 1, tzinfo=timezone.utc), 1704067200000),
            (datetime(2024, 1, 1, 2, tzinfo=timezone(timedelta(hours=2))), 1704067200000),
            (date(2024, 1, 1), 1704067200000),
        ],
    )
    def test_valid(self, value, expected):
        """Numbers, strings and date objects convert to epoch ms."""
        assert parse_time(value) == expected

    @pytest.mark.parametrize("value", [None, True, False, float("nan"), "", "soon", object(), [1]])
    def test_invalid(self, value):
        """Anything else yields None."""
        assert parse_time(value) is None

    def test_infinity_passes_through(self):
        """Infinity is the unbounded marker."""
        assert parse_time(math.inf) == math.inf
