"""Data models for feed events and subscription keys."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Any

# Wire field names shared by all event types
SYMBOL_FIELD = "eventSymbol"
TIME_FIELD = "time"
INDEX_FIELD = "index"


@dataclass(frozen=True, slots=True)
class SubKey:
    """Composite (event type, symbol) key of the aggregate subscription table."""

    event_type: str
    symbol: str


@dataclass(frozen=True, slots=True)
class EventRecord:
    """Immutable market event decoded from a data batch.

    Regular records are superseded by newer records with the same
    (event_type, symbol); time-series records by the same
    (event_type, symbol, index).
    """

    event_type: str
    symbol: str
    fields: Mapping[str, Any] = field(default_factory=dict)
    time: int | None = None  # Unix milliseconds
    index: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.fields, MappingProxyType):
            object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    @classmethod
    def from_values(
        cls,
        event_type: str,
        field_names: Sequence[str],
        values: Sequence[Any],
    ) -> EventRecord:
        """Zip a run of values with the schema's field names."""
        fields = dict(zip(field_names, values))
        return cls(
            event_type=event_type,
            symbol=fields.get(SYMBOL_FIELD),
            fields=fields,
            time=fields.get(TIME_FIELD),
            index=fields.get(INDEX_FIELD),
        )

    @property
    def key(self) -> SubKey:
        return SubKey(self.event_type, self.symbol)

    def get(self, name: str, default: Any = None) -> Any:
        """Value of a wire field, or default if the schema lacks it."""
        return self.fields.get(name, default)

    def to_dict(self) -> dict:
        """Serialize in wire form (field names plus eventType)."""
        data = dict(self.fields)
        data["eventType"] = self.event_type
        return data


def parse_time(value: Any) -> int | float | None:
    """Convert a time-like value to Unix milliseconds.

    Accepts epoch-millisecond numbers (infinity passes through as the
    "no lower bound yet" marker), ISO-8601 strings (naive values are
    read as UTC), numeric strings, and datetime/date objects. Returns None
    for anything else instead of raising.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        if math.isnan(value):
            return None
        if math.isinf(value):
            return value
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return parse_time(float(text))
        except ValueError:
            pass
        try:
            value = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    if isinstance(value, date):
        return parse_time(datetime(value.year, value.month, value.day))
    return None
