"""Event schema cache and data batch decoding.

Data batches arrive as ``[header, values]`` where ``values`` is a flat run of
field values. The header is either a bare type name whose field list was
registered earlier, or an inline ``[name, fields]`` pair that registers the
field list first. Decoding always goes through the cache, so both forms are
handled as "register, then decode by name".
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from .models import INDEX_FIELD, SYMBOL_FIELD, TIME_FIELD, EventRecord

logger = logging.getLogger(__name__)


class FeedDataError(ValueError):
    """Raised when a data batch cannot be decoded."""


class SchemaCache:
    """Field lists of event types, keyed by type name.

    Persists for the lifetime of the feed; a re-announced schema replaces
    the previous one.
    """

    def __init__(self) -> None:
        self._fields: dict[str, tuple[str, ...]] = {}

    def register(self, event_type: str, fields: Sequence[str]) -> None:
        if not isinstance(event_type, str) or not event_type:
            raise FeedDataError(f"Invalid event type name: {event_type!r}")
        if isinstance(fields, str) or not fields or not all(isinstance(f, str) for f in fields):
            raise FeedDataError(f"Invalid field list for {event_type}: {fields!r}")
        if SYMBOL_FIELD not in fields:
            raise FeedDataError(f"Schema for {event_type} has no {SYMBOL_FIELD} field")
        fields = tuple(fields)
        if self._fields.get(event_type) != fields:
            logger.debug("Registered schema %s: %s", event_type, ", ".join(fields))
        self._fields[event_type] = fields

    def fields_for(self, event_type: str) -> tuple[str, ...] | None:
        return self._fields.get(event_type)

    def __contains__(self, event_type: str) -> bool:
        return event_type in self._fields

    def __len__(self) -> int:
        return len(self._fields)

    def decode(self, batch: Any, time_series: bool = False) -> tuple[str, list[EventRecord]]:
        """Expand a batch into records. Raises FeedDataError if unusable.

        A trailing partial record is dropped, as are time-series records
        without an index or a numeric time; all are logged.
        """
        if not isinstance(batch, (list, tuple)) or len(batch) != 2:
            raise FeedDataError(f"Malformed data batch: {batch!r}")
        header, values = batch
        if isinstance(header, str):
            event_type = header
        elif isinstance(header, (list, tuple)) and len(header) == 2:
            event_type = header[0]
            self.register(event_type, header[1])
        else:
            raise FeedDataError(f"Malformed batch header: {header!r}")

        fields = self._fields.get(event_type)
        if fields is None:
            raise FeedDataError(f"No schema announced for {event_type}")
        if not isinstance(values, (list, tuple)):
            raise FeedDataError(f"Values of {event_type} batch are not a list")

        n = len(fields)
        if len(values) % n:
            logger.warning(
                "%s batch has %d values, not a multiple of %d fields; dropping the tail",
                event_type,
                len(values),
                n,
            )

        records: list[EventRecord] = []
        for i in range(0, len(values) - n + 1, n):
            record = EventRecord.from_values(event_type, fields, values[i : i + n])
            if not isinstance(record.symbol, str):
                logger.warning("Skipping %s record without symbol", event_type)
                continue
            if time_series and record.index is None:
                logger.warning(
                    "Skipping %s record for %s without %s", event_type, record.symbol, INDEX_FIELD
                )
                continue
            if time_series and (
                isinstance(record.time, bool) or not isinstance(record.time, (int, float))
            ):
                logger.warning(
                    "Skipping %s record for %s with invalid %s %r",
                    event_type,
                    record.symbol,
                    TIME_FIELD,
                    record.time,
                )
                continue
            records.append(record)
        return event_type, records
