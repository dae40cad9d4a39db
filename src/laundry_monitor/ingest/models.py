"""Data models for the ingestion pipeline."""

from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

from laundry_monitor.classifiers.models import Reading


def _first(data: dict, *keys: str) -> Any:
    """Value of the first key present (nodes in the field use both casings)."""
    for key in keys:
        if key in data:
            return data[key]
    return None


@dataclass(frozen=True)
class EspEvent:
    """One element of a sensor batch.

    Attributes:
        source: Channel source on the node.
        local_id: Channel local ID on the node.
        status_code: Compact status code, translated later.
        readings: Raw readings; entries that aren't numeric are dropped.
    """

    source: str
    local_id: int
    status_code: Any
    readings: Tuple[Reading, ...] = field(default_factory=tuple)

    @property
    def channel(self) -> Tuple[str, int]:
        return (self.source, self.local_id)

    @classmethod
    def from_dict(cls, data: Any) -> Optional["EspEvent"]:
        """Parse a batch element, returning None when it can't be addressed."""
        if not isinstance(data, dict):
            return None

        source = data.get("source")
        local_id = _first(data, "localId", "local_id")
        if not isinstance(source, str):
            return None
        if isinstance(local_id, bool) or not isinstance(local_id, int):
            return None

        raw_readings = data.get("readings")
        readings: Tuple[Reading, ...] = ()
        if isinstance(raw_readings, list):
            parsed = (Reading.from_dict(r) for r in raw_readings)
            readings = tuple(r for r in parsed if r is not None)

        return cls(
            source=source,
            local_id=local_id,
            status_code=_first(data, "statusCode", "status_code", "state"),
            readings=readings,
        )
