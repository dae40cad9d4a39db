"""Data models for the status classifiers.

Defines the canonical machine statuses, the sensor readings fed into the
classifiers, and the per-machine classifier states. State classes are frozen
so a classifier swaps its state in a single assignment.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class MachineStatus(Enum):
    """Canonical, displayed status of a machine."""

    AVAILABLE = "available"
    IN_USE = "in_use"
    FINISHING = "finishing"  # Cycle winding down, door not yet free
    HAS_ISSUES = "has_issues"  # Readings don't match the machine's signature
    UNKNOWN = "unknown"  # No data yet


class MachineType(Enum):
    """Physical machine type, selects the classifier profile."""

    WASHER = "washer"
    DRYER = "dryer"


class ActivationRule(Enum):
    """How a sample with several readings is judged active.

    ANY: at least one reading above its threshold (vibration on any axis)
    ALL: every reading above its threshold
    MEAN: mean value above mean threshold (smooths noisy current clamps)
    """

    ANY = "any"
    ALL = "all"
    MEAN = "mean"


@dataclass(frozen=True)
class Reading:
    """A single sensor reading as transmitted by the node."""

    value: float
    threshold: float

    @property
    def is_usable(self) -> bool:
        """Both numbers are finite."""
        return math.isfinite(self.value) and math.isfinite(self.threshold)

    @property
    def is_active(self) -> bool:
        """Value exceeds threshold."""
        return self.value > self.threshold

    def to_dict(self) -> dict[str, float]:
        """Serialize to dict."""
        return {"value": self.value, "threshold": self.threshold}

    @classmethod
    def from_dict(cls, data: Any) -> "Reading | None":
        """Parse a reading, returning None when it isn't numeric."""
        if not isinstance(data, dict):
            return None
        value = data.get("value")
        threshold = data.get("threshold")
        for number in (value, threshold):
            if isinstance(number, bool) or not isinstance(number, (int, float)):
                return None
        try:
            return cls(value=float(value), threshold=float(threshold))
        except OverflowError:
            return None


@dataclass(frozen=True)
class Sample:
    """One classified input: the translated raw status plus its readings.

    The debounce strategy looks at ``status``; the machine model strategy
    looks at ``readings``.
    """

    status: MachineStatus
    readings: tuple[Reading, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DebounceState:
    """State of a debounce classifier (Immutable).

    Attributes:
        last_accepted: Stabilized status (None until the first sample).
        pending_candidate: Status waiting to be confirmed.
        pending_count: Consecutive observations of the candidate.
    """

    last_accepted: MachineStatus | None = None
    pending_candidate: MachineStatus | None = None
    pending_count: int = 0


@dataclass(frozen=True)
class MachineModelState:
    """State of a reading-based machine classifier (Immutable).

    Attributes:
        phase: Current derived status.
        last_reading_time: When the last sample (usable or not) arrived.
        active_streak: Consecutive active samples.
        inactive_streak: Consecutive inactive samples.
        cycle_started_at: When the machine entered IN_USE (None otherwise).
    """

    phase: MachineStatus = MachineStatus.UNKNOWN
    last_reading_time: datetime | None = None
    active_streak: int = 0
    inactive_streak: int = 0
    cycle_started_at: datetime | None = None
