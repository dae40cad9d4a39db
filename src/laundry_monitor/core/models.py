"""
Domain dataclasses: sensors, machines, links, and events.

A Machine carries its denormalized summary state (current/previous status and
timestamps) so read-side consumers never have to scan event history.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from laundry_monitor.classifiers.models import MachineStatus, MachineType, Reading


@dataclass
class Sensor:
    """
    A physical sensor node.

    Attributes:
        sensor_id: Unique identifier
        mac_address: Hardware identity, normalized to upper case
        room_id: Room the node is installed in (None if unassigned)
        api_key: Credential the node authenticates with
    """

    sensor_id: int
    mac_address: str
    room_id: Optional[str] = None
    api_key: Optional[str] = None


@dataclass
class Machine:
    """
    A washer or dryer and its current summary state.

    Attributes:
        machine_id: Unique identifier
        name: Human-readable name
        type: Washer or dryer
        label: Short label printed on the machine (e.g. "W03")
        room_id: Room the machine stands in
        current_status: Latest canonical status
        previous_status: Canonical status held before current_status
        last_updated: Last time any raw reading was received
        last_change_time: Last time the canonical status changed
    """

    machine_id: int
    name: str
    type: MachineType
    label: Optional[str] = None
    room_id: Optional[str] = None
    current_status: MachineStatus = MachineStatus.UNKNOWN
    previous_status: MachineStatus = MachineStatus.UNKNOWN
    last_updated: Optional[datetime] = None
    last_change_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict."""
        return {
            "machine_id": self.machine_id,
            "name": self.name,
            "label": self.label,
            "type": self.type.value,
            "room_id": self.room_id,
            "current_status": self.current_status.value,
            "previous_status": self.previous_status.value,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "last_change_time": (
                self.last_change_time.isoformat() if self.last_change_time else None
            ),
        }


@dataclass(frozen=True)
class SensorLink:
    """
    Binds one channel of a sensor to a machine.

    A channel is the (source, local_id) pair a node uses to tell its inputs
    apart, e.g. one board wired to two machines.
    """

    sensor_id: int
    source: str
    local_id: int
    machine: Machine

    @property
    def machine_id(self) -> int:
        return self.machine.machine_id

    @property
    def channel(self) -> Tuple[str, int]:
        return (self.source, self.local_id)


@dataclass
class RawEvent:
    """
    One translated sensor reading. Append-only audit trail.

    Attributes:
        machine_id: Machine the reading belongs to
        status: Status translated from the node's status code
        status_code: The code as transmitted
        readings: Raw readings carried with the status
        timestamp: When the reading was received
        event_id: Assigned by the event store on insert
    """

    machine_id: int
    status: MachineStatus
    status_code: int
    readings: Tuple[Reading, ...] = field(default_factory=tuple)
    timestamp: Optional[datetime] = None
    event_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict."""
        return {
            "event_id": self.event_id,
            "machine_id": self.machine_id,
            "status": self.status.value,
            "status_code": self.status_code,
            "readings": [r.to_dict() for r in self.readings],
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass
class CanonicalEvent:
    """
    A change of a machine's stabilized status.

    For any machine, consecutive canonical events never share a status.
    """

    machine_id: int
    status: MachineStatus
    previous_status: MachineStatus
    timestamp: Optional[datetime] = None
    event_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict."""
        return {
            "event_id": self.event_id,
            "machine_id": self.machine_id,
            "status": self.status.value,
            "previous_status": self.previous_status.value,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
