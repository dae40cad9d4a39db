"""
Event persistence.

The ingestion pipeline writes through the EventStore contract only. The
in-memory implementation keeps event history in lists and writes summary
fields onto the Machine objects held by a SensorRegistry.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from laundry_monitor.classifiers.models import MachineStatus
from laundry_monitor.core.models import CanonicalEvent, Machine, RawEvent
from laundry_monitor.core.registry import SensorRegistry
from laundry_monitor.errors import InvalidArgument, PersistenceFailure

logger = logging.getLogger(__name__)


@dataclass
class StatusChange:
    """
    Everything written for one machine whose canonical status changed.

    Attributes:
        machine_id: The machine
        events: Canonical events in the order they were observed
        previous_status: Status held just before the last event
        current_status: Status of the last event
        changed_at: New last_change_time
    """

    machine_id: int
    previous_status: MachineStatus
    current_status: MachineStatus
    changed_at: datetime
    events: List[CanonicalEvent] = field(default_factory=list)


class EventStore(ABC):
    """Persistence contract consumed by the ingestion pipeline."""

    @abstractmethod
    def add_raw_events(self, events: List[RawEvent]) -> List[RawEvent]:
        """
        Bulk-insert raw events.

        Returns:
            The persisted events (with event_id assigned)

        Raises:
            PersistenceFailure: If the write fails
        """
        pass

    @abstractmethod
    def touch_machines(self, machine_ids: Iterable[int], now: datetime) -> None:
        """Bulk-set last_updated for machines that received readings."""
        pass

    @abstractmethod
    def apply_status_change(self, change: StatusChange) -> None:
        """
        Insert a machine's canonical events and update its summary.

        Both writes are applied together or not at all.

        Raises:
            PersistenceFailure: If the change can't be applied
        """
        pass

    @abstractmethod
    def latest_statuses(self, machine_ids: Iterable[int]) -> Dict[int, MachineStatus]:
        """
        Get the status of the latest canonical event per machine.

        Machines without canonical events are absent from the result.
        """
        pass

    @abstractmethod
    def get_machine(self, machine_id: int) -> Optional[Machine]:
        """Get a consistent copy of a machine's summary, or None if not found."""
        pass

    @abstractmethod
    def raw_events(
        self, machine_id: Optional[int] = None, limit: int = 100, offset: int = 0
    ) -> List[RawEvent]:
        """Page through raw events, newest first."""
        pass

    @abstractmethod
    def canonical_events(
        self, machine_id: Optional[int] = None, limit: int = 100, offset: int = 0
    ) -> List[CanonicalEvent]:
        """Page through canonical events, newest first."""
        pass


def _page(events: List, limit: int, offset: int) -> List:
    if limit < 0 or offset < 0:
        raise InvalidArgument("limit and offset must be >= 0")
    newest_first = events[::-1]
    return newest_first[offset : offset + limit]


class InMemoryEventStore(EventStore):
    """
    Event store backed by Python lists.

    A single internal lock makes every write method atomic; it is held only
    for the duration of the write, never across an ingestion call.
    """

    def __init__(self, registry: SensorRegistry) -> None:
        self._registry = registry
        self._raw_events: List[RawEvent] = []
        self._raw_by_machine: Dict[int, List[RawEvent]] = {}
        self._canonical_events: List[CanonicalEvent] = []
        self._canonical_by_machine: Dict[int, List[CanonicalEvent]] = {}
        self._next_raw_id = 1
        self._next_canonical_id = 1
        self._lock = threading.Lock()

    def add_raw_events(self, events: List[RawEvent]) -> List[RawEvent]:
        with self._lock:
            for event in events:
                event.event_id = self._next_raw_id
                self._next_raw_id += 1
                self._raw_events.append(event)
                self._raw_by_machine.setdefault(event.machine_id, []).append(event)

        logger.debug(f"Stored {len(events)} raw event(s)")
        return list(events)

    def touch_machines(self, machine_ids: Iterable[int], now: datetime) -> None:
        with self._lock:
            for machine_id in set(machine_ids):
                machine = self._registry.get_machine(machine_id)
                if machine is None:
                    logger.warning(f"Cannot touch machine {machine_id}: not found")
                    continue
                machine.last_updated = now

    def apply_status_change(self, change: StatusChange) -> None:
        if not change.events:
            raise PersistenceFailure(f"Status change for machine {change.machine_id} has no events")

        with self._lock:
            machine = self._registry.get_machine(change.machine_id)
            if machine is None:
                raise PersistenceFailure(f"Machine {change.machine_id} does not exist")

            history = self._canonical_by_machine.setdefault(change.machine_id, [])
            last_status = history[-1].status if history else None
            for event in change.events:
                if event.status == last_status:
                    raise PersistenceFailure(
                        f"Machine {change.machine_id}: canonical event would repeat "
                        f"status {event.status.value}"
                    )
                last_status = event.status

            # Validated: commit events and summary together
            for event in change.events:
                event.event_id = self._next_canonical_id
                self._next_canonical_id += 1
                history.append(event)
                self._canonical_events.append(event)

            machine.previous_status = change.previous_status
            machine.current_status = change.current_status
            machine.last_change_time = change.changed_at
            if machine.last_updated is None or machine.last_updated < change.changed_at:
                machine.last_updated = change.changed_at

        logger.debug(
            f"Machine {change.machine_id}: stored {len(change.events)} canonical event(s)"
        )

    def latest_statuses(self, machine_ids: Iterable[int]) -> Dict[int, MachineStatus]:
        with self._lock:
            return {
                machine_id: self._canonical_by_machine[machine_id][-1].status
                for machine_id in set(machine_ids)
                if self._canonical_by_machine.get(machine_id)
            }

    def get_machine(self, machine_id: int) -> Optional[Machine]:
        with self._lock:
            machine = self._registry.get_machine(machine_id)
            if machine is None:
                return None
            return replace(machine)

    def raw_events(
        self, machine_id: Optional[int] = None, limit: int = 100, offset: int = 0
    ) -> List[RawEvent]:
        with self._lock:
            events = (
                self._raw_events
                if machine_id is None
                else self._raw_by_machine.get(machine_id, [])
            )
            return _page(events, limit, offset)

    def canonical_events(
        self, machine_id: Optional[int] = None, limit: int = 100, offset: int = 0
    ) -> List[CanonicalEvent]:
        with self._lock:
            events = (
                self._canonical_events
                if machine_id is None
                else self._canonical_by_machine.get(machine_id, [])
            )
            return _page(events, limit, offset)
