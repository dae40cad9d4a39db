"""EventIngestionService - sensor batches in, machine statuses out.

This service wires the classifier registry to the sensor registry, the event
store, and the event bus. It alone decides when a canonical event is written.
"""

import logging
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional, Union

from laundry_monitor.classifiers.codes import translate
from laundry_monitor.classifiers.config import PipelineConfig, config_schema
from laundry_monitor.classifiers.models import MachineStatus, Sample
from laundry_monitor.classifiers.registry import ClassifierRegistry
from laundry_monitor.core.bus import READINGS_RECEIVED, STATUS_CHANGED, Event, EventBus
from laundry_monitor.core.models import CanonicalEvent, RawEvent, SensorLink
from laundry_monitor.core.registry import SensorLinkResolver
from laundry_monitor.core.store import EventStore, StatusChange
from laundry_monitor.errors import InvalidArgument, NotFound, PersistenceFailure

from .models import EspEvent

logger = logging.getLogger(__name__)


class EventIngestionService:
    """
    Sensor event ingestion and status classification.

    For every batch:
    - Resolves the sensor and its channel links
    - Translates status codes and always records a raw event
    - Runs each machine's classifier over its samples, in batch order
    - Writes a canonical event and summary update only on a real change

    Calls touching disjoint machines run in parallel; calls sharing a machine
    are serialized on that machine's lock for classification and persistence.
    """

    def __init__(
        self,
        resolver: SensorLinkResolver,
        store: EventStore,
        config: Union[PipelineConfig, Dict[str, Any], None] = None,
        bus: Optional[EventBus] = None,
        classifiers: Optional[ClassifierRegistry] = None,
    ) -> None:
        if not isinstance(config, PipelineConfig):
            config = PipelineConfig.from_dict(config)

        self.config = config
        self._resolver = resolver
        self._store = store
        self._bus = bus
        self._classifiers = classifiers or ClassifierRegistry(config)
        logger.info(f"Ingestion service ready (strategy={config.strategy})")

    @property
    def classifiers(self) -> ClassifierRegistry:
        return self._classifiers

    def ingest(
        self,
        mac_address: str,
        batch: Any,
        now: Optional[datetime] = None,
    ) -> List[RawEvent]:
        """Ingest one batch reported by a sensor node.

        Args:
            mac_address: MAC address of the reporting node
            batch: List of {localId, source, statusCode, readings} elements
            now: Receive time (defaults to datetime.now(UTC))

        Returns:
            The persisted raw events, in batch order

        Raises:
            InvalidArgument: Missing MAC address or batch is not a list
            NotFound: Unknown sensor, or sensor without machine links
            PersistenceFailure: Raw events could not be written
        """
        if not isinstance(mac_address, str) or not mac_address.strip():
            raise InvalidArgument("MAC address is required")
        if not isinstance(batch, list):
            raise InvalidArgument("Data is required")

        sensor = self._resolver.find_sensor_by_mac(mac_address)
        if sensor is None:
            raise NotFound(f"Sensor not found: {mac_address}")

        links = self._resolver.find_links_for_sensor(sensor.sensor_id)
        if not links:
            raise NotFound(f"No machine links found for sensor {sensor.sensor_id}")

        if now is None:
            now = datetime.now(UTC)

        links_by_channel = {link.channel: link for link in links}
        machine_ids = {link.machine_id for link in links}

        with self._classifiers.locked(machine_ids):
            baselines = self._load_baselines(links)
            raw_events, changes = self._classify_batch(batch, links_by_channel, baselines, now)
            saved, applied = self._persist(raw_events, changes, now)

        logger.info(
            f"Ingested {len(saved)}/{len(batch)} reading(s) from {sensor.mac_address}, "
            f"{len(applied)} status change(s)"
        )

        self._publish(saved, applied, links_by_channel, now)
        return saved

    def _load_baselines(self, links: List[SensorLink]) -> Dict[int, MachineStatus]:
        """Latest known canonical status per linked machine, read once.

        Machines without canonical events fall back to their summary status.
        """
        latest = self._store.latest_statuses(link.machine_id for link in links)
        return {
            link.machine_id: latest.get(link.machine_id, link.machine.current_status)
            for link in links
        }

    def _classify_batch(
        self,
        batch: List[Any],
        links_by_channel: Dict[tuple, SensorLink],
        baselines: Dict[int, MachineStatus],
        now: datetime,
    ) -> tuple[List[RawEvent], Dict[int, StatusChange]]:
        raw_events: List[RawEvent] = []
        changes: Dict[int, StatusChange] = {}

        for index, element in enumerate(batch):
            esp_event = EspEvent.from_dict(element)
            if esp_event is None:
                logger.debug(f"  [{index}] skipped: malformed element")
                continue

            link = links_by_channel.get(esp_event.channel)
            if link is None:
                logger.debug(f"  [{index}] skipped: channel {esp_event.channel} not linked")
                continue

            raw_status = translate(esp_event.status_code)
            if raw_status is None:
                logger.debug(f"  [{index}] skipped: unknown status code {esp_event.status_code!r}")
                continue

            machine = link.machine
            machine_id = machine.machine_id

            raw_events.append(
                RawEvent(
                    machine_id=machine_id,
                    status=raw_status,
                    status_code=int(esp_event.status_code),
                    readings=esp_event.readings,
                    timestamp=now,
                )
            )

            classifier = self._classifiers.get_or_create(
                machine_id, machine.type, baselines[machine_id]
            )
            status = classifier.classify(Sample(raw_status, esp_event.readings), now)

            baseline = baselines[machine_id]
            if status == baseline:
                continue

            change = changes.get(machine_id)
            if change is None:
                change = StatusChange(
                    machine_id=machine_id,
                    previous_status=baseline,
                    current_status=status,
                    changed_at=now,
                )
                changes[machine_id] = change

            change.events.append(
                CanonicalEvent(
                    machine_id=machine_id,
                    status=status,
                    previous_status=baseline,
                    timestamp=now,
                )
            )
            change.previous_status = baseline
            change.current_status = status
            baselines[machine_id] = status

        return raw_events, changes

    def _persist(
        self,
        raw_events: List[RawEvent],
        changes: Dict[int, StatusChange],
        now: datetime,
    ) -> tuple[List[RawEvent], List[StatusChange]]:
        saved: List[RawEvent] = []
        if raw_events:
            try:
                saved = self._store.add_raw_events(raw_events)
            except PersistenceFailure:
                # Classifiers have seen readings that were never stored
                for machine_id in {event.machine_id for event in raw_events}:
                    self._classifiers.reset(machine_id)
                raise
            self._store.touch_machines({event.machine_id for event in raw_events}, now)

        applied: List[StatusChange] = []
        for change in changes.values():
            try:
                self._store.apply_status_change(change)
            except PersistenceFailure as e:
                logger.error(
                    f"Failed to store status change for machine {change.machine_id}: {e}",
                    exc_info=True,
                )
                # The classifier is ahead of what was stored; start it over
                self._classifiers.reset(change.machine_id)
                continue
            applied.append(change)

        return saved, applied

    def _publish(
        self,
        saved: List[RawEvent],
        applied: List[StatusChange],
        links_by_channel: Dict[tuple, SensorLink],
        now: datetime,
    ) -> None:
        machines = {link.machine_id: link.machine for link in links_by_channel.values()}

        for change in applied:
            machine = machines[change.machine_id]
            for event in change.events:
                logger.info(
                    f"Machine {machine.machine_id} ({machine.label or machine.name}): "
                    f"{event.previous_status.value} -> {event.status.value}"
                )

        if not self._bus:
            return

        for change in applied:
            machine = machines[change.machine_id]
            for event in change.events:
                self._bus.publish(
                    Event(
                        type=STATUS_CHANGED,
                        source="ingest",
                        machine_id=machine.machine_id,
                        room_id=machine.room_id,
                        payload={
                            "event_id": event.event_id,
                            "status": event.status.value,
                            "previous_status": event.previous_status.value,
                        },
                        timestamp=now,
                    )
                )

        counts: Dict[int, int] = {}
        for raw_event in saved:
            counts[raw_event.machine_id] = counts.get(raw_event.machine_id, 0) + 1

        for machine_id, count in counts.items():
            self._bus.publish(
                Event(
                    type=READINGS_RECEIVED,
                    source="ingest",
                    machine_id=machine_id,
                    room_id=machines[machine_id].room_id,
                    payload={"count": count},
                    timestamp=now,
                )
            )

    # --- Read side ---

    def get_machine_state(self, machine_id: int) -> Optional[Dict]:
        """Get the current summary of a machine, or None if not found."""
        machine = self._store.get_machine(machine_id)
        if machine is None:
            return None
        return machine.to_dict()

    def recent_events(self, limit: int = 100) -> List[Dict]:
        """Latest canonical events across all machines, newest first."""
        return [event.to_dict() for event in self._store.canonical_events(limit=limit)]

    def machine_history(
        self,
        machine_id: int,
        raw_limit: int = 1000,
        event_limit: int = 10,
    ) -> Dict:
        """Summary plus recent canonical and raw events for one machine.

        Raises:
            NotFound: If the machine doesn't exist
        """
        machine = self._store.get_machine(machine_id)
        if machine is None:
            raise NotFound(f"Machine not found: {machine_id}")

        return {
            **machine.to_dict(),
            "events": [
                e.to_dict() for e in self._store.canonical_events(machine_id, limit=event_limit)
            ],
            "raw_events": [
                e.to_dict() for e in self._store.raw_events(machine_id, limit=raw_limit)
            ],
        }

    # --- Configuration and state ---

    def default_config(self) -> Dict:
        """Default pipeline configuration."""
        return PipelineConfig().to_dict()

    def config_schema(self) -> Dict:
        """JSON schema for UI configuration."""
        return config_schema()

    def dump_state(self) -> Dict:
        """Export classifier state for persistence."""
        return self._classifiers.export_state()

    def restore_state(self, state: Dict) -> None:
        """Restore classifier state from persistence."""
        self._classifiers.restore_state(state)
