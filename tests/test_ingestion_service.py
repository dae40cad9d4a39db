"""
Comprehensive tests for EventIngestionService.

Tests verify:
- Request validation (MAC, batch, sensor, links)
- Element filtering (unknown channels, unknown codes, malformed elements)
- Debounced canonical events and machine summary updates
- No-op batches only refresh last_updated
- Persistence failures stay scoped to one machine
- Event Bus notifications
- Reading-based classification end to end
- Read side helpers and classifier state
"""

import logging
import random
from datetime import datetime, UTC, timedelta

import pytest

from laundry_monitor import (
    EventBus,
    EventIngestionService,
    InMemoryEventStore,
    InvalidArgument,
    MachineStatus,
    MachineType,
    NotFound,
    PersistenceFailure,
    SensorRegistry,
)
from laundry_monitor.core.bus import READINGS_RECEIVED, STATUS_CHANGED
from laundry_monitor.ingest import EspEvent

# Configure logging for verbose test output
logging.basicConfig(
    level=logging.DEBUG, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

MAC = "AA:BB:CC:DD:EE:01"
WASHER = 1
DRYER = 2

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=UTC)

AVAILABLE = 0
IN_USE = 1


def element(local_id, code, source="esp", readings=None):
    """One batch element as a node sends it."""
    data = {"localId": local_id, "source": source, "statusCode": code}
    if readings is not None:
        data["readings"] = readings
    return data


class FlakyStore(InMemoryEventStore):
    """Event store that can't apply status changes for some machines."""

    def __init__(self, registry, failing):
        super().__init__(registry)
        self.failing = set(failing)

    def apply_status_change(self, change):
        if change.machine_id in self.failing:
            raise PersistenceFailure(f"disk full (machine {change.machine_id})")
        super().apply_status_change(change)


@pytest.fixture
def registry():
    """One sensor node wired to a washer (esp/0) and a dryer (esp/1)."""
    logger.info("FIXTURE: Setting up SensorRegistry")
    reg = SensorRegistry()
    reg.register_sensor(MAC, room_id="basement")
    reg.create_machine("Washer 1", MachineType.WASHER, label="W01", room_id="basement")
    reg.create_machine("Dryer 1", MachineType.DRYER, label="D01", room_id="basement")
    reg.link(1, "esp", 0, WASHER)
    reg.link(1, "esp", 1, DRYER)
    return reg


@pytest.fixture
def store(registry):
    return InMemoryEventStore(registry)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def service(registry, store, bus):
    """Service classifying the node's own status codes (window 3)."""
    return EventIngestionService(
        registry, store, {"strategy": "debounce", "debounce_window": 3}, bus=bus
    )


def set_status(registry, machine_id, status, changed_at=None):
    machine = registry.get_machine(machine_id)
    machine.current_status = status
    machine.last_change_time = changed_at


class TestValidation:
    """Whole-batch rejections."""

    @pytest.mark.parametrize("mac", [None, "", "   "])
    def test_missing_mac(self, service, mac):
        with pytest.raises(InvalidArgument, match="MAC address is required"):
            service.ingest(mac, [element(0, IN_USE)])

    @pytest.mark.parametrize("batch", [None, {}, "[]", element(0, IN_USE)])
    def test_batch_must_be_list(self, service, batch):
        with pytest.raises(InvalidArgument):
            service.ingest(MAC, batch)

    def test_unknown_sensor(self, service, store):
        """Unregistered MAC: nothing persisted anywhere."""
        with pytest.raises(NotFound):
            service.ingest("AA:BB:CC", [element(0, IN_USE)])

        assert store.raw_events() == []
        assert store.canonical_events() == []
        assert store.get_machine(WASHER).last_updated is None

    def test_sensor_without_links(self, service, registry, store):
        registry.register_sensor("AA:BB:CC:DD:EE:02")

        with pytest.raises(NotFound, match="No machine links"):
            service.ingest("AA:BB:CC:DD:EE:02", [element(0, IN_USE)])
        assert store.raw_events() == []

    def test_mac_lookup_is_case_insensitive(self, service):
        saved = service.ingest(MAC.lower(), [element(0, IN_USE)], now=T0)
        assert len(saved) == 1

    def test_empty_batch(self, service, store):
        assert service.ingest(MAC, [], now=T0) == []
        assert store.get_machine(WASHER).last_updated is None


class TestFiltering:
    """Per-element drops."""

    def test_unknown_channel_dropped(self, service, store):
        """Unlinked channel is skipped, the rest of the batch persists."""
        saved = service.ingest(
            MAC, [element(99, IN_USE, source="x"), element(0, IN_USE)], now=T0
        )

        assert [e.machine_id for e in saved] == [WASHER]
        assert len(store.raw_events()) == 1

    def test_raw_count_matches_usable_elements(self, service, store):
        batch = [
            element(0, IN_USE),
            element(1, AVAILABLE),
            element(0, 7),  # unknown code
            element(0, "1"),  # not an integer
            element(0, True),
            element(5, IN_USE),  # unlinked
            element(1, IN_USE, source="adc"),  # unlinked source
            {"source": "esp", "statusCode": IN_USE},  # no localId
            {"source": "esp", "localId": True, "statusCode": IN_USE},
            "garbage",
            element(0, -1),
            element(1, 3),
        ]
        saved = service.ingest(MAC, batch, now=T0)

        assert [(e.machine_id, e.status_code) for e in saved] == [
            (WASHER, 1),
            (DRYER, 0),
            (WASHER, -1),
            (DRYER, 3),
        ]
        assert len(store.raw_events()) == 4

    def test_raw_events_carry_readings(self, service):
        saved = service.ingest(
            MAC,
            [
                element(
                    0,
                    IN_USE,
                    readings=[{"value": 2.5, "threshold": 1}, {"value": "x", "threshold": 1}],
                )
            ],
            now=T0,
        )

        raw = saved[0]
        assert raw.event_id is not None
        assert raw.status == MachineStatus.IN_USE
        assert raw.timestamp == T0
        assert raw.to_dict()["readings"] == [{"value": 2.5, "threshold": 1.0}]


class TestCanonicalEvents:
    """Status changes and machine summaries."""

    def test_debounce_scenario(self, service, registry, store):
        """[A, B, B, B] yields exactly one canonical event A -> B."""
        set_status(registry, WASHER, MachineStatus.AVAILABLE)

        service.ingest(
            MAC,
            [element(0, AVAILABLE), element(0, IN_USE), element(0, IN_USE), element(0, IN_USE)],
            now=T0,
        )

        events = store.canonical_events(WASHER)
        assert len(events) == 1
        assert events[0].previous_status == MachineStatus.AVAILABLE
        assert events[0].status == MachineStatus.IN_USE

    def test_debounce_spans_batches(self, service, registry, store):
        """Classifier state carries over between calls."""
        set_status(registry, WASHER, MachineStatus.AVAILABLE)

        service.ingest(MAC, [element(0, IN_USE), element(0, IN_USE)], now=T0)
        assert store.canonical_events(WASHER) == []

        service.ingest(MAC, [element(0, IN_USE)], now=T0 + timedelta(seconds=30))
        assert [e.status for e in store.canonical_events(WASHER)] == [MachineStatus.IN_USE]

    def test_summary_consistency(self, service, registry, store):
        """AVAILABLE machine classified IN_USE updates every summary field."""
        set_status(registry, WASHER, MachineStatus.AVAILABLE, T0 - timedelta(hours=1))

        service.ingest(MAC, [element(0, IN_USE)] * 3, now=T0)

        machine = store.get_machine(WASHER)
        assert machine.previous_status == MachineStatus.AVAILABLE
        assert machine.current_status == MachineStatus.IN_USE
        assert machine.last_change_time == T0
        assert machine.last_updated == T0
        assert len(store.canonical_events(WASHER)) == 1

    def test_no_op(self, service, registry, store):
        """Readings confirming the current status write only a raw event."""
        set_status(registry, WASHER, MachineStatus.IN_USE, T0)
        later = T0 + timedelta(minutes=10)

        service.ingest(MAC, [element(0, IN_USE)], now=later)

        machine = store.get_machine(WASHER)
        assert len(store.raw_events(WASHER)) == 1
        assert store.canonical_events() == []
        assert machine.last_updated == later
        assert machine.last_change_time == T0
        assert machine.current_status == MachineStatus.IN_USE

    def test_first_reading_of_unknown_machine(self, service, store):
        """A machine never seen before takes its first status immediately."""
        service.ingest(MAC, [element(1, AVAILABLE)], now=T0)

        events = store.canonical_events(DRYER)
        assert [(e.previous_status, e.status) for e in events] == [
            (MachineStatus.UNKNOWN, MachineStatus.AVAILABLE)
        ]

    def test_several_changes_in_one_batch(self, registry, store):
        """Every change in a batch is recorded, in order."""
        service = EventIngestionService(
            registry, store, {"strategy": "debounce", "debounce_window": 1}
        )
        set_status(registry, WASHER, MachineStatus.AVAILABLE)

        service.ingest(
            MAC,
            [element(0, IN_USE), element(0, IN_USE), element(0, AVAILABLE), element(0, IN_USE)],
            now=T0,
        )

        events = store.canonical_events(WASHER)[::-1]
        assert [e.status for e in events] == [
            MachineStatus.IN_USE,
            MachineStatus.AVAILABLE,
            MachineStatus.IN_USE,
        ]
        machine = store.get_machine(WASHER)
        assert machine.previous_status == MachineStatus.AVAILABLE
        assert machine.current_status == MachineStatus.IN_USE

    def test_no_adjacent_duplicates(self, registry, store):
        """Random flicker never produces two equal consecutive events."""
        service = EventIngestionService(
            registry, store, {"strategy": "debounce", "debounce_window": 2}
        )
        rng = random.Random(42)

        for i in range(50):
            batch = [element(rng.choice([0, 1]), rng.choice([0, 1, 2, 3])) for _ in range(5)]
            service.ingest(MAC, batch, now=T0 + timedelta(seconds=30 * i))

        for machine_id in (WASHER, DRYER):
            events = store.canonical_events(machine_id)[::-1]
            assert events
            for before, after in zip(events, events[1:]):
                assert before.status != after.status
                assert after.previous_status == before.status
            assert store.get_machine(machine_id).current_status == events[-1].status

    def test_restart_resumes_from_last_status(self, service, registry, store):
        """A fresh service doesn't flip on a single reading after restart."""
        set_status(registry, WASHER, MachineStatus.AVAILABLE)
        service.ingest(MAC, [element(0, IN_USE)] * 3, now=T0)

        restarted = EventIngestionService(
            registry, store, {"strategy": "debounce", "debounce_window": 3}
        )
        restarted.ingest(MAC, [element(0, AVAILABLE)], now=T0 + timedelta(minutes=1))

        assert len(store.canonical_events(WASHER)) == 1
        assert store.get_machine(WASHER).current_status == MachineStatus.IN_USE


class TestPersistenceFailures:
    """Failures scoped to one machine."""

    @pytest.fixture
    def flaky_service(self, registry):
        store = FlakyStore(registry, failing=[WASHER])
        service = EventIngestionService(
            registry, store, {"strategy": "debounce", "debounce_window": 1}
        )
        return service, store

    def test_other_machines_proceed(self, flaky_service, caplog):
        service, store = flaky_service

        saved = service.ingest(MAC, [element(0, IN_USE), element(1, IN_USE)], now=T0)

        assert len(saved) == 2
        assert store.canonical_events(WASHER) == []
        assert store.get_machine(WASHER).current_status == MachineStatus.UNKNOWN
        assert store.get_machine(WASHER).last_updated == T0
        assert [e.status for e in store.canonical_events(DRYER)] == [MachineStatus.IN_USE]
        assert store.get_machine(DRYER).current_status == MachineStatus.IN_USE
        assert "Failed to store status change for machine 1" in caplog.text

    def test_failed_machine_classifier_reset(self, flaky_service):
        service, store = flaky_service

        service.ingest(MAC, [element(0, IN_USE), element(1, IN_USE)], now=T0)

        assert WASHER not in service.classifiers
        assert DRYER in service.classifiers

    def test_recovers_once_store_works(self, flaky_service):
        service, store = flaky_service
        service.ingest(MAC, [element(0, IN_USE)], now=T0)

        store.failing.clear()
        service.ingest(MAC, [element(0, IN_USE)], now=T0 + timedelta(seconds=30))

        assert [e.status for e in store.canonical_events(WASHER)] == [MachineStatus.IN_USE]

    def test_raw_write_failure_propagates(self, registry):
        class BrokenStore(InMemoryEventStore):
            def add_raw_events(self, events):
                raise PersistenceFailure("database unavailable")

        store = BrokenStore(registry)
        service = EventIngestionService(registry, store)

        with pytest.raises(PersistenceFailure):
            service.ingest(MAC, [element(0, IN_USE)], now=T0)
        assert store.canonical_events() == []

    def test_raw_write_failure_rolls_back_classifiers(self, registry):
        """Unstored readings don't count towards a later status change."""

        class OutageStore(InMemoryEventStore):
            down = True

            def add_raw_events(self, events):
                if self.down:
                    raise PersistenceFailure("database unavailable")
                return super().add_raw_events(events)

        store = OutageStore(registry)
        service = EventIngestionService(
            registry, store, {"strategy": "debounce", "debounce_window": 3}
        )
        set_status(registry, WASHER, MachineStatus.AVAILABLE)

        with pytest.raises(PersistenceFailure):
            service.ingest(MAC, [element(0, IN_USE), element(0, IN_USE)], now=T0)
        assert WASHER not in service.classifiers

        store.down = False
        service.ingest(MAC, [element(0, IN_USE)], now=T0 + timedelta(seconds=30))

        assert len(store.raw_events(WASHER)) == 1
        assert store.canonical_events(WASHER) == []
        assert store.get_machine(WASHER).current_status == MachineStatus.AVAILABLE


class TestBusEvents:
    """Event Bus notifications."""

    def test_status_changed_and_readings_received(self, service, registry, bus):
        received = []
        bus.subscribe(received.append)
        set_status(registry, WASHER, MachineStatus.AVAILABLE)

        service.ingest(MAC, [element(0, IN_USE)] * 3 + [element(1, AVAILABLE)], now=T0)

        changes = [e for e in received if e.type == STATUS_CHANGED]
        readings = [e for e in received if e.type == READINGS_RECEIVED]

        assert [(e.machine_id, e.payload["status"]) for e in changes] == [
            (WASHER, "in_use"),
            (DRYER, "available"),
        ]
        assert changes[0].payload["previous_status"] == "available"
        assert changes[0].room_id == "basement"
        assert changes[0].payload["event_id"] is not None
        assert {e.machine_id: e.payload["count"] for e in readings} == {WASHER: 3, DRYER: 1}

    def test_failed_change_not_published(self, registry, bus):
        received = []
        bus.subscribe(received.append)
        service = EventIngestionService(
            registry,
            FlakyStore(registry, failing=[WASHER]),
            {"strategy": "debounce", "debounce_window": 1},
            bus=bus,
        )

        service.ingest(MAC, [element(0, IN_USE)], now=T0)

        assert [e.type for e in received] == [READINGS_RECEIVED]


class TestMachineModel:
    """Reading-based classification through the service."""

    @pytest.fixture
    def model_service(self, registry, store):
        config = {
            "strategy": "machine_model",
            "washer": {"start_samples": 2, "finishing_samples": 2, "available_samples": 3},
        }
        return EventIngestionService(registry, store, config)

    def test_washer_cycle(self, model_service, registry, store):
        """Statuses follow the readings, not the node's status code."""
        set_status(registry, WASHER, MachineStatus.AVAILABLE)
        active = [{"value": 4.0, "threshold": 1.0}]
        quiet = [{"value": 0.2, "threshold": 1.0}]

        batches = [[active, active], [quiet, quiet], [quiet]]
        for i, batch in enumerate(batches):
            model_service.ingest(
                MAC,
                [element(0, AVAILABLE, readings=readings) for readings in batch],
                now=T0 + timedelta(minutes=i),
            )

        events = store.canonical_events(WASHER)[::-1]
        assert [e.status for e in events] == [
            MachineStatus.IN_USE,
            MachineStatus.FINISHING,
            MachineStatus.AVAILABLE,
        ]
        assert len(store.raw_events(WASHER)) == 5

    def test_elements_without_readings_change_nothing(self, model_service, registry, store):
        set_status(registry, WASHER, MachineStatus.IN_USE)

        model_service.ingest(MAC, [element(0, AVAILABLE)] * 5, now=T0)

        assert store.canonical_events() == []
        assert len(store.raw_events()) == 5


class TestReadSide:
    """Summary, history, configuration, and state."""

    def test_machine_state(self, service):
        service.ingest(MAC, [element(0, IN_USE)], now=T0)
        state = service.get_machine_state(WASHER)

        assert state["current_status"] == "in_use"
        assert state["label"] == "W01"
        assert state["last_updated"] == T0.isoformat()
        assert service.get_machine_state(99) is None

    def test_history(self, service):
        service.ingest(MAC, [element(0, IN_USE), element(1, AVAILABLE)], now=T0)

        history = service.machine_history(WASHER)
        assert history["type"] == "washer"
        assert [e["status"] for e in history["events"]] == ["in_use"]
        assert [e["status_code"] for e in history["raw_events"]] == [1]
        assert len(service.recent_events()) == 2
        assert len(service.recent_events(limit=1)) == 1

        with pytest.raises(NotFound):
            service.machine_history(99)

    def test_config(self, service):
        assert service.config.strategy == "debounce"
        assert service.default_config()["strategy"] == "machine_model"
        assert "washer" in service.config_schema()["properties"]

    def test_invalid_config(self, registry, store):
        with pytest.raises(InvalidArgument):
            EventIngestionService(registry, store, {"debounce_window": 0})

    def test_dump_and_restore_state(self, service, registry, store):
        set_status(registry, WASHER, MachineStatus.AVAILABLE)
        service.ingest(MAC, [element(0, IN_USE)] * 2, now=T0)
        dump = service.dump_state()

        restored = EventIngestionService(
            registry, store, {"strategy": "debounce", "debounce_window": 3}
        )
        restored.restore_state(dump)
        restored.ingest(MAC, [element(0, IN_USE)], now=T0 + timedelta(seconds=30))

        assert [e.status for e in store.canonical_events(WASHER)] == [MachineStatus.IN_USE]


class TestEspEvent:
    """Batch element parsing."""

    def test_alternate_keys(self):
        event = EspEvent.from_dict({"source": "esp", "local_id": 2, "state": 1})

        assert event.channel == ("esp", 2)
        assert event.status_code == 1
        assert event.readings == ()

    @pytest.mark.parametrize(
        "data",
        [None, [], {"localId": 1}, {"source": 5, "localId": 1}, {"source": "esp", "localId": "1"}],
    )
    def test_unaddressable(self, data):
        assert EspEvent.from_dict(data) is None

    def test_oversized_reading_dropped(self):
        """Numbers too large for a float drop the reading, not the element."""
        event = EspEvent.from_dict(
            {
                "source": "esp",
                "localId": 0,
                "statusCode": 1,
                "readings": [{"value": 10**400, "threshold": 1}, {"value": 2, "threshold": 1}],
            }
        )

        assert [r.to_dict() for r in event.readings] == [{"value": 2.0, "threshold": 1.0}]

    def test_oversized_reading_keeps_batch(self, service, store):
        saved = service.ingest(
            MAC,
            [
                element(0, IN_USE, readings=[{"value": 10**400, "threshold": 1}]),
                element(1, AVAILABLE),
            ],
            now=T0,
        )

        assert [e.machine_id for e in saved] == [WASHER, DRYER]
        assert saved[0].readings == ()
        assert len(store.raw_events()) == 2

    def test_whole_float_status_code(self, service):
        saved = service.ingest(MAC, [element(0, 1.0), element(0, 1.5)], now=T0)

        assert [(e.status, e.status_code) for e in saved] == [(MachineStatus.IN_USE, 1)]
