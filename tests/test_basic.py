"""
Basic smoke tests for laundry-monitor core components.
"""

from datetime import datetime, UTC

from laundry_monitor import (
    EventBus,
    EventIngestionService,
    InMemoryEventStore,
    InvalidArgument,
    LaundryMonitorError,
    Machine,
    MachineStatus,
    MachineType,
    NotFound,
    PersistenceFailure,
    SensorRegistry,
    __version__,
)


def test_version():
    assert __version__ == "0.1.0"


def test_machine_creation():
    """Test basic Machine dataclass creation."""
    machine = Machine(machine_id=1, name="Washer 1", type=MachineType.WASHER)

    assert machine.current_status == MachineStatus.UNKNOWN
    assert machine.previous_status == MachineStatus.UNKNOWN
    assert machine.label is None
    assert machine.to_dict()["type"] == "washer"


def test_error_status_codes():
    """Errors map onto transport status codes."""
    assert InvalidArgument.status_code == 400
    assert NotFound.status_code == 404
    assert PersistenceFailure.status_code == 500

    assert issubclass(InvalidArgument, ValueError)
    assert issubclass(NotFound, LookupError)
    for error in (InvalidArgument, NotFound, PersistenceFailure):
        assert issubclass(error, LaundryMonitorError)


def test_end_to_end():
    """Register, link, ingest, and read back."""
    registry = SensorRegistry()
    sensor = registry.register_sensor("AA:BB:CC:DD:EE:FF")
    washer = registry.create_machine("Washer 1", MachineType.WASHER)
    registry.link(sensor.sensor_id, "esp", 0, washer.machine_id)

    store = InMemoryEventStore(registry)
    service = EventIngestionService(registry, store, {"strategy": "debounce"}, bus=EventBus())
    now = datetime.now(UTC)

    saved = service.ingest(
        "AA:BB:CC:DD:EE:FF", [{"source": "esp", "localId": 0, "statusCode": 0}], now=now
    )

    assert len(saved) == 1
    assert service.get_machine_state(washer.machine_id)["current_status"] == "available"
    assert len(service.recent_events()) == 1
