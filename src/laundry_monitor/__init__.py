"""
laundry-monitor: status tracking for shared laundry machines.

This library turns noisy sensor telemetry into machine statuses:
- Sensor / channel / machine registry
- Status code translation and per-machine classifiers
- Batch ingestion with raw and canonical event history
- Machine-scoped Event Bus
"""

from laundry_monitor.errors import InvalidArgument, LaundryMonitorError, NotFound, PersistenceFailure
from laundry_monitor.classifiers import ClassifierRegistry, MachineStatus, MachineType, PipelineConfig
from laundry_monitor.core import (
    Event,
    EventBus,
    EventFilter,
    InMemoryEventStore,
    Machine,
    Sensor,
    SensorLink,
    SensorRegistry,
)
from laundry_monitor.ingest import EventIngestionService

__version__ = "0.1.0"

__all__ = [
    "LaundryMonitorError",
    "InvalidArgument",
    "NotFound",
    "PersistenceFailure",
    "ClassifierRegistry",
    "MachineStatus",
    "MachineType",
    "PipelineConfig",
    "Event",
    "EventBus",
    "EventFilter",
    "InMemoryEventStore",
    "Machine",
    "Sensor",
    "SensorLink",
    "SensorRegistry",
    "EventIngestionService",
]
