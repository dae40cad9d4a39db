"""
Core components of laundry-monitor.

This package contains:
- models: Sensor, Machine, SensorLink, RawEvent, CanonicalEvent
- registry: SensorLinkResolver contract and in-memory SensorRegistry
- store: EventStore contract and in-memory InMemoryEventStore
- bus: Event Bus for machine events
"""

from laundry_monitor.core.models import CanonicalEvent, Machine, RawEvent, Sensor, SensorLink
from laundry_monitor.core.registry import SensorLinkResolver, SensorRegistry
from laundry_monitor.core.store import EventStore, InMemoryEventStore, StatusChange
from laundry_monitor.core.bus import Event, EventBus, EventFilter

__all__ = [
    "CanonicalEvent",
    "Machine",
    "RawEvent",
    "Sensor",
    "SensorLink",
    "SensorLinkResolver",
    "SensorRegistry",
    "EventStore",
    "InMemoryEventStore",
    "StatusChange",
    "Event",
    "EventBus",
    "EventFilter",
]
