#!/usr/bin/env python3
"""
Quick example demonstrating laundry-monitor basic usage.

Run with: PYTHONPATH=src python3 example.py
"""

import logging
from datetime import datetime, UTC, timedelta

from laundry_monitor import (
    EventBus,
    EventFilter,
    EventIngestionService,
    InMemoryEventStore,
    MachineType,
    NotFound,
    SensorRegistry,
)
from laundry_monitor.core.bus import STATUS_CHANGED

logging.basicConfig(level=logging.WARNING)

print("=" * 60)
print("laundry-monitor Example")
print("=" * 60)

# 1. Collaborators
print("\n1. Creating registry, store and bus...")
registry = SensorRegistry()
store = InMemoryEventStore(registry)
bus = EventBus()
print("   ✓ SensorRegistry, InMemoryEventStore and EventBus created")

# 2. Wire one sensor node to a washer and a dryer
print("\n2. Registering hardware...")
sensor = registry.register_sensor("a4:cf:12:0b:33:01", room_id="basement")
print(f"   ✓ Sensor {sensor.sensor_id} ({sensor.mac_address})")

washer = registry.create_machine("Washer 1", MachineType.WASHER, label="W01", room_id="basement")
dryer = registry.create_machine("Dryer 1", MachineType.DRYER, label="D01", room_id="basement")
registry.link(sensor.sensor_id, "esp", 0, washer.machine_id)
registry.link(sensor.sensor_id, "esp", 1, dryer.machine_id)
print(f"   ✓ esp/0 → {washer.label}, esp/1 → {dryer.label}")

# 3. Ingestion service (reading-based classification)
print("\n3. Starting ingestion service...")
service = EventIngestionService(
    registry,
    store,
    {"washer": {"start_samples": 2, "finishing_samples": 2, "available_samples": 4}},
    bus=bus,
)


def on_status_changed(event):
    print(
        f"   → machine {event.machine_id}: "
        f"{event.payload['previous_status']} → {event.payload['status']}"
    )


bus.subscribe(on_status_changed, EventFilter(event_type=STATUS_CHANGED))
print(f"   ✓ Strategy: {service.config.strategy}")

# 4. Simulate a wash cycle, one batch per minute
print("\n4. Posting sensor batches...")
spinning = [{"value": 0.82, "threshold": 0.3}, {"value": 0.41, "threshold": 0.3}]
resting = [{"value": 0.05, "threshold": 0.3}, {"value": 0.02, "threshold": 0.3}]
cycle = [spinning, spinning, spinning, resting, resting, resting, resting]

start = datetime.now(UTC)
for minute, readings in enumerate(cycle):
    batch = [
        {"source": "esp", "localId": 0, "statusCode": 1, "readings": readings},
        {"source": "esp", "localId": 9, "statusCode": 1},  # not linked, dropped
    ]
    service.ingest(sensor.mac_address, batch, now=start + timedelta(minutes=minute))

# 5. Unknown nodes are rejected
print("\n5. Posting from an unregistered node...")
try:
    service.ingest("00:00:00:00:00:00", [])
except NotFound as e:
    print(f"   ✓ Rejected ({e.status_code}): {e}")

# 6. Query the read side
print("\n6. Querying machine history...")
history = service.machine_history(washer.machine_id)
print(f"   ✓ {history['label']}: {history['current_status']}")
print(f"   ✓ Raw events: {len(history['raw_events'])}")
print(f"   ✓ Canonical events: {[e['status'] for e in reversed(history['events'])]}")

print("\n" + "=" * 60)
print("Example complete!")
print("=" * 60)
