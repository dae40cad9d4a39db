"""
Ingestion pipeline for laundry-monitor.

Accepts sensor batches and turns them into raw events, canonical status
changes, and machine summary updates.

Events Emitted:
- machine.status_changed: When a machine's canonical status changes
- machine.readings_received: When a machine received readings in a batch
"""

from .models import EspEvent
from .service import EventIngestionService

__all__ = [
    "EspEvent",
    "EventIngestionService",
]
