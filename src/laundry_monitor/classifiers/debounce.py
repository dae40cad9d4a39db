"""Debounce-by-status classifier.

Stabilizes the status code the sensor node computed itself: a new status is
only accepted after it has been observed ``window`` times in a row.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from .base import Classifier
from .models import DebounceState, MachineStatus, Sample

_LOGGER = logging.getLogger(__name__)


class DebounceClassifier(Classifier):
    """Hysteresis over raw statuses."""

    def __init__(self, window: int = 3, initial: Optional[MachineStatus] = None) -> None:
        """Initialize the classifier.

        Args:
            window: Consistent observations needed to accept a new status.
            initial: Status to start from (None = accept the first sample).
        """
        if window < 1:
            raise ValueError("window must be >= 1")
        self.window = window
        self.state = DebounceState(last_accepted=initial)

    @property
    def kind(self) -> str:
        return "debounce"

    @property
    def current(self) -> MachineStatus:
        return self.state.last_accepted or MachineStatus.UNKNOWN

    def classify(self, sample: Sample, now: datetime) -> MachineStatus:
        return self.update(sample.status)

    def update(self, raw_status: MachineStatus) -> MachineStatus:
        """Feed one raw status and return the stabilized status."""
        state = self.state

        # Fresh run: nothing to protect yet
        if state.last_accepted is None:
            self.state = DebounceState(last_accepted=raw_status)
            return raw_status

        if raw_status == state.last_accepted:
            if state.pending_candidate is not None:
                _LOGGER.debug(
                    f"Discarded candidate {state.pending_candidate.value} "
                    f"after {state.pending_count} observation(s)"
                )
            self.state = DebounceState(last_accepted=state.last_accepted)
            return state.last_accepted

        if raw_status == state.pending_candidate:
            count = state.pending_count + 1
        else:
            count = 1

        if count >= self.window:
            _LOGGER.debug(
                f"Accepted {raw_status.value} (was {state.last_accepted.value}) "
                f"after {count} observation(s)"
            )
            self.state = DebounceState(last_accepted=raw_status)
            return raw_status

        self.state = DebounceState(
            last_accepted=state.last_accepted,
            pending_candidate=raw_status,
            pending_count=count,
        )
        return state.last_accepted

    def dump_state(self) -> Dict:
        return {
            "window": self.window,
            "last_accepted": self.state.last_accepted.value if self.state.last_accepted else None,
            "pending_candidate": (
                self.state.pending_candidate.value if self.state.pending_candidate else None
            ),
            "pending_count": self.state.pending_count,
        }

    def restore_state(self, state: Dict) -> None:
        last_accepted = state.get("last_accepted")
        pending_candidate = state.get("pending_candidate")
        self.state = DebounceState(
            last_accepted=MachineStatus(last_accepted) if last_accepted else None,
            pending_candidate=MachineStatus(pending_candidate) if pending_candidate else None,
            pending_count=int(state.get("pending_count", 0)),
        )
