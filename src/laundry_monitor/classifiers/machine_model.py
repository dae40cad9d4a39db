"""Reading-based machine state machine.

Derives a machine's status from its raw ``{value, threshold}`` readings rather
than from the status code the node computed. This is what makes FINISHING and
HAS_ISSUES observable: the node itself only knows "above" or "below".

    UNKNOWN    --active-->  IN_USE
    UNKNOWN    --quiet--->  AVAILABLE
    AVAILABLE  --active-->  IN_USE
    IN_USE     --quiet--->  FINISHING
    FINISHING  --active-->  IN_USE
    FINISHING  --quieter->  AVAILABLE
    IN_USE     --too long or never pausing-->  HAS_ISSUES
    HAS_ISSUES --quieter->  AVAILABLE

Washers and dryers share this shape and differ only in their MachineProfile.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional, Sequence

from .base import Classifier
from .config import MachineProfile
from .models import ActivationRule, MachineModelState, MachineStatus, MachineType, Reading, Sample

_LOGGER = logging.getLogger(__name__)


class MachineModelClassifier(Classifier):
    """Streak-counting state machine for one washer or dryer."""

    def __init__(
        self,
        machine_type: MachineType,
        profile: MachineProfile,
        initial: Optional[MachineStatus] = None,
    ) -> None:
        """Initialize the classifier.

        Args:
            machine_type: Washer or dryer (used for logging and state dumps).
            profile: Streak lengths and limits for this machine type.
            initial: Phase to resume from (None = UNKNOWN).
        """
        self.machine_type = machine_type
        self.profile = profile
        self.state = MachineModelState(phase=initial or MachineStatus.UNKNOWN)

    @property
    def kind(self) -> str:
        return self.machine_type.value

    @property
    def current(self) -> MachineStatus:
        return self.state.phase

    def classify(self, sample: Sample, now: datetime) -> MachineStatus:
        return self.update(sample.readings, now)

    def update(self, readings: Sequence[Reading], now: datetime) -> MachineStatus:
        """Feed one sample of readings and return the derived status.

        Args:
            readings: Readings reported in one sample.
            now: When the sample was received.

        Returns:
            The current phase after this sample.
        """
        state = self.state
        usable = [r for r in readings if r.is_usable]

        if not usable:
            # Nothing to judge: only note that the node is alive
            self.state = replace(state, last_reading_time=now)
            return state.phase

        active_streak = state.active_streak
        inactive_streak = state.inactive_streak

        if state.last_reading_time is not None:
            silence = (now - state.last_reading_time).total_seconds()
            if silence > self.profile.stale_after_seconds:
                _LOGGER.debug(
                    f"{self.kind}: {silence:.0f}s without readings, restarting streaks"
                )
                active_streak = 0
                inactive_streak = 0

        if self._is_active(usable):
            active_streak += 1
            inactive_streak = 0
        else:
            inactive_streak += 1
            active_streak = 0

        cycle_started_at = state.cycle_started_at
        if state.phase == MachineStatus.IN_USE and cycle_started_at is None:
            # Resumed mid-cycle: the cycle is timed from the first sample we see
            cycle_started_at = now

        next_phase = self._next_phase(
            state.phase, active_streak, inactive_streak, cycle_started_at, now
        )

        if next_phase != state.phase:
            _LOGGER.debug(
                f"{self.kind}: {state.phase.value} -> {next_phase.value} "
                f"(active={active_streak}, inactive={inactive_streak})"
            )
            if next_phase == MachineStatus.IN_USE and state.phase != MachineStatus.FINISHING:
                cycle_started_at = now
            elif next_phase not in (MachineStatus.IN_USE, MachineStatus.FINISHING):
                cycle_started_at = None

        self.state = MachineModelState(
            phase=next_phase,
            last_reading_time=now,
            active_streak=active_streak,
            inactive_streak=inactive_streak,
            cycle_started_at=cycle_started_at,
        )
        return next_phase

    def _is_active(self, readings: Sequence[Reading]) -> bool:
        """Combine a sample's readings according to the profile."""
        rule = self.profile.activation
        if rule == ActivationRule.ALL:
            return all(r.is_active for r in readings)
        if rule == ActivationRule.MEAN:
            mean_value = sum(r.value for r in readings) / len(readings)
            mean_threshold = sum(r.threshold for r in readings) / len(readings)
            return mean_value > mean_threshold
        return any(r.is_active for r in readings)

    def _next_phase(
        self,
        phase: MachineStatus,
        active_streak: int,
        inactive_streak: int,
        cycle_started_at: Optional[datetime],
        now: datetime,
    ) -> MachineStatus:
        profile = self.profile
        started = active_streak >= profile.start_samples

        if phase == MachineStatus.UNKNOWN:
            if started:
                return MachineStatus.IN_USE
            if inactive_streak >= profile.available_samples:
                return MachineStatus.AVAILABLE
            return phase

        if phase == MachineStatus.AVAILABLE:
            return MachineStatus.IN_USE if started else phase

        if phase == MachineStatus.IN_USE:
            if (
                cycle_started_at is not None
                and (now - cycle_started_at).total_seconds() > profile.max_cycle_seconds
            ):
                return MachineStatus.HAS_ISSUES
            if profile.max_active_streak is not None and active_streak > profile.max_active_streak:
                return MachineStatus.HAS_ISSUES
            if inactive_streak >= profile.finishing_samples:
                return MachineStatus.FINISHING
            return phase

        if phase == MachineStatus.FINISHING:
            # A pause between wash and spin looks like finishing; resume on activity
            if started:
                return MachineStatus.IN_USE
            if inactive_streak >= profile.available_samples:
                return MachineStatus.AVAILABLE
            return phase

        # HAS_ISSUES: only a properly idle machine clears it
        if inactive_streak >= profile.available_samples:
            return MachineStatus.AVAILABLE
        return phase

    def dump_state(self) -> Dict:
        state = self.state
        return {
            "phase": state.phase.value,
            "last_reading_time": (
                state.last_reading_time.isoformat() if state.last_reading_time else None
            ),
            "active_streak": state.active_streak,
            "inactive_streak": state.inactive_streak,
            "cycle_started_at": (
                state.cycle_started_at.isoformat() if state.cycle_started_at else None
            ),
        }

    def restore_state(self, state: Dict) -> None:
        last_reading_time = None
        if state.get("last_reading_time"):
            try:
                last_reading_time = datetime.fromisoformat(state["last_reading_time"])
            except (ValueError, TypeError):
                pass

        cycle_started_at = None
        if state.get("cycle_started_at"):
            try:
                cycle_started_at = datetime.fromisoformat(state["cycle_started_at"])
            except (ValueError, TypeError):
                pass

        self.state = MachineModelState(
            phase=MachineStatus(state.get("phase", MachineStatus.UNKNOWN.value)),
            last_reading_time=last_reading_time,
            active_streak=int(state.get("active_streak", 0)),
            inactive_streak=int(state.get("inactive_streak", 0)),
            cycle_started_at=cycle_started_at,
        )
