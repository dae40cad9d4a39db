"""Per-machine classifier registry.

Owns every classifier instance and all transient classification state. One
classifier exists per machine id for the life of the process; the concrete
strategy is chosen once, when the classifier is created.
"""

import logging
import threading
from contextlib import ExitStack, contextmanager
from typing import Any, Dict, Iterable, Iterator, Optional

from .base import Classifier
from .config import STRATEGY_DEBOUNCE, PipelineConfig
from .debounce import DebounceClassifier
from .machine_model import MachineModelClassifier
from .models import MachineStatus, MachineType

_LOGGER = logging.getLogger(__name__)


class ClassifierRegistry:
    """Lazily creates and hands out one classifier per machine.

    Callers that read or update a machine's classifier must hold that
    machine's lock (see ``lock_for`` and ``locked``). The registry lock only
    guards the dictionaries and is never held while classifying.
    """

    def __init__(self, config: Optional[PipelineConfig] = None) -> None:
        self.config = config or PipelineConfig()
        self._classifiers: Dict[int, Classifier] = {}
        self._machine_locks: Dict[int, threading.RLock] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._classifiers)

    def __contains__(self, machine_id: object) -> bool:
        return machine_id in self._classifiers

    def get(self, machine_id: int) -> Optional[Classifier]:
        """Get the classifier for a machine, or None if not created yet."""
        return self._classifiers.get(machine_id)

    def get_or_create(
        self,
        machine_id: int,
        machine_type: Optional[MachineType],
        initial_status: Optional[MachineStatus] = None,
    ) -> Classifier:
        """Get the classifier for a machine, creating it on first use.

        Args:
            machine_id: The machine ID
            machine_type: Selects the strategy for a new classifier
            initial_status: Last canonical status, seeds a new classifier

        Returns:
            The machine's classifier (same instance on every call)
        """
        with self._lock:
            classifier = self._classifiers.get(machine_id)
            if classifier is None:
                classifier = self._create(machine_type, initial_status)
                self._classifiers[machine_id] = classifier
                _LOGGER.info(
                    f"Created {classifier.kind} classifier for machine {machine_id} "
                    f"(starting from {classifier.current.value})"
                )
            return classifier

    def _create(
        self,
        machine_type: Optional[MachineType],
        initial_status: Optional[MachineStatus],
    ) -> Classifier:
        if initial_status == MachineStatus.UNKNOWN:
            initial_status = None

        if self.config.strategy == STRATEGY_DEBOUNCE:
            return DebounceClassifier(self.config.debounce_window, initial_status)

        if machine_type in (MachineType.WASHER, MachineType.DRYER):
            return MachineModelClassifier(
                machine_type, self.config.profile_for(machine_type), initial_status
            )

        _LOGGER.warning(f"No machine model for type {machine_type}, falling back to debounce")
        return DebounceClassifier(self.config.debounce_window, initial_status)

    def lock_for(self, machine_id: int) -> threading.RLock:
        """Get the lock serializing updates for one machine."""
        with self._lock:
            lock = self._machine_locks.get(machine_id)
            if lock is None:
                lock = threading.RLock()
                self._machine_locks[machine_id] = lock
            return lock

    @contextmanager
    def locked(self, machine_ids: Iterable[int]) -> Iterator[None]:
        """Hold the locks of several machines.

        Locks are taken in ascending id order so two callers sharing machines
        cannot deadlock.
        """
        with ExitStack() as stack:
            for machine_id in sorted(set(machine_ids)):
                stack.enter_context(self.lock_for(machine_id))
            yield

    def reset(self, machine_id: int) -> None:
        """Drop a machine's classifier; the next sample starts a fresh run."""
        with self._lock:
            if self._classifiers.pop(machine_id, None) is not None:
                _LOGGER.info(f"Reset classifier for machine {machine_id}")

    def export_state(self) -> Dict[int, Dict[str, Any]]:
        """Dump every classifier's state.

        Returns:
            dict: { 12: {"kind": "washer", "phase": "in_use", ...} }
        """
        with self._lock:
            classifiers = list(self._classifiers.items())

        dump = {}
        for machine_id, classifier in classifiers:
            with self.lock_for(machine_id):
                dump[machine_id] = {"kind": classifier.kind, **classifier.dump_state()}
        return dump

    def restore_state(self, snapshot: Dict[Any, Dict[str, Any]]) -> None:
        """Rebuild classifiers from an export_state() snapshot.

        Entries that can't be parsed are skipped; those machines start a
        fresh run on their next sample.
        """
        restored = 0
        for raw_id, data in snapshot.items():
            try:
                machine_id = int(raw_id)
                kind = data["kind"]
                if kind == "debounce":
                    classifier: Classifier = DebounceClassifier(
                        int(data.get("window", self.config.debounce_window))
                    )
                else:
                    machine_type = MachineType(kind)
                    classifier = MachineModelClassifier(
                        machine_type, self.config.profile_for(machine_type)
                    )
                classifier.restore_state(data)
            except (KeyError, TypeError, ValueError) as e:
                _LOGGER.warning(f"Skipping classifier state for machine {raw_id}: {e}")
                continue

            with self.lock_for(machine_id):
                with self._lock:
                    self._classifiers[machine_id] = classifier
            restored += 1

        _LOGGER.info(f"Restored {restored} classifier(s)")
