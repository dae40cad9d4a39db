"""
Base class for status classifiers.

Classifiers are the per-machine state machines that turn a stream of noisy
samples into a stabilized status.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict

from .models import MachineStatus, Sample


class Classifier(ABC):
    """
    Base class for status classifiers.

    A classifier:
    - Belongs to exactly one machine
    - Consumes samples in the order they were received
    - Holds all transient classification state for its machine
    - Returns the current stabilized status after every sample
    """

    @property
    @abstractmethod
    def kind(self) -> str:
        """Identifier of the classification strategy."""
        pass

    @property
    @abstractmethod
    def current(self) -> MachineStatus:
        """Stabilized status after the last sample."""
        pass

    @abstractmethod
    def classify(self, sample: Sample, now: datetime) -> MachineStatus:
        """
        Incorporate one sample and return the stabilized status.

        Args:
            sample: Translated raw status and readings
            now: When the sample was received

        Returns:
            The current stabilized status (not necessarily the raw one)
        """
        pass

    @abstractmethod
    def dump_state(self) -> Dict:
        """
        Serialize classifier state.

        Returns:
            JSON-serializable state dict
        """
        pass

    @abstractmethod
    def restore_state(self, state: Dict) -> None:
        """
        Restore classifier state from serialized form.

        Args:
            state: Previously serialized state dict
        """
        pass
