"""
Status classifiers for laundry-monitor.

Turns noisy per-machine sample streams into stabilized statuses.

Features:
- Status code translation (compact integer codes from sensor nodes)
- Debounce-by-status classifier (hysteresis over raw statuses)
- Reading-based washer / dryer state machines (FINISHING, HAS_ISSUES)
- Per-machine classifier registry with per-machine locking
- Classifier state export / restore
"""

from .models import (
    ActivationRule,
    DebounceState,
    MachineModelState,
    MachineStatus,
    MachineType,
    Reading,
    Sample,
)
from .codes import STATUS_CODE_MAP, translate
from .config import DRYER_PROFILE, WASHER_PROFILE, MachineProfile, PipelineConfig, config_schema
from .base import Classifier
from .debounce import DebounceClassifier
from .machine_model import MachineModelClassifier
from .registry import ClassifierRegistry

__all__ = [
    "ActivationRule",
    "DebounceState",
    "MachineModelState",
    "MachineStatus",
    "MachineType",
    "Reading",
    "Sample",
    "STATUS_CODE_MAP",
    "translate",
    "MachineProfile",
    "PipelineConfig",
    "WASHER_PROFILE",
    "DRYER_PROFILE",
    "config_schema",
    "Classifier",
    "DebounceClassifier",
    "MachineModelClassifier",
    "ClassifierRegistry",
]
