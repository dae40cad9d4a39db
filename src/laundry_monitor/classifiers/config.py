"""
Pipeline configuration.

Classifier tuning values are operational parameters, so every one of them is
configurable. Configuration is stored as plain dicts (so a host can keep it
in JSON/YAML) and parsed into frozen dataclasses.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .models import ActivationRule, MachineType
from laundry_monitor.errors import InvalidArgument

CURRENT_CONFIG_VERSION = 1

STRATEGY_MACHINE_MODEL = "machine_model"
STRATEGY_DEBOUNCE = "debounce"
STRATEGIES = (STRATEGY_MACHINE_MODEL, STRATEGY_DEBOUNCE)

_PROFILE_INT_FIELDS = (
    "start_samples",
    "finishing_samples",
    "available_samples",
    "max_cycle_seconds",
    "stale_after_seconds",
)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class MachineProfile:
    """Streak lengths and limits for one machine type.

    Attributes:
        activation: How readings in one sample are combined.
        start_samples: Active samples needed to enter IN_USE.
        finishing_samples: Inactive samples in IN_USE before FINISHING.
        available_samples: Inactive samples before AVAILABLE.
        max_cycle_seconds: Longest plausible cycle before HAS_ISSUES.
        max_active_streak: Longest unbroken active streak before HAS_ISSUES
            (None disables the check).
        stale_after_seconds: Silence after which streaks restart.
    """

    activation: ActivationRule = ActivationRule.ANY
    start_samples: int = 3
    finishing_samples: int = 4
    available_samples: int = 10
    max_cycle_seconds: int = 3 * 60 * 60
    max_active_streak: Optional[int] = None
    stale_after_seconds: int = 15 * 60

    def __post_init__(self) -> None:
        for name in _PROFILE_INT_FIELDS:
            if not _is_int(getattr(self, name)):
                raise InvalidArgument(f"{name} must be an integer")
        if self.max_active_streak is not None and not _is_int(self.max_active_streak):
            raise InvalidArgument("max_active_streak must be an integer or null")

        for name in ("start_samples", "finishing_samples", "available_samples"):
            if getattr(self, name) < 1:
                raise InvalidArgument(f"{name} must be >= 1")
        if self.available_samples <= self.finishing_samples:
            raise InvalidArgument("available_samples must be > finishing_samples")
        if self.max_cycle_seconds <= 0:
            raise InvalidArgument("max_cycle_seconds must be > 0")
        if self.max_active_streak is not None and self.max_active_streak < self.start_samples:
            raise InvalidArgument("max_active_streak must be >= start_samples")
        if self.stale_after_seconds <= 0:
            raise InvalidArgument("stale_after_seconds must be > 0")

    def to_dict(self) -> dict:
        """Serialize to dict."""
        return {
            "activation": self.activation.value,
            "start_samples": self.start_samples,
            "finishing_samples": self.finishing_samples,
            "available_samples": self.available_samples,
            "max_cycle_seconds": self.max_cycle_seconds,
            "max_active_streak": self.max_active_streak,
            "stale_after_seconds": self.stale_after_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict, defaults: "MachineProfile") -> "MachineProfile":
        """Deserialize from dict, filling gaps from ``defaults``."""
        if not isinstance(data, dict):
            raise InvalidArgument(f"Machine profile must be a mapping, got {type(data).__name__}")

        activation = data.get("activation", defaults.activation.value)
        try:
            rule = ActivationRule(activation)
        except (ValueError, TypeError):
            raise InvalidArgument(f"Unknown activation rule '{activation}'") from None

        return cls(
            activation=rule,
            start_samples=data.get("start_samples", defaults.start_samples),
            finishing_samples=data.get("finishing_samples", defaults.finishing_samples),
            available_samples=data.get("available_samples", defaults.available_samples),
            max_cycle_seconds=data.get("max_cycle_seconds", defaults.max_cycle_seconds),
            max_active_streak=data.get("max_active_streak", defaults.max_active_streak),
            stale_after_seconds=data.get("stale_after_seconds", defaults.stale_after_seconds),
        )


# Washer drums alternate between spinning and resting; a washer that never
# rests for max_active_streak samples is misreporting.
WASHER_PROFILE = MachineProfile(
    activation=ActivationRule.ANY,
    start_samples=3,
    finishing_samples=4,
    available_samples=10,
    max_cycle_seconds=3 * 60 * 60,
    max_active_streak=120,
)

# Dryers tumble and heat continuously, so only the cycle length is bounded.
DRYER_PROFILE = MachineProfile(
    activation=ActivationRule.MEAN,
    start_samples=2,
    finishing_samples=3,
    available_samples=6,
    max_cycle_seconds=4 * 60 * 60,
    max_active_streak=None,
)


@dataclass(frozen=True)
class PipelineConfig:
    """Deployment-wide classification settings."""

    version: int = CURRENT_CONFIG_VERSION
    strategy: str = STRATEGY_MACHINE_MODEL
    debounce_window: int = 3
    washer: MachineProfile = field(default_factory=lambda: WASHER_PROFILE)
    dryer: MachineProfile = field(default_factory=lambda: DRYER_PROFILE)

    def __post_init__(self) -> None:
        if self.strategy not in STRATEGIES:
            raise InvalidArgument(
                f"Unknown strategy '{self.strategy}' (expected one of {', '.join(STRATEGIES)})"
            )
        if not _is_int(self.debounce_window):
            raise InvalidArgument("debounce_window must be an integer")
        if self.debounce_window < 1:
            raise InvalidArgument("debounce_window must be >= 1")

    def profile_for(self, machine_type: MachineType) -> MachineProfile:
        """Get the profile for a machine type."""
        if machine_type == MachineType.DRYER:
            return self.dryer
        return self.washer

    def to_dict(self) -> dict:
        """Serialize to dict."""
        return {
            "version": self.version,
            "strategy": self.strategy,
            "debounce_window": self.debounce_window,
            "washer": self.washer.to_dict(),
            "dryer": self.dryer.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PipelineConfig":
        """Deserialize from dict. Missing keys keep their defaults."""
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidArgument(f"Configuration must be a mapping, got {type(data).__name__}")

        washer = data.get("washer")
        dryer = data.get("dryer")
        return cls(
            version=data.get("version", CURRENT_CONFIG_VERSION),
            strategy=data.get("strategy", STRATEGY_MACHINE_MODEL),
            debounce_window=data.get("debounce_window", 3),
            washer=MachineProfile.from_dict({} if washer is None else washer, WASHER_PROFILE),
            dryer=MachineProfile.from_dict({} if dryer is None else dryer, DRYER_PROFILE),
        )


def _profile_schema(title: str, defaults: MachineProfile) -> Dict:
    return {
        "type": "object",
        "title": title,
        "properties": {
            "activation": {
                "type": "string",
                "title": "Activation Rule",
                "enum": [rule.value for rule in ActivationRule],
                "default": defaults.activation.value,
            },
            "start_samples": {
                "type": "integer",
                "title": "Samples to Start",
                "minimum": 1,
                "default": defaults.start_samples,
            },
            "finishing_samples": {
                "type": "integer",
                "title": "Quiet Samples before Finishing",
                "minimum": 1,
                "default": defaults.finishing_samples,
            },
            "available_samples": {
                "type": "integer",
                "title": "Quiet Samples before Available",
                "minimum": 1,
                "default": defaults.available_samples,
            },
            "max_cycle_seconds": {
                "type": "integer",
                "title": "Maximum Cycle Length (seconds)",
                "minimum": 1,
                "default": defaults.max_cycle_seconds,
            },
            "max_active_streak": {
                "type": ["integer", "null"],
                "title": "Maximum Unbroken Active Samples",
                "default": defaults.max_active_streak,
            },
            "stale_after_seconds": {
                "type": "integer",
                "title": "Silence before Streak Reset (seconds)",
                "minimum": 1,
                "default": defaults.stale_after_seconds,
            },
        },
    }


def config_schema() -> Dict:
    """JSON schema for UI configuration."""
    return {
        "type": "object",
        "properties": {
            "strategy": {
                "type": "string",
                "title": "Classification Strategy",
                "enum": list(STRATEGIES),
                "default": STRATEGY_MACHINE_MODEL,
                "description": "machine_model: derive status from readings; "
                "debounce: stabilize the status code sent by the sensor",
            },
            "debounce_window": {
                "type": "integer",
                "title": "Debounce Window",
                "description": "Consistent observations needed before a status change",
                "minimum": 1,
                "default": 3,
            },
            "washer": _profile_schema("Washer", WASHER_PROFILE),
            "dryer": _profile_schema("Dryer", DRYER_PROFILE),
        },
    }
