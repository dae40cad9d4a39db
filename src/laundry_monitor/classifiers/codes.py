"""Status code translation.

Sensor nodes transmit an integer status code to save bandwidth.
"""

from typing import Any

from .models import MachineStatus

STATUS_CODE_MAP: dict[int, MachineStatus] = {
    -1: MachineStatus.UNKNOWN,
    0: MachineStatus.AVAILABLE,
    1: MachineStatus.IN_USE,
    2: MachineStatus.FINISHING,
    3: MachineStatus.HAS_ISSUES,
}


def translate(code: Any) -> MachineStatus | None:
    """Translate a status code to a MachineStatus.

    Args:
        code: Integer status code from the sensor node. JSON encoders on some
            nodes emit whole numbers as floats (``1.0``); those are accepted.

    Returns:
        The canonical status, or None for unknown codes and non-integers.
    """
    if isinstance(code, float) and code.is_integer():
        code = int(code)
    if isinstance(code, bool) or not isinstance(code, int):
        return None
    return STATUS_CODE_MAP.get(code)
