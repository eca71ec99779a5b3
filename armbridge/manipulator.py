# armbridge/armbridge/manipulator.py
"""
Manipulator model.

A `Manipulator` is one independently addressable group of motors (one arm)
on one bridge interface. Its side is derived from the motor address range.
`ManipulatorRegistry` replaces any process-wide interface lookup: callers
build one at start-up and pass it to the operations that need it.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import logging

from . import constants as const
from .exceptions import AddressError
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def side_for_motor_ids(motor_ids: Iterable[int]) -> str:
    """Returns 'left', 'right' or 'unknown' depending on the address range."""
    ids = list(motor_ids)
    if not ids:
        return const.SIDE_UNKNOWN
    for side, side_ids in const.ARM_MOTOR_IDS.items():
        low, high = min(side_ids), max(side_ids)
        if all(low <= motor_id <= high for motor_id in ids):
            return side
    return const.SIDE_UNKNOWN


@dataclass(frozen=True)
class Manipulator:
    """An ordered set of motor addresses on one bus interface."""

    interface: str
    motor_ids: Tuple[int, ...]
    device_name: str = ""
    side: str = field(init=False)

    def __post_init__(self):
        ids = tuple(int(motor_id) for motor_id in self.motor_ids)
        if len(set(ids)) != len(ids):
            raise ConfigurationError(
                f"Manipulator on {self.interface} has duplicate motor IDs: {list(ids)}"
            )
        object.__setattr__(self, "motor_ids", ids)
        object.__setattr__(self, "side", side_for_motor_ids(ids))

    @classmethod
    def from_device_name(cls, interface: str, device_name: str) -> "Manipulator":
        """
        Builds a manipulator whose address range is picked from its device name.

        Names containing "left" use the left arm range, names containing
        "right" the right arm range. Anything else falls back to the right arm.
        """
        if const.SIDE_LEFT in device_name:
            motor_ids = const.LEFT_ARM_MOTOR_IDS
        elif const.SIDE_RIGHT in device_name:
            motor_ids = const.RIGHT_ARM_MOTOR_IDS
        else:
            motor_ids = const.RIGHT_ARM_MOTOR_IDS
            logger.warning(
                f"Cannot tell the side of device '{device_name}', using right arm motor IDs."
            )
        manipulator = cls(interface, motor_ids, device_name)
        logger.info(
            f"Manipulator {interface} ({device_name}) motor IDs: {list(manipulator.motor_ids)}"
        )
        return manipulator

    def __contains__(self, motor_id: int) -> bool:
        return motor_id in self.motor_ids

    @property
    def joint_count(self) -> int:
        return len(self.motor_ids)

    def require(self, motor_id: int) -> int:
        """Returns `motor_id` if it belongs to this manipulator, else raises AddressError."""
        if motor_id not in self.motor_ids:
            raise AddressError(
                f"Motor {motor_id} is not part of manipulator {self.interface} "
                f"({list(self.motor_ids)})",
                motor_id=motor_id,
            )
        return motor_id


class ManipulatorRegistry:
    """Interface name → Manipulator mapping."""

    def __init__(self, manipulators: Optional[Iterable[Manipulator]] = None):
        self._by_interface: Dict[str, Manipulator] = {}
        for manipulator in manipulators or ():
            self.add(manipulator)

    def add(self, manipulator: Manipulator) -> None:
        if manipulator.interface in self._by_interface:
            raise ConfigurationError(
                f"Interface '{manipulator.interface}' is already registered."
            )
        self._by_interface[manipulator.interface] = manipulator
        logger.info(
            f"Registered manipulator {manipulator.interface} (side={manipulator.side})."
        )

    def get(self, interface: str) -> Manipulator:
        try:
            return self._by_interface[interface]
        except KeyError:
            raise ConfigurationError(
                f"No manipulator registered on interface '{interface}'."
            ) from None

    def by_side(self, side: str) -> Optional[Manipulator]:
        for manipulator in self._by_interface.values():
            if manipulator.side == side:
                return manipulator
        return None

    @property
    def interfaces(self) -> List[str]:
        return list(self._by_interface.keys())

    def __iter__(self):
        return iter(self._by_interface.values())

    def __len__(self) -> int:
        return len(self._by_interface)
