# armbridge/armbridge/gripper.py
"""
Multi-finger hand control.

A hand is a single device on a standard CAN identifier. Finger positions are
sent as one frame; named profiles ("press", "release", thumb overlays) are
looked up in a caller supplied mapping keyed by (hand_type, side, profile).
"""
from dataclasses import astuple, dataclass
from typing import List, Mapping, Optional, Sequence, Tuple

import logging

from . import constants as const
from .bridge_client import CANBridgeClient
from .exceptions import ConfigMismatchError
from .exceptions import EncodingError
from .exceptions import TransportError
from .frame_codec import build_hand_frame

logger = logging.getLogger(__name__)

ProfileKey = Tuple[str, str, str]
ProfileTable = Mapping[ProfileKey, Sequence[int]]


@dataclass
class HandPose:
    thumb: int
    thumb_rotate: int
    index: int
    middle: int
    ring: int
    pinky: int

    @classmethod
    def from_values(cls, values: Sequence[int]) -> "HandPose":
        if len(values) != const.HAND_FINGER_COUNT:
            raise EncodingError(
                f"A hand pose needs {const.HAND_FINGER_COUNT} values, got {len(values)}."
            )
        return cls(*(int(v) for v in values))

    def as_list(self) -> List[int]:
        return list(astuple(self))


def side_for_device_id(device_id: int) -> str:
    for side, side_device_id in const.HAND_DEVICE_IDS.items():
        if side_device_id == device_id:
            return side
    return const.SIDE_UNKNOWN


def resolve_profile(
    profiles: ProfileTable, hand_type: str, side: str, profile: str
) -> List[int]:
    """
    Looks up the finger values of a named profile.

    Thumb overlay profiles only carry thumb and thumb rotation; they are laid
    over a copy of the "press" profile of the same hand.

    Raises:
        ConfigMismatchError: if the combination is not configured.
        EncodingError: if the resulting profile does not have six values.
    """
    if profile in const.THUMB_OVERLAY_PROFILES:
        overlay = profiles.get((hand_type, side, profile))
        if not overlay:
            raise ConfigMismatchError(
                f"Profile '{profile}' is not configured for {hand_type} {side} hand."
            )
        values = list(profiles.get((hand_type, side, const.PROFILE_PRESS)) or [])
        values += [0] * (const.HAND_FINGER_COUNT - len(values))
        if len(overlay) >= 2:
            values[0], values[1] = overlay[0], overlay[1]
    else:
        configured = profiles.get((hand_type, side, profile))
        if configured is None:
            raise ConfigMismatchError(
                f"Unsupported hand profile combination: {hand_type}, {side}, {profile}"
            )
        values = list(configured)

    if len(values) != const.HAND_FINGER_COUNT:
        raise EncodingError(
            f"Profile '{profile}' has {len(values)} values, expected {const.HAND_FINGER_COUNT}."
        )
    return [int(v) for v in values]


class GripperController:
    """Sends finger positions to one hand."""

    def __init__(self, bridge: CANBridgeClient, interface: str, device_id: int):
        self.bridge = bridge
        self.interface = interface
        self.device_id = device_id

    @property
    def side(self) -> str:
        return side_for_device_id(self.device_id)

    async def set_fingers(self, pose: HandPose) -> None:
        """
        Raises:
            EncodingError: if a finger value is outside 0-255.
            TransportError: if the bridge rejects the frame.
        """
        msg = build_hand_frame(self.interface, self.device_id, pose.as_list())
        try:
            await self.bridge.send_frame(msg)
        except TransportError as e:
            raise TransportError(
                f"Failed to move hand {self.device_id} on {self.interface}: {e.message}",
                status_code=e.status_code,
            ) from e
        logger.info(f"Hand {self.device_id} on {self.interface} set to {pose.as_list()}")

    async def apply_profile(
        self,
        hand_type: str,
        profile: str,
        profiles: ProfileTable,
        side: Optional[str] = None,
    ) -> List[int]:
        """Resolves a named profile for this hand, sends it and returns the values used."""
        values = resolve_profile(profiles, hand_type, side or self.side, profile)
        await self.set_fingers(HandPose.from_values(values))
        return values
