# armbridge/armbridge/frame_codec.py
"""
Frame codec for the motor register protocol.

Builds the 29-bit identifiers and 8-byte payloads understood by the arm
motors, and parses read-back payloads into `RegisterReading` values. Frames
are `can.Message` objects whose `channel` carries the bridge interface name.
"""
from typing import NamedTuple, Optional, Sequence

import struct

from can import Message as CanMessage

from . import constants as const
from .exceptions import EncodingError


class RegisterReading(NamedTuple):
    """A decoded register value. `raw` is the IEEE-754 float32 bit pattern."""

    index: int
    raw: int

    @property
    def value(self) -> float:
        return float_from_bits(self.raw)


def float_to_bits(value: float) -> int:
    """Reinterprets a float as its float32 bit pattern."""
    return struct.unpack("<I", struct.pack("<f", value))[0]


def float_from_bits(raw: int) -> float:
    """Reinterprets a 32-bit pattern as a float32 value."""
    return struct.unpack("<f", struct.pack("<I", raw & 0xFFFFFFFF))[0]


def _check_motor_id(motor_id: int) -> None:
    if not (0 <= motor_id <= 0xFF):
        raise EncodingError(
            f"Motor ID {motor_id} does not fit in one address byte.",
            motor_id=motor_id,
        )


def _check_index(index: int) -> None:
    if not (0 <= index <= 0xFFFF):
        raise EncodingError(f"Register index {index:#x} is not a 16-bit value.")


def build_write_id(command: int, motor_id: int) -> int:
    """Identifier of a host → motor write frame."""
    _check_motor_id(motor_id)
    return (command << const.CMD_SHIFT) | const.WRITE_ID_HOST_FIELD | motor_id


def motor_id_from_write_id(arbitration_id: int) -> int:
    """Recovers the motor address from a write frame identifier."""
    return arbitration_id & 0xFF


def build_write_frame(
    interface: str,
    motor_id: int,
    command: int,
    index: int = 0,
    value: Optional[float] = None,
    raw_value: Optional[int] = None,
) -> CanMessage:
    """
    Builds a write frame for one motor.

    The payload is the little-endian `index` followed by two zero bytes and
    then either the little-endian float32 `value`, the little-endian 32-bit
    `raw_value`, or four zero bytes. Control commands (enable, disable,
    clear fault, set zero) carry their flag in the index slot.

    Only `raw_value` is written bit for bit. `value` passes through a Python
    float, so signalling NaN patterns may come out quieted; send those as
    `raw_value`.

    Args:
        interface: Bridge interface the frame is sent on (e.g. "can0").
        motor_id: Target motor address.
        command: Command byte placed in the top byte of the identifier.
        index: Register index or control flag (0-0xFFFF).
        value: Optional float carried as float32 (angle, speed, gain).
        raw_value: Optional raw 32-bit pattern, exclusive with `value`.

    Returns:
        An extended-id `can.Message` with 8 data bytes.

    Raises:
        EncodingError: if any field is out of range or both values are given.
    """
    _check_index(index)
    if value is not None and raw_value is not None:
        raise EncodingError("Pass either value or raw_value, not both.")

    data = bytearray(const.FRAME_DATA_LENGTH)
    struct.pack_into("<H", data, 0, index)
    if value is not None:
        try:
            struct.pack_into("<f", data, 4, value)
        except (struct.error, OverflowError, TypeError) as exc:
            raise EncodingError(
                f"Value {value!r} cannot be encoded as float32: {exc}",
                motor_id=motor_id,
            ) from exc
    elif raw_value is not None:
        if not (0 <= raw_value <= 0xFFFFFFFF):
            raise EncodingError(f"Raw value {raw_value:#x} is not a 32-bit pattern.")
        struct.pack_into("<I", data, 4, raw_value)

    return CanMessage(
        channel=interface,
        arbitration_id=build_write_id(command, motor_id),
        data=bytes(data),
        is_extended_id=True,
    )


def build_read_request_id(host_id: int, motor_id: int) -> int:
    return (const.CMD_READ_SINGLE << const.CMD_SHIFT) | (host_id << 8) | motor_id


def build_read_response_id(host_id: int, motor_id: int) -> int:
    # Responses swap the host and motor bytes so they can be told apart
    return (const.CMD_READ_SINGLE << const.CMD_SHIFT) | (motor_id << 8) | host_id


def build_read_request_data(index: int) -> bytes:
    _check_index(index)
    data = bytearray(const.FRAME_DATA_LENGTH)
    struct.pack_into("<H", data, 0, index)
    return bytes(data)


def build_read_request_frame(
    interface: str,
    motor_id: int,
    index: int,
    host_id: int = const.DEFAULT_HOST_ID,
) -> CanMessage:
    _check_motor_id(motor_id)
    return CanMessage(
        channel=interface,
        arbitration_id=build_read_request_id(host_id, motor_id),
        data=build_read_request_data(index),
        is_extended_id=True,
    )


def decode_register_payload(data: Sequence[int]) -> RegisterReading:
    """
    Parses a read-back payload.

    Args:
        data: The frame payload; bytes 0-1 hold the index and bytes 4-7 the
              float32 bit pattern, both little-endian.

    Returns:
        The decoded `RegisterReading`.

    Raises:
        EncodingError: if the payload is shorter than 8 bytes.
    """
    if len(data) < const.FRAME_DATA_LENGTH:
        raise EncodingError(
            f"Register payload needs {const.FRAME_DATA_LENGTH} bytes, got {len(data)}."
        )
    payload = bytes(data[: const.FRAME_DATA_LENGTH])
    index = struct.unpack_from("<H", payload, 0)[0]
    raw = struct.unpack_from("<I", payload, 4)[0]
    return RegisterReading(index, raw)


def decode_frame(msg: CanMessage) -> RegisterReading:
    return decode_register_payload(msg.data)


def build_hand_frame(
    interface: str, device_id: int, fingers: Sequence[int]
) -> CanMessage:
    """
    Builds the finger position frame of the multi-finger hand.

    The payload is the control code followed by one byte per finger in the
    order thumb, thumb rotation, index, middle, ring, pinky. The hand uses
    standard 11-bit identifiers.
    """
    if len(fingers) != const.HAND_FINGER_COUNT:
        raise EncodingError(
            f"Hand frame needs {const.HAND_FINGER_COUNT} finger values, got {len(fingers)}."
        )
    for position in fingers:
        if not (0 <= int(position) <= 0xFF):
            raise EncodingError(
                f"Finger value {position} is out of range 0-255.", motor_id=device_id
            )
    if not (0 <= device_id <= 0x7FF):
        raise EncodingError(f"Hand device ID {device_id} is not a standard CAN ID.")
    return CanMessage(
        channel=interface,
        arbitration_id=device_id,
        data=bytes([const.HAND_CONTROL_CODE] + [int(p) for p in fingers]),
        is_extended_id=False,
    )
