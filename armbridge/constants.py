# armbridge/armbridge/constants.py
"""
Constants for the armbridge library.
Includes CAN command bytes, register indices, motor address ranges, bridge
defaults and the timing used by the feedback and playback layers.
"""
from enum import IntEnum

# Bridge defaults
BRIDGE_DEFAULT_URL = "http://localhost:5260"
BRIDGE_HTTP_TIMEOUT_SECONDS = 50.0
BRIDGE_SEND_ENDPOINT = "/api/can"
BRIDGE_MESSAGES_ENDPOINT = "/api/messages"

# Identifier layout
# Write frames: command << 24 | 0xFD00 | motor_id
WRITE_ID_HOST_FIELD = 0xFD00
DEFAULT_HOST_ID = 0xFD
CMD_SHIFT = 24
FRAME_DATA_LENGTH = 8

# Command bytes (upper byte of the 29-bit identifier)
CMD_ENABLE = 0x03
CMD_DISABLE = 0x04  # flag 1 in the payload clears a latched fault
CMD_SET_ZERO = 0x06
CMD_READ_SINGLE = 0x11
CMD_WRITE_PARAMETER = 0x12

# Flags carried in the first payload byte of control commands
FLAG_NONE = 0x00
FLAG_CLEAR_FAULT = 0x01
FLAG_SET_ZERO = 0x01


class RegisterIndex(IntEnum):
    """16-bit indices of the motor parameter table."""

    TARGET_ANGLE = 0x7016
    POSITION_KP = 0x701E
    VELOCITY_KP = 0x701F
    VELOCITY_KI = 0x7020
    VELOCITY_FILTER_GAIN = 0x7021


# Write-only indices
INDEX_RUN_MODE = 0x7005
INDEX_SPEED_LIMIT = 0x7024
RUN_MODE_POSITION_PROFILE = 1

# Gains are static configuration registers, identical across one manipulator
GAIN_INDICES = (
    RegisterIndex.POSITION_KP,
    RegisterIndex.VELOCITY_KP,
    RegisterIndex.VELOCITY_KI,
    RegisterIndex.VELOCITY_FILTER_GAIN,
)

PARAMETER_NAMES = {
    RegisterIndex.POSITION_KP: "loc_kp",
    RegisterIndex.VELOCITY_KP: "spd_kp",
    RegisterIndex.VELOCITY_KI: "spd_ki",
    RegisterIndex.VELOCITY_FILTER_GAIN: "filt_gain",
}

# Motor address ranges per side
SIDE_LEFT = "left"
SIDE_RIGHT = "right"
SIDE_UNKNOWN = "unknown"

RIGHT_ARM_MOTOR_IDS = (51, 52, 53, 54, 55, 56, 57)
LEFT_ARM_MOTOR_IDS = (61, 62, 63, 64, 65, 66, 67)

ARM_MOTOR_IDS = {
    SIDE_LEFT: LEFT_ARM_MOTOR_IDS,
    SIDE_RIGHT: RIGHT_ARM_MOTOR_IDS,
}

# Manipulator generations ("arm_model"); joint polarity is inverted on "new"
ARM_MODEL_OLD = "old"
ARM_MODEL_NEW = "new"
DEFAULT_ARM_MODEL = ARM_MODEL_OLD

# Synthetic first way-point of an ascending merge
INITIAL_WAYPOINT_NAME = "initial"
INITIAL_OFFSET_JOINT = {SIDE_LEFT: 62, SIDE_RIGHT: 52}
INITIAL_OFFSET_OLD = {SIDE_LEFT: 0.1, SIDE_RIGHT: -0.1}

# Direction tokens in merged sequence names
DIRECTION_UP = "up"
DIRECTION_DOWN = "down"
DIRECTION_SUBSTITUTIONS = (
    ("up", "down"),
    ("Up", "down"),
    ("UP", "DOWN"),
)

# Feedback timing (seconds)
READ_REQUEST_SPACING = 0.005
POLL_INTERVAL = 0.08
POLL_ERROR_BACKOFF = 0.06
ANGLE_READ_BUDGET = 2.0
PARAMETER_READ_BUDGET = 0.5
CONVERGENCE_REPEATS_WITHOUT_PREDECESSOR = 2

# Playback timing (seconds)
WAYPOINT_DELAY = 1.0
ROUTINE_WAYPOINT_DELAY = 0.001
ROUTINE_SETTLE = 0.5
ROUTINE_STEP_PAUSE = 0.2
ROUTINE_SPEED = 0.8

# Gripper (multi-finger hand)
HAND_CONTROL_CODE = 0x01
HAND_DEVICE_IDS = {SIDE_LEFT: 40, SIDE_RIGHT: 39}
HAND_FINGER_COUNT = 6
HAND_TYPE_SKS = "sks"
HAND_TYPE_SN = "sn"
PROFILE_PRESS = "press"
PROFILE_RELEASE = "release"
# Profiles that only replace thumb and thumb rotation on top of "press"
THUMB_OVERLAY_PROFILES = ("high_thumb", "high_pro_thumb")

# Sequence storage
SEQUENCE_DIR = "json"
MERGED_SEQUENCE_DIR = "."
