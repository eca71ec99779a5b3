"""
armbridge
=========

Controls dual-arm manipulators whose joint motors sit on CAN buses reached
through an HTTP CAN bridge. It includes the frame codec, a per-arm command
dispatcher, read-back of settled joint angles and gains, joint sequence
merging and storage, sequence playback and multi-finger hand control.
"""

# Import the constants module and alias it as 'const' for patterned access
from . import constants as const

from .bridge_client import CANBridgeClient
from .dispatcher import CommandDispatcher, OperationResult
from .feedback import (
    ConvergenceTracker,
    FeedbackEngine,
    FeedbackSnapshot,
    ParameterCollector,
)
from .frame_codec import (
    RegisterReading,
    build_hand_frame,
    build_read_request_frame,
    build_write_frame,
    decode_register_payload,
)
from .gripper import GripperController, HandPose
from .manipulator import Manipulator, ManipulatorRegistry
from .playback import (
    PlaybackHandle,
    PlaybackReport,
    execute_sequence,
    run_pair_routine,
    start_pair,
    start_sequence,
)
from .sequence_store import RecordingBuffer, SequenceStore
from .sequences import (
    JointAngleSet,
    JointSequence,
    MergeResult,
    SequencePair,
    merge_sequences,
    mirror_descending,
)

from .exceptions import (
    ArmBridgeError,
    AddressError,
    EncodingError,
    TransportError,
    ReadTimeoutError,
    ConfigMismatchError,
    ConfigurationError,
    MultiMotorError,
)

__version__ = "0.1.0"

__all__ = [
    "const",

    # Transport and codec
    "CANBridgeClient",
    "RegisterReading",
    "build_hand_frame",
    "build_read_request_frame",
    "build_write_frame",
    "decode_register_payload",

    # Control
    "Manipulator",
    "ManipulatorRegistry",
    "CommandDispatcher",
    "OperationResult",
    "GripperController",
    "HandPose",

    # Feedback
    "ConvergenceTracker",
    "FeedbackEngine",
    "FeedbackSnapshot",
    "ParameterCollector",

    # Sequences
    "JointAngleSet",
    "JointSequence",
    "MergeResult",
    "SequencePair",
    "merge_sequences",
    "mirror_descending",
    "RecordingBuffer",
    "SequenceStore",
    "PlaybackHandle",
    "PlaybackReport",
    "execute_sequence",
    "run_pair_routine",
    "start_pair",
    "start_sequence",

    # Exceptions
    "ArmBridgeError",
    "AddressError",
    "EncodingError",
    "TransportError",
    "ReadTimeoutError",
    "ConfigMismatchError",
    "ConfigurationError",
    "MultiMotorError",
]
