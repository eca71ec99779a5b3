# armbridge/armbridge/sequences.py
"""
Joint sequences and the transforms that derive new sequences from recorded ones.

Everything here is a pure data transform: no bus access. Merges and mirrors
always return fresh copies, never views on their inputs.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import copy
import logging
import re

from . import constants as const
from .exceptions import ConfigMismatchError

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^0-9A-Za-z]")


@dataclass
class JointAngleSet:
    """One way-point: target angle per motor address."""

    name: str
    values: Dict[int, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "values": {str(motor_id): angle for motor_id, angle in self.values.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JointAngleSet":
        values: Dict[int, float] = {}
        for key, angle in (data.get("values") or {}).items():
            try:
                values[int(key)] = float(angle)
            except (TypeError, ValueError):
                logger.warning(
                    f"Way-point '{data.get('name', '')}': ignoring invalid entry {key!r}: {angle!r}"
                )
        return cls(name=data.get("name", ""), values=values)


@dataclass
class JointSequence:
    """Ordered way-points for one side; list order is playback order."""

    name: str
    arm_type: str = const.SIDE_UNKNOWN
    arm_model: str = const.DEFAULT_ARM_MODEL
    angles: List[JointAngleSet] = field(default_factory=list)

    def copy(self) -> "JointSequence":
        return copy.deepcopy(self)

    def validate_side(self) -> None:
        """
        Checks that every way-point only addresses motors of this sequence's side.

        Raises:
            ConfigMismatchError: on the first motor outside the side's range.
        """
        side_ids = const.ARM_MOTOR_IDS.get(self.arm_type)
        if side_ids is None:
            return
        for waypoint in self.angles:
            for motor_id in waypoint.values:
                if motor_id not in side_ids:
                    raise ConfigMismatchError(
                        f"Way-point '{waypoint.name}' of {self.arm_type} sequence "
                        f"'{self.name}' addresses motor {motor_id}",
                        motor_id=motor_id,
                    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "arm_type": self.arm_type,
            "arm_model": self.arm_model,
            "angles": [waypoint.to_dict() for waypoint in self.angles],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JointSequence":
        return cls(
            name=data.get("name", ""),
            arm_type=data.get("arm_type") or const.SIDE_UNKNOWN,
            arm_model=data.get("arm_model") or const.DEFAULT_ARM_MODEL,
            angles=[JointAngleSet.from_dict(a) for a in data.get("angles") or []],
        )


@dataclass
class SequencePair:
    """A merged artifact holding one sequence per side, kept verbatim."""

    name: str
    sequences: List[JointSequence] = field(default_factory=list)

    @property
    def file_name(self) -> str:
        return file_safe_name(self.name) + ".json"

    def by_side(self, side: str) -> Optional[JointSequence]:
        for sequence in self.sequences:
            if sequence.arm_type == side:
                return sequence
        return None

    def has_both_sides(self) -> bool:
        return (
            self.by_side(const.SIDE_LEFT) is not None
            and self.by_side(const.SIDE_RIGHT) is not None
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"joint_sequences": [s.to_dict() for s in self.sequences]}

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "SequencePair":
        return cls(
            name=name,
            sequences=[JointSequence.from_dict(s) for s in data.get("joint_sequences") or []],
        )


@dataclass
class MergeResult:
    merged: SequencePair
    derived: Optional[SequencePair] = None


def file_safe_name(name: str) -> str:
    """Replaces every non-alphanumeric character with an underscore."""
    return _NON_ALNUM.sub("_", name)


def substitute_direction(name: str) -> str:
    """
    Turns an ascending name into its descending counterpart.

    Only the exact spellings "up", "Up" and "UP" are replaced, giving
    "down", "down" and "DOWN"; mixed case such as "uP" is left alone.
    """
    for token, replacement in const.DIRECTION_SUBSTITUTIONS:
        name = name.replace(token, replacement)
    return name


def merge_direction(merged_name: str) -> Optional[str]:
    """Returns 'up', 'down' or None; "up" wins when a name contains both."""
    lowered = merged_name.lower()
    if const.DIRECTION_UP in lowered:
        return const.DIRECTION_UP
    if const.DIRECTION_DOWN in lowered:
        return const.DIRECTION_DOWN
    return None


def initial_waypoint(side: str, arm_model: str) -> JointAngleSet:
    """
    The synthetic first way-point of an ascending merge.

    Every joint of the side is at zero except one, which gets a small offset.
    Its sign flips on the "new" generation, whose joints turn the other way.

    Raises:
        ConfigMismatchError: if `side` is not a known arm side.
    """
    if side not in const.ARM_MOTOR_IDS:
        raise ConfigMismatchError(
            f"Cannot build an initial way-point for side '{side}'."
        )
    offset = const.INITIAL_OFFSET_OLD[side]
    if arm_model == const.ARM_MODEL_NEW:
        offset = -offset
    values = {motor_id: 0.0 for motor_id in const.ARM_MOTOR_IDS[side]}
    values[const.INITIAL_OFFSET_JOINT[side]] = offset
    return JointAngleSet(name=const.INITIAL_WAYPOINT_NAME, values=values)


def mirror_descending(sequence: JointSequence) -> JointSequence:
    """
    Derives the descending trajectory of an ascending sequence.

    The last way-point is dropped and the rest is reversed. Sequences with a
    single way-point (or none) are copied unchanged.
    """
    mirrored = sequence.copy()
    if len(mirrored.angles) > 1:
        mirrored.angles = list(reversed(mirrored.angles[:-1]))
    return mirrored


def merge_sequences(
    first: JointSequence,
    second: JointSequence,
    merged_name: str,
    arm_model: Optional[str] = None,
) -> MergeResult:
    """
    Merges two recorded sequences (one per side) into a pair.

    The generation tag is `arm_model` if given, else the one of `first`, else
    "old", and is applied to both copies. Names containing "up" get a
    synthetic initial way-point on each side and also produce the derived
    descending pair. Names containing "down" are mirrored directly. Any other
    name yields a plain pair. Sequence lengths and way-point names are not
    compared.

    Raises:
        ConfigMismatchError: if an ascending merge involves a sequence whose
                             side is unknown.
    """
    model = arm_model or first.arm_model or const.DEFAULT_ARM_MODEL
    sides = [first.copy(), second.copy()]
    for sequence in sides:
        sequence.arm_model = model

    direction = merge_direction(merged_name)
    if direction == const.DIRECTION_UP:
        for sequence in sides:
            sequence.angles.insert(0, initial_waypoint(sequence.arm_type, model))
        merged = SequencePair(merged_name, sides)

        down_sides = []
        for sequence in sides:
            down = mirror_descending(sequence)
            down.name = substitute_direction(sequence.name)
            down_sides.append(down)
        derived = SequencePair(substitute_direction(merged_name), down_sides)
        logger.info(
            f"Merged ascending pair '{merged.name}' and derived '{derived.name}' (model={model})"
        )
        return MergeResult(merged, derived)

    if direction == const.DIRECTION_DOWN:
        sides = [mirror_descending(sequence) for sequence in sides]

    merged = SequencePair(merged_name, sides)
    logger.info(f"Merged '{first.name}' + '{second.name}' = '{merged_name}' (model={model})")
    return MergeResult(merged)
