# armbridge/armbridge/playback.py
"""
Sequence playback.

`execute_sequence` plays one side's way-points through a dispatcher. It is
best-effort: a joint that fails to move is logged and recorded in the
`PlaybackReport`, and playback carries on with the next joint. Background
playback is started with `start_sequence` / `start_pair`, which hand back a
`PlaybackHandle` immediately. `run_pair_routine` is the scripted up/down
routine used when a merged file is run from the command line.
"""
from dataclasses import dataclass, field
from typing import Awaitable, Dict, List, Mapping, Optional, Sequence, Tuple

import asyncio
import logging

from . import constants as const
from .bridge_client import CANBridgeClient
from .dispatcher import CommandDispatcher
from .exceptions import ArmBridgeError
from .exceptions import ConfigMismatchError
from .gripper import GripperController
from .gripper import HandPose
from .gripper import ProfileTable
from .gripper import resolve_profile
from .manipulator import ManipulatorRegistry
from .sequences import JointSequence
from .sequences import SequencePair
from .sequences import merge_direction

logger = logging.getLogger(__name__)


@dataclass
class PlaybackReport:
    sequence_name: str
    interface: str
    waypoints_played: int = 0
    failures: List[Tuple[str, int, str]] = field(default_factory=list)
    skipped: List[Tuple[str, int]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


async def execute_sequence(
    dispatcher: CommandDispatcher,
    sequence: JointSequence,
    delay: float = const.WAYPOINT_DELAY,
) -> PlaybackReport:
    """
    Plays the way-points of `sequence` in order, pausing `delay` seconds
    between consecutive way-points.

    Motors that are not part of the dispatcher's manipulator are skipped.
    """
    report = PlaybackReport(sequence.name, dispatcher.interface)
    logger.info(
        f"Playing sequence '{sequence.name}' ({len(sequence.angles)} way-points) "
        f"on {dispatcher.interface}"
    )
    for position, waypoint in enumerate(sequence.angles):
        if position > 0 and delay > 0:
            await asyncio.sleep(delay)
        logger.info(f"Way-point {position + 1}: {waypoint.name}")
        for motor_id in sorted(waypoint.values):
            if motor_id not in dispatcher.manipulator:
                logger.warning(
                    f"Way-point '{waypoint.name}': motor {motor_id} is not on "
                    f"{dispatcher.interface}, skipping."
                )
                report.skipped.append((waypoint.name, motor_id))
                continue
            try:
                await dispatcher.set_angle(motor_id, waypoint.values[motor_id])
            except ArmBridgeError as e:
                logger.error(f"Way-point '{waypoint.name}': motor {motor_id} failed: {e}")
                report.failures.append((waypoint.name, motor_id, str(e)))
        report.waypoints_played += 1

    logger.info(
        f"Sequence '{sequence.name}' on {dispatcher.interface} finished: "
        f"{report.waypoints_played} way-points, {len(report.failures)} failures"
    )
    return report


class PlaybackHandle:
    """Handle on a sequence playing in the background."""

    def __init__(self, sequence_name: str, interface: str, task: "asyncio.Future[PlaybackReport]"):
        self.sequence_name = sequence_name
        self.interface = interface
        self.task = task

    def done(self) -> bool:
        return self.task.done()

    async def wait(self) -> PlaybackReport:
        return await self.task

    def cancel(self) -> bool:
        return self.task.cancel()


def start_sequence(
    dispatcher: CommandDispatcher,
    sequence: JointSequence,
    delay: float = const.WAYPOINT_DELAY,
) -> PlaybackHandle:
    """Schedules `execute_sequence` as a task; must be called with a running loop."""
    task = asyncio.ensure_future(execute_sequence(dispatcher, sequence, delay))
    return PlaybackHandle(sequence.name, dispatcher.interface, task)


def start_pair(
    registry: ManipulatorRegistry,
    pair: SequencePair,
    bridge: CANBridgeClient,
    delay: float = const.WAYPOINT_DELAY,
) -> Dict[str, PlaybackHandle]:
    """
    Starts the left and right sequences of a merged pair concurrently.

    Raises:
        ConfigMismatchError: if either side has no manipulator or no sequence;
                             nothing is started in that case.
    """
    plan = []
    for side in (const.SIDE_LEFT, const.SIDE_RIGHT):
        manipulator = registry.by_side(side)
        if manipulator is None:
            raise ConfigMismatchError(f"No {side} manipulator is registered.")
        sequence = pair.by_side(side)
        if sequence is None:
            raise ConfigMismatchError(f"Merged sequence '{pair.name}' has no {side} sequence.")
        plan.append((side, CommandDispatcher(bridge, manipulator), sequence))

    logger.info(f"Starting merged sequence '{pair.name}'")
    return {
        side: start_sequence(dispatcher, sequence, delay)
        for side, dispatcher, sequence in plan
    }


async def _best_effort(step: str, coro: Awaitable) -> None:
    try:
        await coro
    except ArmBridgeError as e:
        logger.error(f"{step} failed: {e}")


async def run_pair_routine(
    pair: SequencePair,
    left: CommandDispatcher,
    right: CommandDispatcher,
    hands: Optional[Mapping[str, GripperController]] = None,
    anti_collision: Optional[Mapping[str, Sequence[int]]] = None,
    profiles: Optional[ProfileTable] = None,
    delay: float = const.ROUTINE_WAYPOINT_DELAY,
    settle: float = const.ROUTINE_SETTLE,
    step_pause: float = const.ROUTINE_STEP_PAUSE,
) -> Dict[str, PlaybackReport]:
    """
    Runs the scripted routine for a merged up or down pair.

    Up: hands to the anti-collision pose, clear faults, enable, set every
    joint speed to 0.8, play both sides, then open the hands with the
    release profile ("sks" hands when the pair name mentions sks, else "sn").
    Down: hands to the anti-collision pose, speed 0.8, play both sides,
    disable, clear faults.

    Every step is best-effort; failures are logged and the routine goes on.
    Hand steps are skipped for sides without a controller or pose.

    Raises:
        ConfigMismatchError: if the pair lacks a left or right sequence.
    """
    sequences = {side: pair.by_side(side) for side in (const.SIDE_LEFT, const.SIDE_RIGHT)}
    for side, sequence in sequences.items():
        if sequence is None:
            raise ConfigMismatchError(f"Merged sequence '{pair.name}' has no {side} sequence.")

    direction = merge_direction(pair.name)
    if direction is None:
        logger.warning(f"'{pair.name}' is neither an up nor a down sequence, nothing to run.")
        return {}

    arms = {const.SIDE_LEFT: left, const.SIDE_RIGHT: right}
    hands = hands or {}
    anti_collision = anti_collision or {}
    speeds = {side: [const.ROUTINE_SPEED] * d.manipulator.joint_count for side, d in arms.items()}

    async def both(step: str, make):
        await asyncio.gather(
            *(_best_effort(f"{step} ({side})", make(side)) for side in arms)
        )

    async def pose_hand(side: str, values: Sequence[int]):
        await hands[side].set_fingers(HandPose.from_values(values))

    async def pre_pose_hands():
        steps = [
            _best_effort(f"Anti-collision pose ({side})", pose_hand(side, anti_collision[side]))
            for side in arms
            if side in hands and side in anti_collision
        ]
        if steps:
            await asyncio.gather(*steps)
            await asyncio.sleep(settle)

    async def play():
        results = await asyncio.gather(
            *(execute_sequence(arms[side], sequences[side], delay) for side in arms)
        )
        return dict(zip(arms, results))

    logger.info(f"Running {direction} routine for '{pair.name}'")
    await pre_pose_hands()

    if direction == const.DIRECTION_UP:
        await both("Clear faults", lambda s: arms[s].clear_fault())
        await asyncio.sleep(step_pause)
        await both("Enable", lambda s: arms[s].enable())
        await asyncio.sleep(settle)
        await both("Set speeds", lambda s: arms[s].set_speeds(speeds[s]))
        await asyncio.sleep(step_pause)
        reports = await play()

        hand_type = const.HAND_TYPE_SKS if const.HAND_TYPE_SKS in pair.name.lower() else const.HAND_TYPE_SN
        if profiles is not None:
            for side in hands:
                try:
                    values = resolve_profile(profiles, hand_type, side, const.PROFILE_RELEASE)
                except ArmBridgeError as e:
                    logger.error(f"Release profile ({side}) failed: {e}")
                    continue
                await _best_effort(f"Release profile ({side})", pose_hand(side, values))
    else:
        await both("Set speeds", lambda s: arms[s].set_speeds(speeds[s]))
        await asyncio.sleep(step_pause)
        reports = await play()
        await both("Disable", lambda s: arms[s].disable())
        await asyncio.sleep(step_pause)
        await both("Clear faults", lambda s: arms[s].clear_fault())

    logger.info(f"Routine for '{pair.name}' finished")
    return reports
