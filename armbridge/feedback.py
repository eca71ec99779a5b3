# armbridge/armbridge/feedback.py
"""
Feedback acquisition over the polling-only read-back channel.

The motors answer read requests on a shared bus and keep retransmitting the
live target angle, so the bridge inbox is a noisy stream of repeated frames.
This module splits the problem in three parts:

- `FeedbackEngine.observe` turns bridge polls into a finite stream of decoded
  `RegisterReading`s bounded by a deadline.
- `ConvergenceTracker` decides when a retransmitted live value has settled.
  It never touches the transport and can be fed by hand.
- `ParameterCollector` keeps the first observation of each static register.

Sleeps between polls and between read requests only limit the request rate.
"""
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Iterable, Optional, Sequence, Set

import asyncio
import logging

from . import constants as const
from .bridge_client import CANBridgeClient
from .exceptions import EncodingError
from .exceptions import ReadTimeoutError
from .exceptions import TransportError
from .frame_codec import RegisterReading
from .frame_codec import build_read_request_frame
from .frame_codec import build_read_response_id
from .frame_codec import decode_register_payload
from .frame_codec import float_from_bits
from .manipulator import Manipulator

logger = logging.getLogger(__name__)


class ConvergenceTracker:
    """
    Settle detection for one continuously retransmitted register.

    Rules, applied to raw 32-bit patterns:

    - a pattern not seen before becomes the previous distinct value and the
      repeat counter restarts;
    - a repeated pattern settles on the previous distinct value at once;
    - a repeated pattern with no previous distinct value on record settles on
      itself only after `repeats_without_predecessor` repeats.

    The source keeps sending its last value even while static, so one
    duplicate is tolerated before a value is trusted.
    """

    def __init__(
        self,
        repeats_without_predecessor: int = const.CONVERGENCE_REPEATS_WITHOUT_PREDECESSOR,
        seen: Optional[Iterable[int]] = None,
    ):
        """
        Args:
            repeats_without_predecessor: Repeats needed when no distinct
                predecessor was recorded.
            seen: Patterns to treat as already observed (for example the
                result of an earlier read), without making any of them the
                previous distinct value.
        """
        self.repeats_without_predecessor = repeats_without_predecessor
        self._seen: Set[int] = set(seen or ())
        self._previous: Optional[int] = None
        self._repeats = 0
        self.settled: Optional[int] = None

    @property
    def previous(self) -> Optional[int]:
        return self._previous

    @property
    def repeats(self) -> int:
        return self._repeats

    def feed(self, raw: int) -> Optional[int]:
        """Feeds one observation; returns the settled pattern once there is one."""
        if self.settled is not None:
            return self.settled

        if raw not in self._seen:
            self._seen.add(raw)
            self._previous = raw
            self._repeats = 0
            return None

        self._repeats += 1
        if self._previous is not None:
            self.settled = self._previous
        elif self._repeats >= self.repeats_without_predecessor:
            self.settled = raw
        return self.settled


class ParameterCollector:
    """Keeps the first observation of each requested static register."""

    def __init__(self, indices: Iterable[int]):
        self.requested = tuple(int(i) for i in indices)
        self.values: Dict[int, int] = {}

    def feed(self, reading: RegisterReading) -> bool:
        if reading.index in self.requested and reading.index not in self.values:
            self.values[reading.index] = reading.raw
        return self.complete

    @property
    def complete(self) -> bool:
        return len(self.values) == len(self.requested)

    def as_floats(self) -> Dict[int, float]:
        return {index: float_from_bits(raw) for index, raw in self.values.items()}


@dataclass
class FeedbackSnapshot:
    """Angles per motor and named gain values read back from one manipulator."""

    angles: Dict[int, float] = field(default_factory=dict)
    params: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Dict]:
        return {"angles": dict(self.angles), "params": dict(self.params)}


class FeedbackEngine:
    """
    Drives read-request / poll cycles against the CAN bridge.

    Every per-motor read is independent and private to one call; all reads
    share the bridge client.
    """

    def __init__(
        self,
        bridge: CANBridgeClient,
        host_id: int = const.DEFAULT_HOST_ID,
        request_spacing: float = const.READ_REQUEST_SPACING,
        poll_interval: float = const.POLL_INTERVAL,
        error_backoff: float = const.POLL_ERROR_BACKOFF,
    ):
        """
        Args:
            bridge: Shared bridge client.
            host_id: Host address used in read request/response identifiers.
            request_spacing: Pause in seconds after each read request frame.
            poll_interval: Pause in seconds after each inbox poll.
            error_backoff: Pause in seconds after a failed poll.
        """
        self.bridge = bridge
        self.host_id = host_id
        self.request_spacing = request_spacing
        self.poll_interval = poll_interval
        self.error_backoff = error_backoff

    async def send_read_requests(
        self, interface: str, motor_id: int, indices: Iterable[int]
    ) -> None:
        """
        Sends one read request per register index to a motor.

        Raises:
            TransportError: if the bridge rejects a request.
        """
        for index in indices:
            msg = build_read_request_frame(interface, motor_id, index, self.host_id)
            await self.bridge.send_frame(msg)
            await asyncio.sleep(self.request_spacing)

    async def observe(
        self, interface: str, motor_id: int, deadline: float
    ) -> AsyncIterator[RegisterReading]:
        """
        Yields decoded readings from a motor until the loop clock passes `deadline`.

        Frames shorter than 8 bytes are skipped. Failed polls are logged and
        retried after `error_backoff`.
        """
        loop = asyncio.get_running_loop()
        response_id = build_read_response_id(self.host_id, motor_id)
        while loop.time() < deadline:
            try:
                payloads = await self.bridge.poll_frames(interface, response_id)
            except TransportError as e:
                logger.debug(f"Poll for motor {motor_id} on {interface} failed: {e}")
                await asyncio.sleep(self.error_backoff)
                continue

            for payload in payloads:
                try:
                    reading = decode_register_payload(payload)
                except EncodingError as e:
                    logger.debug(f"Skipping frame from motor {motor_id}: {e}")
                    continue
                yield reading
            await asyncio.sleep(self.poll_interval)

    async def read_settled_angle(
        self,
        interface: str,
        motor_id: int,
        budget: float = const.ANGLE_READ_BUDGET,
    ) -> float:
        """
        Waits for the target angle of one motor to settle.

        Raises:
            ReadTimeoutError: if no value settled within `budget` seconds.
        """
        deadline = asyncio.get_running_loop().time() + budget
        tracker = ConvergenceTracker()
        stream = self.observe(interface, motor_id, deadline)
        try:
            async for reading in stream:
                if reading.index != const.RegisterIndex.TARGET_ANGLE:
                    continue
                settled = tracker.feed(reading.raw)
                if settled is not None:
                    return float_from_bits(settled)
        finally:
            await stream.aclose()
        raise ReadTimeoutError(
            f"Angle of motor {motor_id} on {interface} did not settle within {budget}s",
            motor_id=motor_id,
        )

    async def read_parameters(
        self,
        interface: str,
        motor_id: int,
        indices: Sequence[int] = const.GAIN_INDICES,
        budget: float = const.PARAMETER_READ_BUDGET,
    ) -> Dict[int, float]:
        """
        Collects the first observation of each static register in `indices`.

        Polling stops as soon as every index was seen once. Indices still
        missing when the budget runs out are left out of the result.
        """
        deadline = asyncio.get_running_loop().time() + budget
        collector = ParameterCollector(indices)
        stream = self.observe(interface, motor_id, deadline)
        try:
            async for reading in stream:
                if collector.feed(reading):
                    break
        finally:
            await stream.aclose()
        if not collector.complete:
            missing = [f"{i:#06x}" for i in collector.requested if i not in collector.values]
            logger.warning(f"Motor {motor_id} on {interface}: no value for {missing}")
        return collector.as_floats()

    async def _read_angle_or_none(
        self, interface: str, motor_id: int, budget: float
    ) -> Optional[float]:
        try:
            return await self.read_settled_angle(interface, motor_id, budget)
        except ReadTimeoutError as e:
            logger.warning(str(e))
            return None

    async def query_state(
        self,
        manipulator: Manipulator,
        angle_budget: float = const.ANGLE_READ_BUDGET,
        parameter_budget: float = const.PARAMETER_READ_BUDGET,
    ) -> FeedbackSnapshot:
        """
        Reads back the target angle of every motor and the gains of the manipulator.

        Gains are assumed identical across the manipulator, so only the first
        motor is asked for them. Motors whose angle does not settle in time are
        omitted; a partial snapshot is still a valid result.

        Raises:
            TransportError: if a read request cannot be sent.
        """
        interface = manipulator.interface
        indices = (const.RegisterIndex.TARGET_ANGLE,) + tuple(const.GAIN_INDICES)
        logger.info(f"Querying feedback on {interface} for motors {list(manipulator.motor_ids)}")
        for motor_id in manipulator.motor_ids:
            await self.send_read_requests(interface, motor_id, indices)

        snapshot = FeedbackSnapshot()
        if not manipulator.motor_ids:
            return snapshot

        gains = await self.read_parameters(
            interface, manipulator.motor_ids[0], const.GAIN_INDICES, parameter_budget
        )
        for index, value in gains.items():
            snapshot.params[const.PARAMETER_NAMES[const.RegisterIndex(index)]] = value

        angles = await asyncio.gather(
            *(
                self._read_angle_or_none(interface, motor_id, angle_budget)
                for motor_id in manipulator.motor_ids
            )
        )
        for motor_id, angle in zip(manipulator.motor_ids, angles):
            if angle is not None:
                snapshot.angles[motor_id] = angle

        logger.info(
            f"Feedback on {interface}: {len(snapshot.angles)}/{manipulator.joint_count} "
            f"angles settled, params={snapshot.params}"
        )
        return snapshot
