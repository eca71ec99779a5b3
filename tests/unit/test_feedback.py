# armbridge/tests/unit/test_feedback.py
import struct

import pytest

from armbridge import constants as const
from armbridge.exceptions import ReadTimeoutError
from armbridge.exceptions import TransportError
from armbridge.feedback import ConvergenceTracker
from armbridge.feedback import FeedbackEngine
from armbridge.feedback import ParameterCollector
from armbridge.frame_codec import RegisterReading
from armbridge.frame_codec import build_read_response_id
from armbridge.frame_codec import float_to_bits
from armbridge.frame_codec import motor_id_from_write_id
from armbridge.manipulator import Manipulator

A = float_to_bits(1.5)
B = float_to_bits(-0.5)
C = float_to_bits(3.0)


def _payload(index, value):
    return struct.pack("<HH", index, 0) + struct.pack("<f", value)


class FakeBridge:
    """Answers every poll of a motor with the same retransmitted frames."""

    def __init__(self, frames_by_motor=None, failures_by_motor=None):
        self.frames_by_motor = frames_by_motor or {}
        self.failures_by_motor = dict(failures_by_motor or {})
        self.sent = []
        self.polls = []

    async def send_frame(self, msg):
        self.sent.append(msg)

    async def poll_frames(self, interface, can_id):
        motor_id = (can_id >> 8) & 0xFF
        self.polls.append((interface, motor_id))
        if self.failures_by_motor.get(motor_id, 0) > 0:
            self.failures_by_motor[motor_id] -= 1
            raise TransportError("bridge busy")
        frames = self.frames_by_motor.get(motor_id, [])
        if callable(frames):
            return frames()
        return list(frames)


def _engine(bridge):
    return FeedbackEngine(bridge, request_spacing=0, poll_interval=0, error_backoff=0)


class TestConvergenceTracker:
    def test_repeat_settles_on_previous_distinct_value(self):
        tracker = ConvergenceTracker()
        assert tracker.feed(A) is None
        assert tracker.feed(A) == A
        assert tracker.feed(B) == A

    def test_new_value_becomes_previous(self):
        tracker = ConvergenceTracker()
        assert tracker.feed(A) is None
        assert tracker.feed(B) is None
        assert tracker.previous == B
        assert tracker.feed(B) == B

    def test_repeat_of_older_value_settles_on_latest_distinct(self):
        tracker = ConvergenceTracker()
        tracker.feed(A)
        tracker.feed(B)
        assert tracker.feed(A) == B

    def test_seeded_value_needs_two_repeats(self):
        tracker = ConvergenceTracker(seen=[A])
        assert tracker.feed(A) is None
        assert tracker.repeats == 1
        assert tracker.feed(A) == A

    def test_new_pattern_resets_repeats(self):
        tracker = ConvergenceTracker(seen=[A, B])
        tracker.feed(A)
        assert tracker.repeats == 1
        assert tracker.feed(C) is None
        assert tracker.repeats == 0
        assert tracker.feed(C) == C


class TestParameterCollector:
    def test_keeps_first_observation_only(self):
        collector = ParameterCollector(const.GAIN_INDICES)
        assert not collector.feed(RegisterReading(const.RegisterIndex.POSITION_KP, float_to_bits(20.0)))
        collector.feed(RegisterReading(const.RegisterIndex.POSITION_KP, float_to_bits(99.0)))
        collector.feed(RegisterReading(const.RegisterIndex.TARGET_ANGLE, A))
        assert collector.as_floats() == {const.RegisterIndex.POSITION_KP: 20.0}

    def test_complete_when_all_seen(self):
        collector = ParameterCollector([const.RegisterIndex.VELOCITY_KP, const.RegisterIndex.VELOCITY_KI])
        collector.feed(RegisterReading(const.RegisterIndex.VELOCITY_KP, float_to_bits(0.5)))
        assert collector.feed(RegisterReading(const.RegisterIndex.VELOCITY_KI, float_to_bits(0.25)))
        assert collector.complete


@pytest.mark.asyncio
class TestFeedbackEngine:
    async def test_settled_angle(self):
        bridge = FakeBridge({61: [_payload(0x7016, 1.5)]})
        angle = await _engine(bridge).read_settled_angle("can0", 61, budget=1.0)
        assert angle == 1.5
        assert bridge.polls == [("can0", 61), ("can0", 61)]

    async def test_changing_stream_settles_on_latest_distinct(self):
        script = iter([[_payload(0x7016, 1.5)], [_payload(0x7016, -0.5)], [_payload(0x7016, -0.5)]])
        bridge = FakeBridge({61: lambda: next(script, [])})
        assert await _engine(bridge).read_settled_angle("can0", 61, budget=1.0) == -0.5

    async def test_other_registers_and_short_frames_ignored(self):
        bridge = FakeBridge({62: [b"\x16\x70\x00", _payload(0x701E, 7.0), _payload(0x7016, 3.0)]})
        assert await _engine(bridge).read_settled_angle("can0", 62, budget=1.0) == 3.0

    async def test_poll_failures_are_retried(self):
        bridge = FakeBridge({63: [_payload(0x7016, 1.5)]}, failures_by_motor={63: 2})
        assert await _engine(bridge).read_settled_angle("can0", 63, budget=1.0) == 1.5

    async def test_timeout(self):
        bridge = FakeBridge()
        with pytest.raises(ReadTimeoutError) as exc_info:
            await _engine(bridge).read_settled_angle("can0", 64, budget=0.02)
        assert exc_info.value.motor_id == 64

    async def test_read_parameters_partial(self):
        bridge = FakeBridge({61: [_payload(0x701E, 20.0), _payload(0x7020, 0.25)]})
        values = await _engine(bridge).read_parameters("can0", 61, budget=0.02)
        assert values == {
            const.RegisterIndex.POSITION_KP: 20.0,
            const.RegisterIndex.VELOCITY_KI: 0.25,
        }

    async def test_query_state_partial_snapshot(self):
        gains = [
            _payload(0x701E, 20.0),
            _payload(0x701F, 0.5),
            _payload(0x7020, 0.25),
            _payload(0x7021, 0.125),
        ]
        bridge = FakeBridge(
            {
                61: [_payload(0x7016, 1.5)] + gains,
                62: [_payload(0x7016, -0.5)],
            }
        )
        arm = Manipulator("can0", const.LEFT_ARM_MOTOR_IDS)

        snapshot = await _engine(bridge).query_state(arm, angle_budget=0.05, parameter_budget=0.05)

        assert snapshot.angles == {61: 1.5, 62: -0.5}
        assert snapshot.params == {
            "loc_kp": 20.0,
            "spd_kp": 0.5,
            "spd_ki": 0.25,
            "filt_gain": 0.125,
        }
        assert len(bridge.sent) == 7 * 5
        requested = {motor_id_from_write_id(m.arbitration_id) for m in bridge.sent}
        assert requested == set(const.LEFT_ARM_MOTOR_IDS)
        assert all(
            m.arbitration_id >> const.CMD_SHIFT == const.CMD_READ_SINGLE for m in bridge.sent
        )

    async def test_query_state_polls_response_ids(self):
        bridge = FakeBridge()
        arm = Manipulator("can1", (51,))
        snapshot = await _engine(bridge).query_state(arm, angle_budget=0.01, parameter_budget=0.01)
        assert snapshot.to_dict() == {"angles": {}, "params": {}}
        assert set(bridge.polls) == {("can1", 51)}
        assert build_read_response_id(const.DEFAULT_HOST_ID, 51) == 0x110033FD
