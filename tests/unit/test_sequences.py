# armbridge/tests/unit/test_sequences.py
import pytest

from armbridge import constants as const
from armbridge.exceptions import ConfigMismatchError
from armbridge.sequences import JointAngleSet
from armbridge.sequences import JointSequence
from armbridge.sequences import SequencePair
from armbridge.sequences import file_safe_name
from armbridge.sequences import initial_waypoint
from armbridge.sequences import merge_direction
from armbridge.sequences import merge_sequences
from armbridge.sequences import mirror_descending
from armbridge.sequences import substitute_direction


def _sequence(name, side, count, arm_model=const.ARM_MODEL_OLD):
    ids = const.ARM_MOTOR_IDS[side]
    return JointSequence(
        name=name,
        arm_type=side,
        arm_model=arm_model,
        angles=[
            JointAngleSet(f"p{i}", {motor_id: 0.1 * i for motor_id in ids})
            for i in range(1, count + 1)
        ],
    )


@pytest.fixture
def left_up():
    return _sequence("left_up", const.SIDE_LEFT, 3)


@pytest.fixture
def right_up():
    return _sequence("right_up", const.SIDE_RIGHT, 3)


class TestNames:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("UP_to_rest", "DOWN_to_rest"),
            ("Up_slow", "down_slow"),
            ("arm_up", "arm_down"),
            ("uP_mixed", "uP_mixed"),
        ],
    )
    def test_substitute_direction(self, name, expected):
        assert substitute_direction(name) == expected

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("Piano UP", const.DIRECTION_UP),
            ("lay_down", const.DIRECTION_DOWN),
            ("up_and_down", const.DIRECTION_UP),
            ("wave", None),
        ],
    )
    def test_merge_direction(self, name, expected):
        assert merge_direction(name) == expected

    def test_file_safe_name(self):
        assert file_safe_name("sks up/fast v2") == "sks_up_fast_v2"


class TestInitialWaypoint:
    def test_old_model(self):
        waypoint = initial_waypoint(const.SIDE_LEFT, const.ARM_MODEL_OLD)
        assert waypoint.name == "initial"
        assert set(waypoint.values) == set(const.LEFT_ARM_MOTOR_IDS)
        assert waypoint.values[62] == 0.1
        assert all(v == 0.0 for m, v in waypoint.values.items() if m != 62)

    def test_new_model_flips_sign(self):
        assert initial_waypoint(const.SIDE_LEFT, const.ARM_MODEL_NEW).values[62] == -0.1
        assert initial_waypoint(const.SIDE_RIGHT, const.ARM_MODEL_OLD).values[52] == -0.1
        assert initial_waypoint(const.SIDE_RIGHT, const.ARM_MODEL_NEW).values[52] == 0.1

    def test_unknown_side(self):
        with pytest.raises(ConfigMismatchError):
            initial_waypoint(const.SIDE_UNKNOWN, const.ARM_MODEL_OLD)


class TestMirror:
    def test_drops_last_and_reverses(self, left_up):
        mirrored = mirror_descending(left_up)
        assert [w.name for w in mirrored.angles] == ["p2", "p1"]
        assert [w.name for w in left_up.angles] == ["p1", "p2", "p3"]

    def test_single_waypoint_unchanged(self):
        single = _sequence("one", const.SIDE_LEFT, 1)
        assert [w.name for w in mirror_descending(single).angles] == ["p1"]

    def test_returns_copy(self, left_up):
        mirrored = mirror_descending(left_up)
        mirrored.angles[0].values[61] = 42.0
        assert left_up.angles[1].values[61] != 42.0


class TestMerge:
    def test_ascending_merge_derives_descending_pair(self, left_up, right_up):
        result = merge_sequences(left_up, right_up, "Piano_up")

        left = result.merged.by_side(const.SIDE_LEFT)
        assert [w.name for w in left.angles] == ["initial", "p1", "p2", "p3"]
        assert result.merged.by_side(const.SIDE_RIGHT).angles[0].values[52] == -0.1

        assert result.derived is not None
        assert result.derived.name == "Piano_down"
        down_left = result.derived.by_side(const.SIDE_LEFT)
        assert down_left.name == "left_down"
        assert [w.name for w in down_left.angles] == ["p2", "p1", "initial"]

        assert len(left_up.angles) == 3

    def test_direct_descending_merge_matches_derived_pair(self, left_up, right_up):
        ascending = merge_sequences(left_up, right_up, "Piano_up")
        direct = merge_sequences(
            ascending.merged.by_side(const.SIDE_LEFT),
            ascending.merged.by_side(const.SIDE_RIGHT),
            "Piano_down",
        )

        assert direct.derived is None
        for side in (const.SIDE_LEFT, const.SIDE_RIGHT):
            assert direct.merged.by_side(side).angles == ascending.derived.by_side(side).angles

    def test_descending_merge_mirrors(self, left_up, right_up):
        result = merge_sequences(left_up, right_up, "rest_down")
        assert result.derived is None
        assert [w.name for w in result.merged.by_side(const.SIDE_RIGHT).angles] == ["p2", "p1"]

    def test_plain_merge_keeps_sequences(self, left_up, right_up):
        result = merge_sequences(left_up, right_up, "wave")
        assert result.derived is None
        assert [s.name for s in result.merged.sequences] == ["left_up", "right_up"]
        assert len(result.merged.by_side(const.SIDE_LEFT).angles) == 3

    def test_arm_model_resolution(self, left_up, right_up):
        left_up.arm_model = const.ARM_MODEL_NEW
        result = merge_sequences(left_up, right_up, "wave")
        assert {s.arm_model for s in result.merged.sequences} == {const.ARM_MODEL_NEW}

        result = merge_sequences(left_up, right_up, "Piano_up", arm_model=const.ARM_MODEL_OLD)
        assert result.merged.by_side(const.SIDE_LEFT).angles[0].values[62] == 0.1

    def test_ascending_merge_needs_known_sides(self, left_up):
        stray = JointSequence("stray", arm_type=const.SIDE_UNKNOWN)
        with pytest.raises(ConfigMismatchError):
            merge_sequences(left_up, stray, "arm_up")


class TestSerialization:
    def test_sequence_dict_round_trip(self, left_up):
        data = left_up.to_dict()
        assert data["angles"][0]["values"]["61"] == pytest.approx(0.1)
        restored = JointSequence.from_dict(data)
        assert restored == left_up

    def test_invalid_values_skipped(self):
        waypoint = JointAngleSet.from_dict({"name": "w", "values": {"61": 1.0, "x": 2.0, "62": "bad"}})
        assert waypoint.values == {61: 1.0}

    def test_pair_file_layout(self, left_up, right_up):
        pair = SequencePair("sks up", [left_up, right_up])
        assert pair.file_name == "sks_up.json"
        assert pair.has_both_sides()
        restored = SequencePair.from_dict("sks_up", pair.to_dict())
        assert [s.arm_type for s in restored.sequences] == [const.SIDE_LEFT, const.SIDE_RIGHT]

    def test_validate_side(self, left_up):
        left_up.angles[0].values[52] = 0.0
        with pytest.raises(ConfigMismatchError) as exc_info:
            left_up.validate_side()
        assert exc_info.value.motor_id == 52
