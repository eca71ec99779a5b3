"""
Command-Line Interface for armbridge.
Uses 'click' for argument parsing and command structure.
"""
import asyncio
import json
import logging
from typing import Dict, List, Optional, Tuple

import click

from . import constants as const
from .bridge_client import CANBridgeClient
from .dispatcher import CommandDispatcher
from .exceptions import ArmBridgeError
from .feedback import FeedbackEngine
from .gripper import GripperController
from .gripper import ProfileTable
from .manipulator import Manipulator
from .playback import run_pair_routine
from .sequence_store import SequenceStore
from .sequences import merge_sequences

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("ArmBridgeCLI")


@click.group()
@click.option(
    "--bridge-url",
    default=const.BRIDGE_DEFAULT_URL,
    envvar="ARMBRIDGE_BRIDGE_URL",
    help="Root URL of the CAN bridge.",
    show_default=True,
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level.",
    show_default=True,
)
@click.pass_context
def cli(ctx: click.Context, bridge_url: str, log_level: str):
    """Drive dual-arm manipulators through the HTTP CAN bridge."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )
    ctx.ensure_object(dict)
    ctx.obj["bridge_url"] = bridge_url


def _store_options(func):
    func = click.option(
        "--merged-dir",
        default=const.MERGED_SEQUENCE_DIR,
        type=click.Path(file_okay=False),
        help="Directory of merged sequence files.",
        show_default=True,
    )(func)
    func = click.option(
        "--sequence-dir",
        default=const.SEQUENCE_DIR,
        type=click.Path(file_okay=False),
        help="Directory of recorded sequence files.",
        show_default=True,
    )(func)
    return func


@cli.command()
@click.argument("first")
@click.argument("second")
@click.argument("merged_name")
@click.option(
    "--arm-model",
    type=click.Choice([const.ARM_MODEL_OLD, const.ARM_MODEL_NEW]),
    default=None,
    help="Generation tag for the merged pair (defaults to the first sequence's).",
)
@_store_options
def merge(
    first: str,
    second: str,
    merged_name: str,
    arm_model: Optional[str],
    sequence_dir: str,
    merged_dir: str,
):
    """Merge two recorded sequences into MERGED_NAME."""
    store = SequenceStore(sequence_dir, merged_dir)
    store.load_all()
    sequences = []
    for name in (first, second):
        sequence = store.find_by_name(name)
        if sequence is None:
            raise click.ClickException(f"Sequence '{name}' not found in {sequence_dir}.")
        sequences.append(sequence)

    try:
        result = merge_sequences(sequences[0], sequences[1], merged_name, arm_model)
    except ArmBridgeError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Saved {store.save_pair(result.merged)}")
    if result.derived is not None:
        click.echo(f"Saved {store.save_pair(result.derived)}")


@cli.command("list-merged")
@_store_options
def list_merged(sequence_dir: str, merged_dir: str):
    """List merged up/down files that hold both sides."""
    store = SequenceStore(sequence_dir, merged_dir)
    pairs = store.list_pairs()
    if not pairs:
        click.echo("No merged sequences found.")
        return
    for entry in pairs:
        click.echo(f"{entry['filename']}\t{entry['type']}")


def _load_hands_config(
    path: str,
) -> Tuple[Dict[str, Tuple[str, int]], Dict[str, List[int]], ProfileTable]:
    """
    Reads the hand set-up for a routine run.

    The file holds a "hands" mapping of side to {"interface", "device_id"},
    an optional "anti_collision" mapping of side to six finger values and an
    optional "profiles" list of {"hand_type", "side", "profile", "values"}.
    A missing "device_id" falls back to the side's default hand id.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        hands = {}
        for side, entry in (data.get("hands") or {}).items():
            if side not in const.HAND_DEVICE_IDS:
                raise ValueError(f"unknown hand side '{side}'")
            device_id = entry.get("device_id", const.HAND_DEVICE_IDS[side])
            hands[side] = (entry["interface"], int(device_id))
        anti_collision = {
            side: [int(v) for v in values]
            for side, values in (data.get("anti_collision") or {}).items()
        }
        profiles = {
            (p["hand_type"], p["side"], p["profile"]): [int(v) for v in p["values"]]
            for p in data.get("profiles") or []
        }
    except (OSError, ValueError, TypeError, KeyError, AttributeError) as e:
        raise click.ClickException(f"Cannot read hand configuration {path}: {e}") from e
    return hands, anti_collision, profiles


@cli.command("run-merged")
@click.argument("file_name")
@click.option("--left-interface", required=True, help="Bridge interface of the left arm.")
@click.option("--right-interface", required=True, help="Bridge interface of the right arm.")
@click.option(
    "--hands-json",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="JSON file with hand interfaces, anti-collision poses and profiles.",
)
@_store_options
@click.pass_context
def run_merged(
    ctx: click.Context,
    file_name: str,
    left_interface: str,
    right_interface: str,
    hands_json: Optional[str],
    sequence_dir: str,
    merged_dir: str,
):
    """
    Run the scripted up/down routine for a merged sequence file.

    Without --hands-json only the arms move.
    """
    store = SequenceStore(sequence_dir, merged_dir)
    logger.info(f"Running {file_name} on {left_interface} (left) and {right_interface} (right)")
    try:
        pair = store.load_pair(file_name)
    except ArmBridgeError as e:
        raise click.ClickException(str(e)) from e

    hand_specs, anti_collision, profiles = {}, {}, None
    if hands_json is not None:
        hand_specs, anti_collision, profiles = _load_hands_config(hands_json)

    bridge = CANBridgeClient(ctx.obj["bridge_url"])
    left = CommandDispatcher(bridge, Manipulator(left_interface, const.LEFT_ARM_MOTOR_IDS))
    right = CommandDispatcher(bridge, Manipulator(right_interface, const.RIGHT_ARM_MOTOR_IDS))
    hands = {
        side: GripperController(bridge, interface, device_id)
        for side, (interface, device_id) in hand_specs.items()
    }
    try:
        reports = asyncio.run(
            run_pair_routine(
                pair,
                left,
                right,
                hands=hands,
                anti_collision=anti_collision,
                profiles=profiles,
            )
        )
    except ArmBridgeError as e:
        raise click.ClickException(str(e)) from e
    finally:
        bridge.close()

    for side, report in reports.items():
        click.echo(
            f"{side}: {report.waypoints_played} way-points, {len(report.failures)} failures"
        )


@cli.command()
@click.option("--interface", required=True, help="Bridge interface of the arm.")
@click.option(
    "--device-name",
    default="",
    help="Device name; 'left' or 'right' in it selects the motor range.",
)
@click.pass_context
def query(ctx: click.Context, interface: str, device_name: str):
    """Read back joint angles and gains of one arm as JSON."""
    bridge = CANBridgeClient(ctx.obj["bridge_url"])
    manipulator = Manipulator.from_device_name(interface, device_name)
    engine = FeedbackEngine(bridge)
    try:
        snapshot = asyncio.run(engine.query_state(manipulator))
    except ArmBridgeError as e:
        raise click.ClickException(str(e)) from e
    finally:
        bridge.close()
    click.echo(json.dumps(snapshot.to_dict(), indent=2))


@cli.command()
@click.argument("action")
@click.option("--interface", required=True, help="Bridge interface of the arm.")
@click.option("--device-name", default="", help="Device name used to pick the motor range.")
@click.option("--joint-id", type=int, default=None, help="Motor address for single joint actions.")
@click.option("--value", type=float, default=None, help="Value for single joint actions.")
@click.pass_context
def control(
    ctx: click.Context,
    action: str,
    interface: str,
    device_name: str,
    joint_id: Optional[int],
    value: Optional[float],
):
    """Run one named ACTION (enable, disable, set_angle, ...) on an arm."""
    params = {}
    if joint_id is not None:
        params["joint_id"] = joint_id
    if value is not None:
        params["value"] = value

    bridge = CANBridgeClient(ctx.obj["bridge_url"])
    dispatcher = CommandDispatcher(bridge, Manipulator.from_device_name(interface, device_name))
    try:
        result = asyncio.run(dispatcher.execute(action, **params))
    finally:
        bridge.close()
    click.echo(json.dumps(result.to_dict()))
    if not result.success:
        ctx.exit(1)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
