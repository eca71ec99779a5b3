# armbridge/armbridge/dispatcher.py
"""
Command dispatcher for one manipulator.

This module provides the `CommandDispatcher` class, which turns named arm
operations into CAN frames and hands them to the bridge. Operations that
touch every joint are fanned out concurrently, one task per motor. There is
no ordering or atomicity across motors: synchronized multi-joint motion has
to come from the motor firmware's motion profiles, not from send order.
Frames for the same motor (run mode, then enable) are always awaited in order.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Sequence

import asyncio
import logging

from can import Message as CanMessage

from . import constants as const
from .bridge_client import CANBridgeClient
from .exceptions import ArmBridgeError
from .exceptions import EncodingError
from .exceptions import MultiMotorError
from .exceptions import TransportError
from .frame_codec import build_write_frame
from .manipulator import Manipulator

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Structured outcome of a named operation."""

    success: bool
    message: str
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        result = {"success": self.success, "message": self.message}
        if self.data is not None:
            result["data"] = self.data
        return result


class CommandDispatcher:
    """
    Maps arm operations onto frames for the motors of one `Manipulator`.

    The dispatcher keeps no motor state; the bus and the feedback engine are
    the only sources of truth.
    """

    def __init__(self, bridge: CANBridgeClient, manipulator: Manipulator):
        """
        Args:
            bridge: The shared bridge client used to send frames.
            manipulator: The manipulator whose motors this dispatcher commands.
        """
        self.bridge = bridge
        self.manipulator = manipulator

    @property
    def interface(self) -> str:
        return self.manipulator.interface

    @property
    def motor_ids(self) -> Sequence[int]:
        return self.manipulator.motor_ids

    async def _send(self, msg: CanMessage) -> None:
        await self.bridge.send_frame(msg)

    async def _write_parameter(
        self, motor_id: int, index: int, value: float, label: str
    ) -> None:
        self.manipulator.require(motor_id)
        msg = build_write_frame(
            self.interface, motor_id, const.CMD_WRITE_PARAMETER, index, value=value
        )
        try:
            await self._send(msg)
        except TransportError as e:
            raise TransportError(
                f"Failed to set {label} of motor {motor_id}: {e.message}",
                status_code=e.status_code,
                motor_id=motor_id,
            ) from e
        logger.info(f"Motor {motor_id} on {self.interface}: {label} set to {value:.4f}")

    async def _fan_out(self, operation: str, coros: Iterable[Awaitable[Any]]) -> None:
        """
        Runs one coroutine per motor concurrently and waits for all of them.

        The first failure observed is raised once every task has finished.
        Siblings that already reached the bus are neither retried nor undone.
        """
        tasks = [asyncio.ensure_future(coro) for coro in coros]
        first_error: Optional[BaseException] = None
        for next_done in asyncio.as_completed(tasks):
            try:
                await next_done
            except Exception as e:  # pylint: disable=broad-except
                logger.error(f"{operation} on {self.interface}: {e}")
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    # --- Single joint operations ---
    async def set_angle(self, motor_id: int, angle: float) -> None:
        await self._write_parameter(
            motor_id, const.RegisterIndex.TARGET_ANGLE, angle, "angle"
        )

    async def set_speed(self, motor_id: int, speed: float) -> None:
        await self._write_parameter(motor_id, const.INDEX_SPEED_LIMIT, speed, "speed")

    async def set_position_kp(self, motor_id: int, kp: float) -> None:
        await self._write_parameter(
            motor_id, const.RegisterIndex.POSITION_KP, kp, "position Kp"
        )

    async def set_velocity_kp(self, motor_id: int, kp: float) -> None:
        await self._write_parameter(
            motor_id, const.RegisterIndex.VELOCITY_KP, kp, "velocity Kp"
        )

    async def set_velocity_ki(self, motor_id: int, ki: float) -> None:
        await self._write_parameter(
            motor_id, const.RegisterIndex.VELOCITY_KI, ki, "velocity Ki"
        )

    async def set_velocity_filter_gain(self, motor_id: int, gain: float) -> None:
        await self._write_parameter(
            motor_id,
            const.RegisterIndex.VELOCITY_FILTER_GAIN,
            gain,
            "velocity filter gain",
        )

    # --- Enable / disable ---
    async def _enable_motor(self, motor_id: int) -> None:
        set_mode = build_write_frame(
            self.interface,
            motor_id,
            const.CMD_WRITE_PARAMETER,
            const.INDEX_RUN_MODE,
            raw_value=const.RUN_MODE_POSITION_PROFILE,
        )
        enable = build_write_frame(
            self.interface, motor_id, const.CMD_ENABLE, const.FLAG_NONE
        )
        try:
            await self._send(set_mode)
        except TransportError as e:
            raise TransportError(
                f"Failed to set position profile mode: {e.message}",
                status_code=e.status_code,
                motor_id=motor_id,
            ) from e
        try:
            await self._send(enable)
        except TransportError as e:
            raise TransportError(
                f"Failed to enable drive: {e.message}",
                status_code=e.status_code,
                motor_id=motor_id,
            ) from e
        logger.info(f"Motor {motor_id} on {self.interface} enabled.")

    async def enable(self, motor_id: Optional[int] = None) -> None:
        """
        Enables one motor, or every motor when `motor_id` is None.

        Each motor gets two ordered frames: position profile run mode, then
        drive enable. Motors are enabled concurrently.

        Raises:
            AddressError: if `motor_id` is not part of the manipulator.
            TransportError: if a single motor fails to enable.
            MultiMotorError: if one or more motors fail while enabling all.
        """
        if motor_id is not None:
            self.manipulator.require(motor_id)
            await self._enable_motor(motor_id)
            return

        logger.info(f"Enabling all motors on {self.interface}...")
        results = await asyncio.gather(
            *(self._enable_motor(m) for m in self.motor_ids), return_exceptions=True
        )
        errors_found = {
            m: res
            for m, res in zip(self.motor_ids, results)
            if isinstance(res, Exception)
        }
        if errors_found:
            raise MultiMotorError(
                f"Failed to enable one or more motors on {self.interface}.",
                individual_errors=errors_found,
            )

    async def disable(self) -> None:
        logger.info(f"Disabling all motors on {self.interface}...")
        await self._fan_out(
            "disable",
            (
                self._send(
                    build_write_frame(self.interface, m, const.CMD_DISABLE, const.FLAG_NONE)
                )
                for m in self.motor_ids
            ),
        )

    async def clear_fault(self) -> None:
        logger.info(f"Clearing faults on {self.interface}...")
        await self._fan_out(
            "clear_fault",
            (
                self._send(
                    build_write_frame(
                        self.interface, m, const.CMD_DISABLE, const.FLAG_CLEAR_FAULT
                    )
                )
                for m in self.motor_ids
            ),
        )

    async def set_zero(self, motor_ids: Optional[Iterable[int]] = None) -> List[int]:
        """
        Stores the current position of the given motors as their zero.

        Args:
            motor_ids: Subset of motors; empty or None means every motor.
                       Addresses outside the manipulator are skipped with a warning.

        Returns:
            The motor IDs a zero frame was sent to.
        """
        requested = list(motor_ids or [])
        if not requested:
            targets = list(self.motor_ids)
        else:
            targets = []
            for motor_id in requested:
                if motor_id not in self.manipulator:
                    logger.warning(
                        f"Motor {motor_id} is not on {self.interface}, skipping set zero."
                    )
                    continue
                targets.append(motor_id)

        await self._fan_out(
            "set_zero",
            (
                self._send(
                    build_write_frame(self.interface, m, const.CMD_SET_ZERO, const.FLAG_SET_ZERO)
                )
                for m in targets
            ),
        )
        logger.info(f"Zero set on {self.interface} for motors {targets}.")
        return targets

    # --- Whole manipulator motion ---
    async def set_all_angles(self, angles: Sequence[float]) -> None:
        """
        Sends one target angle per joint, in joint order, concurrently.

        Raises:
            EncodingError: if the number of angles differs from the joint count;
                           nothing is sent in that case.
            ArmBridgeError: the first per-joint failure, after all sends finished.
        """
        if len(angles) != self.manipulator.joint_count:
            raise EncodingError(
                f"Got {len(angles)} angles for {self.manipulator.joint_count} joints "
                f"on {self.interface}."
            )
        logger.info(f"Setting all angles on {self.interface}: {list(angles)}")
        await self._fan_out(
            "set_all_angles",
            (self.set_angle(m, a) for m, a in zip(self.motor_ids, angles)),
        )

    async def set_speeds(self, speeds: Sequence[float]) -> None:
        if len(speeds) != self.manipulator.joint_count:
            raise EncodingError(
                f"Got {len(speeds)} speeds for {self.manipulator.joint_count} joints "
                f"on {self.interface}."
            )
        for motor_id, speed in zip(self.motor_ids, speeds):
            await self.set_speed(motor_id, speed)

    async def return_zero(self) -> None:
        await self.set_all_angles([0.0] * self.manipulator.joint_count)

    # --- Named operations ---
    async def execute(self, action: str, **params: Any) -> OperationResult:
        """
        Runs a named operation and reports a structured result.

        Supported actions: enable, disable, set_zero, return_zero, clean_error,
        set_angle, set_speed, set_loc_kp, set_speed_kp, set_speed_ki,
        set_filt_gain (all take `joint_id` and `value`), set_all_angles
        (takes `angles`).
        """
        single_joint = {
            "set_angle": (self.set_angle, "set angle"),
            "set_speed": (self.set_speed, "set speed"),
            "set_loc_kp": (self.set_position_kp, "set position Kp"),
            "set_speed_kp": (self.set_velocity_kp, "set velocity Kp"),
            "set_speed_ki": (self.set_velocity_ki, "set velocity Ki"),
            "set_filt_gain": (self.set_velocity_filter_gain, "set velocity filter gain"),
        }
        data = None
        try:
            if action in single_joint:
                operation, label = single_joint[action]
                await operation(int(params["joint_id"]), float(params["value"]))
            elif action == "enable":
                label = "enable"
                joint_id = params.get("joint_id")
                await self.enable(int(joint_id) if joint_id is not None else None)
            elif action == "disable":
                label = "disable"
                await self.disable()
            elif action == "set_zero":
                label = "set zero"
                data = {"motor_ids": await self.set_zero(params.get("motor_ids"))}
            elif action == "return_zero":
                label = "return to zero"
                await self.return_zero()
            elif action == "clean_error":
                label = "clear faults"
                await self.clear_fault()
            elif action == "set_all_angles":
                label = "set all angles"
                await self.set_all_angles([float(a) for a in params["angles"]])
            else:
                logger.warning(f"Unsupported action '{action}' on {self.interface}.")
                return OperationResult(False, f"Unsupported action: {action}")
        except KeyError as e:
            return OperationResult(False, f"Missing parameter {e} for action '{action}'")
        except (TypeError, ValueError) as e:
            return OperationResult(False, f"Invalid parameter for action '{action}': {e}")
        except ArmBridgeError as e:
            logger.error(f"Action '{action}' on {self.interface} failed: {e}")
            return OperationResult(False, f"Failed to {label}: {e}")
        return OperationResult(True, f"{label.capitalize()} succeeded", data)
