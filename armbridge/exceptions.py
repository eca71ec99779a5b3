# armbridge/armbridge/exceptions.py
"""
Custom exceptions for the armbridge library.
"""


class ArmBridgeError(Exception):
    """Base exception class for all armbridge errors."""
    def __init__(self, message, *args, motor_id=None, **kwargs):
        super().__init__(message, *args)
        self.message = message
        self.motor_id = motor_id

    def __str__(self):
        base_message = super().__str__()
        if self.motor_id is not None:
            return f"{base_message} (Motor ID: {self.motor_id})"
        return base_message


class AddressError(ArmBridgeError):
    """Motor address does not belong to the target manipulator."""


class EncodingError(ArmBridgeError):
    """Payload or arity mismatch detected before anything reaches the bus."""


class TransportError(ArmBridgeError):
    """Sending to or polling the CAN bridge failed."""

    def __init__(self, message, status_code=None, motor_id=None):
        super().__init__(message, motor_id=motor_id)
        self.status_code = status_code

    def __str__(self):
        base_msg = super().__str__()
        if self.status_code is not None:
            return f"{base_msg} [HTTP {self.status_code}]"
        return base_msg


class ReadTimeoutError(ArmBridgeError):
    """A register read did not settle within its time budget."""


class ConfigMismatchError(ArmBridgeError):
    """A merge or transform is missing required side data."""


class ConfigurationError(ArmBridgeError):
    """Errors related to manipulator or library configuration."""


class MultiMotorError(ArmBridgeError):
    """One or more motors failed during a group operation."""

    def __init__(self, message, individual_errors=None):
        super().__init__(message)
        self.individual_errors = individual_errors or {}

    def __str__(self):
        base_msg = super().__str__()
        if self.individual_errors:
            err_details = "; ".join(
                f"Motor {motor_id}: {err}"
                for motor_id, err in self.individual_errors.items()
            )
            return f"{base_msg} - Individual Errors: [{err_details}]"
        return base_msg
