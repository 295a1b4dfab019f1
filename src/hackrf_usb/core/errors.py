"""
Exception hierarchy for the HackRF driver.

Validation errors derive from ValueError so callers that already catch
bad-argument errors keep working. Everything else derives from HackRFError.
"""


class HackRFError(Exception):
    """Base class for all driver errors."""

    pass


class ConfigValidationError(HackRFError, ValueError):
    """Raised when driver configuration values are invalid."""

    pass


class ParameterRangeError(HackRFError, ValueError):
    """Raised when an RF parameter is outside the device's supported range."""

    pass


class InvalidStateTransitionError(HackRFError):
    """Raised when the shared device state is asked for an illegal transition."""

    pass


class TransportError(HackRFError):
    """USB transport failure."""

    pass


class TransientUsbError(TransportError):
    """A USB failure that is expected to clear up on retry."""

    pass


class DeviceNotFoundError(TransportError):
    """No matching USB device could be located."""

    pass


class DeviceDisconnectedError(TransportError):
    """The device vanished and could not be rebound."""

    pass


class DriverResetRequiredError(TransportError):
    """
    Repeated control transfer failures during a critical operation.

    The firmware must be reset through the HackRF driver-level reset
    (hackrf_reset / the board's reset button), not a generic USB port reset,
    which can leave the firmware in a corrupted state.
    """

    pass


class DeviceClosingError(HackRFError):
    """Operation refused because the device is closing or closed."""

    pass


class DeviceNotOpenError(HackRFError):
    """Operation requires an open device."""

    pass


class NotConfiguredError(HackRFError):
    """Streaming was requested before the sample rate was configured."""

    pass


class StreamStartError(HackRFError):
    """Receive mode could not be entered, even after a hardware reset."""

    pass


class StreamRecoveryError(HackRFError):
    """The stream stalled and automatic recovery failed."""

    pass
