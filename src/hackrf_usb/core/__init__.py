"""
Core module - configuration, state, protocol and retry primitives.

The USB-bound components (transport, parameters, recovery, stream) import the
devices package and are imported from their own modules.
"""

from .config import DriverConfig
from .errors import (
    ConfigValidationError,
    DeviceClosingError,
    DeviceDisconnectedError,
    DeviceNotFoundError,
    DeviceNotOpenError,
    DriverResetRequiredError,
    HackRFError,
    InvalidStateTransitionError,
    NotConfiguredError,
    ParameterRangeError,
    StreamRecoveryError,
    StreamStartError,
    TransientUsbError,
    TransportError,
)
from .memory import MemoryInfo, MemoryManager
from .protocol import TransceiverMode, VendorRequest
from .retry import RetryExecutor, RetryPolicy, is_transient_error
from .session import CancellationToken, StreamController, StreamSession
from .state import DeviceState, StateHandle

__all__ = [
    "DriverConfig",
    # Errors
    "HackRFError",
    "ConfigValidationError",
    "ParameterRangeError",
    "InvalidStateTransitionError",
    "TransportError",
    "TransientUsbError",
    "DeviceNotFoundError",
    "DeviceDisconnectedError",
    "DriverResetRequiredError",
    "DeviceClosingError",
    "DeviceNotOpenError",
    "NotConfiguredError",
    "StreamStartError",
    "StreamRecoveryError",
    # State
    "DeviceState",
    "StateHandle",
    # Protocol
    "VendorRequest",
    "TransceiverMode",
    # Retry
    "RetryPolicy",
    "RetryExecutor",
    "is_transient_error",
    # Streaming
    "CancellationToken",
    "StreamSession",
    "StreamController",
    "MemoryManager",
    "MemoryInfo",
]
