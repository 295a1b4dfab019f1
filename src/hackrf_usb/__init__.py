"""
hackrf_usb - HackRF One USB control and streaming driver

Opens the board over USB, programs its RF parameters (frequency, sample
rate, baseband bandwidth, LNA gain, RF amplifier) and runs a continuous
receive loop that survives USB stalls, transient transfer failures and
unclean prior shutdowns.

Supported Hardware:
    - HackRF One (1d50:6089)
    - HackRF Jawbreaker (1d50:604b)
    - rad1o (1d50:cc15)

Example:
    with HackRFOne.find() as sdr:
        sdr.set_sample_rate(20e6)
        sdr.set_frequency(915e6)
        sdr.start_rx(callback)
"""

__version__ = "0.1.0"

from .core import (
    DeviceState,
    DriverConfig,
    HackRFError,
    NotConfiguredError,
    ParameterRangeError,
    StreamRecoveryError,
    TransportError,
)
from .devices import (
    HACKRF_SPEC,
    ConfigurationStatus,
    DeviceInfo,
    HackRFOne,
    PyUsbHandle,
    UsbHandle,
)

__all__ = [
    "HackRFOne",
    "HACKRF_SPEC",
    "ConfigurationStatus",
    "DeviceInfo",
    "DriverConfig",
    "DeviceState",
    "UsbHandle",
    "PyUsbHandle",
    # Errors
    "HackRFError",
    "NotConfiguredError",
    "ParameterRangeError",
    "StreamRecoveryError",
    "TransportError",
]
