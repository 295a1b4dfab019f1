"""
Device drivers - USB handle abstraction and the HackRF One driver.
"""

from .base import DeviceCapability, DeviceInfo, DeviceSpec, SDRDevice
from .usb_handle import (
    AlternateInfo,
    ConfigurationInfo,
    EndpointInfo,
    PyUsbHandle,
    UsbHandle,
)
from .hackrf import HACKRF_SPEC, ConfigurationStatus, HackRFOne

__all__ = [
    "SDRDevice",
    "DeviceCapability",
    "DeviceInfo",
    "DeviceSpec",
    "UsbHandle",
    "PyUsbHandle",
    "EndpointInfo",
    "AlternateInfo",
    "ConfigurationInfo",
    "HackRFOne",
    "HACKRF_SPEC",
    "ConfigurationStatus",
]
