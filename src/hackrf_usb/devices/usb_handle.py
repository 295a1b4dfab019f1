"""
USB handle abstraction.

The transport talks to hardware only through UsbHandle, a binding-independent
set of primitives (open/close, configuration, interface claim, control and
bulk transfers, reset, descriptor introspection). PyUsbHandle implements it
on top of pyusb/libusb.
"""

import errno
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

import usb.core
import usb.util

from ..core.errors import DeviceNotFoundError
from ..core.protocol import HACKRF_PRODUCT_IDS, HACKRF_VENDOR_ID

logger = logging.getLogger(__name__)

RECIPIENT_DEVICE = "device"
RECIPIENT_INTERFACE = "interface"


@dataclass
class EndpointInfo:
    """Endpoint descriptor view."""

    number: int
    direction: str  # "in" or "out"
    transfer_type: str  # "control", "isochronous", "bulk", "interrupt"

    @property
    def is_bulk_in(self) -> bool:
        return self.transfer_type == "bulk" and self.direction == "in"


@dataclass
class AlternateInfo:
    """One alternate setting of an interface."""

    interface_number: int
    alternate_setting: int
    endpoints: List[EndpointInfo] = field(default_factory=list)

    def bulk_in_endpoint(self) -> Optional[EndpointInfo]:
        for endpoint in self.endpoints:
            if endpoint.is_bulk_in:
                return endpoint
        return None


@dataclass
class ConfigurationInfo:
    """Active configuration: every interface/alternate pair it exposes."""

    value: int
    alternates: List[AlternateInfo] = field(default_factory=list)


class UsbHandle(ABC):
    """Binding-independent USB device handle."""

    @property
    @abstractmethod
    def opened(self) -> bool:
        """Whether the handle is open."""
        pass

    @property
    @abstractmethod
    def vendor_id(self) -> int:
        pass

    @property
    @abstractmethod
    def product_id(self) -> int:
        pass

    @property
    @abstractmethod
    def serial_number(self) -> Optional[str]:
        pass

    @abstractmethod
    def open(self) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @abstractmethod
    def active_configuration(self) -> Optional[ConfigurationInfo]:
        """Active configuration, or None if the device is unconfigured."""
        pass

    @abstractmethod
    def configuration_values(self) -> List[int]:
        """bConfigurationValue of every configuration the device offers."""
        pass

    @abstractmethod
    def select_configuration(self, value: int) -> None:
        pass

    @abstractmethod
    def claim_interface(self, interface_number: int) -> None:
        pass

    @abstractmethod
    def release_interface(self, interface_number: int) -> None:
        pass

    @abstractmethod
    def select_alternate_interface(
        self, interface_number: int, alternate_setting: int
    ) -> None:
        pass

    @abstractmethod
    def control_transfer_out(
        self,
        recipient: str,
        request: int,
        value: int,
        index: int,
        data: Optional[bytes] = None,
    ) -> int:
        """Vendor OUT control transfer. Returns bytes written."""
        pass

    @abstractmethod
    def control_transfer_in(
        self, recipient: str, request: int, value: int, index: int, length: int
    ) -> bytes:
        """Vendor IN control transfer."""
        pass

    @abstractmethod
    def bulk_transfer_in(self, endpoint_number: int, length: int) -> bytes:
        """Bulk IN transfer. Blocks until data arrives."""
        pass

    @abstractmethod
    def reset(self) -> None:
        """USB port-level reset."""
        pass


_TRANSFER_TYPES = {
    usb.util.ENDPOINT_TYPE_CTRL: "control",
    usb.util.ENDPOINT_TYPE_ISO: "isochronous",
    usb.util.ENDPOINT_TYPE_BULK: "bulk",
    usb.util.ENDPOINT_TYPE_INTR: "interrupt",
}

_RECIPIENTS = {
    RECIPIENT_DEVICE: usb.util.CTRL_RECIPIENT_DEVICE,
    RECIPIENT_INTERFACE: usb.util.CTRL_RECIPIENT_INTERFACE,
}


class PyUsbHandle(UsbHandle):
    """UsbHandle backed by a pyusb Device."""

    def __init__(self, device: usb.core.Device, timeout_ms: int = 1000):
        self._device = device
        self._timeout_ms = timeout_ms
        self._opened = False
        self._serial: Optional[str] = None

    @classmethod
    def find_all(
        cls,
        vendor_id: int = HACKRF_VENDOR_ID,
        product_ids=HACKRF_PRODUCT_IDS,
        timeout_ms: int = 1000,
    ) -> List["PyUsbHandle"]:
        """Enumerate attached devices matching vendor and product ids."""
        found = usb.core.find(
            find_all=True,
            custom_match=lambda d: d.idVendor == vendor_id
            and d.idProduct in product_ids,
        )
        return [cls(device, timeout_ms) for device in found or []]

    @classmethod
    def find(cls, serial: Optional[str] = None, timeout_ms: int = 1000) -> "PyUsbHandle":
        """
        Locate a HackRF.

        Args:
            serial: Optional serial number to match
            timeout_ms: Control transfer timeout for the handle

        Raises:
            DeviceNotFoundError: If no matching device is attached
        """
        for handle in cls.find_all(timeout_ms=timeout_ms):
            if serial is None or handle.serial_number == serial:
                return handle
        raise DeviceNotFoundError(
            "No HackRF device found"
            + (f" with serial {serial}" if serial else "")
        )

    @property
    def opened(self) -> bool:
        return self._opened

    @property
    def vendor_id(self) -> int:
        return self._device.idVendor

    @property
    def product_id(self) -> int:
        return self._device.idProduct

    @property
    def serial_number(self) -> Optional[str]:
        if self._serial is None and self._device.iSerialNumber:
            try:
                self._serial = usb.util.get_string(
                    self._device, self._device.iSerialNumber
                )
            except (usb.core.USBError, ValueError) as e:
                logger.debug(f"Could not read serial number: {e}")
        return self._serial

    def open(self) -> None:
        # libusb opens lazily; touching the active configuration forces it and
        # surfaces ENODEV for a stale handle.
        try:
            self._device.get_active_configuration()
        except usb.core.USBError as e:
            if e.errno in (errno.ENODEV, errno.ENOENT):
                raise
            # Unconfigured devices raise here too; that is handled later
        try:
            if self._device.is_kernel_driver_active(0):
                self._device.detach_kernel_driver(0)
        except (usb.core.USBError, NotImplementedError):
            pass
        self._opened = True

    def close(self) -> None:
        self._opened = False
        usb.util.dispose_resources(self._device)

    def active_configuration(self) -> Optional[ConfigurationInfo]:
        try:
            cfg = self._device.get_active_configuration()
        except usb.core.USBError:
            return None
        if cfg is None:
            return None
        alternates = []
        for intf in cfg:
            endpoints = []
            for ep in intf:
                address = ep.bEndpointAddress
                direction = (
                    "in"
                    if usb.util.endpoint_direction(address) == usb.util.ENDPOINT_IN
                    else "out"
                )
                endpoints.append(
                    EndpointInfo(
                        number=address & 0x0F,
                        direction=direction,
                        transfer_type=_TRANSFER_TYPES[
                            usb.util.endpoint_type(ep.bmAttributes)
                        ],
                    )
                )
            alternates.append(
                AlternateInfo(
                    interface_number=intf.bInterfaceNumber,
                    alternate_setting=intf.bAlternateSetting,
                    endpoints=endpoints,
                )
            )
        return ConfigurationInfo(value=cfg.bConfigurationValue, alternates=alternates)

    def configuration_values(self) -> List[int]:
        return [cfg.bConfigurationValue for cfg in self._device]

    def select_configuration(self, value: int) -> None:
        self._device.set_configuration(value)

    def claim_interface(self, interface_number: int) -> None:
        usb.util.claim_interface(self._device, interface_number)

    def release_interface(self, interface_number: int) -> None:
        usb.util.release_interface(self._device, interface_number)

    def select_alternate_interface(
        self, interface_number: int, alternate_setting: int
    ) -> None:
        self._device.set_interface_altsetting(
            interface=interface_number, alternate_setting=alternate_setting
        )

    def control_transfer_out(
        self,
        recipient: str,
        request: int,
        value: int,
        index: int,
        data: Optional[bytes] = None,
    ) -> int:
        request_type = usb.util.build_request_type(
            usb.util.CTRL_OUT, usb.util.CTRL_TYPE_VENDOR, _RECIPIENTS[recipient]
        )
        return self._device.ctrl_transfer(
            request_type, request, value, index, data, timeout=self._timeout_ms
        )

    def control_transfer_in(
        self, recipient: str, request: int, value: int, index: int, length: int
    ) -> bytes:
        request_type = usb.util.build_request_type(
            usb.util.CTRL_IN, usb.util.CTRL_TYPE_VENDOR, _RECIPIENTS[recipient]
        )
        result = self._device.ctrl_transfer(
            request_type, request, value, index, length, timeout=self._timeout_ms
        )
        return bytes(result)

    def bulk_transfer_in(self, endpoint_number: int, length: int) -> bytes:
        # timeout=0 is unlimited in libusb; callers race it against a timer.
        # Disposing the device while this read is pending fails it in place.
        data = self._device.read(usb.util.ENDPOINT_IN | endpoint_number, length, timeout=0)
        return bytes(data)

    def reset(self) -> None:
        self._device.reset()

    def __repr__(self) -> str:
        return (
            f"<PyUsbHandle {self.vendor_id:04x}:{self.product_id:04x} "
            f"{'open' if self._opened else 'closed'}>"
        )
