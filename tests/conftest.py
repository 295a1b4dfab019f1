"""Shared fixtures: a scriptable in-memory USB handle and fast timings."""

from collections import deque
from threading import Event, Lock
from typing import Dict, List, NamedTuple, Optional
from unittest.mock import Mock

import pytest
import usb.core

from hackrf_usb.core.config import DriverConfig
from hackrf_usb.core.protocol import HACKRF_ONE_PRODUCT_ID, HACKRF_VENDOR_ID, VendorRequest
from hackrf_usb.devices.hackrf import HackRFOne
from hackrf_usb.devices.usb_handle import (
    AlternateInfo,
    ConfigurationInfo,
    EndpointInfo,
    UsbHandle,
)

# Bulk script item: block until released, so the transfer loses its race
STALL = object()


class ControlCall(NamedTuple):
    recipient: str
    request: int
    value: int
    index: int
    data: Optional[bytes]


def hackrf_configuration() -> ConfigurationInfo:
    return ConfigurationInfo(
        value=1,
        alternates=[
            AlternateInfo(
                interface_number=0,
                alternate_setting=0,
                endpoints=[
                    EndpointInfo(number=1, direction="in", transfer_type="bulk"),
                    EndpointInfo(number=2, direction="out", transfer_type="bulk"),
                ],
            )
        ],
    )


class MockUsbHandle(UsbHandle):
    """In-memory HackRF handle with scriptable failures and bulk data."""

    def __init__(
        self,
        vendor_id: int = HACKRF_VENDOR_ID,
        product_id: int = HACKRF_ONE_PRODUCT_ID,
        serial: Optional[str] = "0000000000000000457863c8234e925f",
    ):
        self._vendor_id = vendor_id
        self._product_id = product_id
        self._serial = serial
        self._opened = False
        self._lock = Lock()
        self._unblock = Event()

        self.configuration = hackrf_configuration()
        self.configured = True
        self.claimed = set()
        self.alt_settings: Dict[int, int] = {}

        self.control_out_calls: List[ControlCall] = []
        self.control_in_calls: List[ControlCall] = []
        self.control_out_failures: Dict[int, List[Exception]] = {}
        self.control_in_failures: Dict[int, List[Exception]] = {}
        self.lna_reply = b"\x01"

        self.open_errors: List[Exception] = []
        self.claim_errors: List[Exception] = []
        self.release_errors: List[Exception] = []
        self.bulk_script = deque()

        self.open_count = 0
        self.close_count = 0
        self.reset_count = 0
        self.claim_count = 0

    # Test helpers

    def fail_control_out(self, request: int, error: Exception, times: int = 1) -> None:
        self.control_out_failures.setdefault(int(request), []).extend([error] * times)

    def requests(self, request: int) -> List[ControlCall]:
        return [c for c in self.control_out_calls if c.request == int(request)]

    def out_requests(self) -> List[int]:
        return [c.request for c in self.control_out_calls]

    def release_blocked(self) -> None:
        self._unblock.set()

    # UsbHandle

    @property
    def opened(self) -> bool:
        return self._opened

    @property
    def vendor_id(self) -> int:
        return self._vendor_id

    @property
    def product_id(self) -> int:
        return self._product_id

    @property
    def serial_number(self) -> Optional[str]:
        return self._serial

    def open(self) -> None:
        if self.open_errors:
            raise self.open_errors.pop(0)
        self._opened = True
        self.open_count += 1

    def close(self) -> None:
        self._opened = False
        self.claimed.clear()
        self.close_count += 1

    def active_configuration(self) -> Optional[ConfigurationInfo]:
        return self.configuration if self.configured else None

    def configuration_values(self) -> List[int]:
        return [self.configuration.value]

    def select_configuration(self, value: int) -> None:
        self.configured = True

    def claim_interface(self, interface_number: int) -> None:
        if self.claim_errors:
            raise self.claim_errors.pop(0)
        self.claimed.add(interface_number)
        self.claim_count += 1

    def release_interface(self, interface_number: int) -> None:
        if self.release_errors:
            raise self.release_errors.pop(0)
        self.claimed.discard(interface_number)

    def select_alternate_interface(self, interface_number: int, alternate_setting: int) -> None:
        self.alt_settings[interface_number] = alternate_setting

    def control_transfer_out(self, recipient, request, value, index, data=None) -> int:
        with self._lock:
            self.control_out_calls.append(ControlCall(recipient, request, value, index, data))
            failures = self.control_out_failures.get(request)
            if failures:
                raise failures.pop(0)
        return len(data or b"")

    def control_transfer_in(self, recipient, request, value, index, length) -> bytes:
        with self._lock:
            self.control_in_calls.append(ControlCall(recipient, request, value, index, None))
            failures = self.control_in_failures.get(request)
            if failures:
                raise failures.pop(0)
        if request == VendorRequest.SET_LNA_GAIN:
            return self.lna_reply
        return bytes(length)

    def bulk_transfer_in(self, endpoint_number: int, length: int) -> bytes:
        with self._lock:
            item = self.bulk_script.popleft() if self.bulk_script else None
        if item is None:
            raise usb.core.USBError("Bulk script exhausted")
        if item is STALL:
            self._unblock.wait()
            raise usb.core.USBError("Transfer abandoned")
        if isinstance(item, Exception):
            raise item
        return item

    def reset(self) -> None:
        self.reset_count += 1


@pytest.fixture
def handle():
    """Scriptable USB handle; releases stalled transfer threads afterwards."""
    mock_handle = MockUsbHandle()
    yield mock_handle
    mock_handle.release_blocked()


@pytest.fixture
def sleep():
    """Sleep replacement that records requested delays."""
    return Mock()


@pytest.fixture
def config():
    """Default timings with a short bulk transfer timeout."""
    return DriverConfig(transfer_timeout=0.05)


@pytest.fixture
def device(handle, config, sleep):
    """HackRFOne over the mock handle, not yet opened."""
    sdr = HackRFOne(handle, config, sleep=sleep)
    yield sdr
    sdr.stop_rx()


@pytest.fixture
def opened_device(device):
    """HackRFOne that has been opened."""
    device.open()
    return device
