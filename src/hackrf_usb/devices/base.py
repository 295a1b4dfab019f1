"""
Base SDR device abstraction layer.

Device-independent descriptions (identity, capabilities, RF limits) and the
abstract receive-device surface the HackRF driver implements.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, List, Optional


class DeviceCapability(Enum):
    """SDR device capabilities."""

    RX = auto()  # Receive capability
    TX = auto()  # Transmit capability
    HALF_DUPLEX = auto()  # TX or RX, not both
    EXT_CLOCK = auto()  # External clock reference
    RF_AMP = auto()  # Switchable front-end amplifier


@dataclass
class DeviceInfo:
    """SDR device information."""

    name: str
    serial: str
    manufacturer: str
    product: str
    vendor_id: int = 0
    product_id: int = 0
    capabilities: List[DeviceCapability] = field(default_factory=list)


@dataclass
class DeviceSpec:
    """SDR device RF limits."""

    freq_min: float  # Minimum frequency in Hz
    freq_max: float  # Maximum frequency in Hz
    sample_rate_min: float  # Minimum sample rate in Hz
    sample_rate_max: float  # Maximum sample rate in Hz
    bandwidth_min: float  # Minimum baseband filter bandwidth in Hz
    bandwidth_max: float  # Maximum baseband filter bandwidth in Hz
    adc_bits: int  # ADC resolution in bits
    lna_gain_max: int  # Maximum LNA gain in dB
    lna_gain_step: int  # LNA gain granularity in dB


class SDRDevice(ABC):
    """
    Abstract base class for receive-capable SDR devices.

    Setters raise on failure rather than returning status flags.
    """

    def __init__(self):
        self._info: Optional[DeviceInfo] = None
        self._spec: Optional[DeviceSpec] = None

    @property
    def info(self) -> Optional[DeviceInfo]:
        """Get device information."""
        return self._info

    @property
    def spec(self) -> Optional[DeviceSpec]:
        """Get device specifications."""
        return self._spec

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Check if device is open."""
        pass

    @abstractmethod
    def open(self) -> None:
        """Open the SDR device."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the SDR device and release resources."""
        pass

    @abstractmethod
    def set_frequency(self, freq_hz: float) -> None:
        """
        Set the center frequency.

        Args:
            freq_hz: Center frequency in Hz
        """
        pass

    @abstractmethod
    def set_sample_rate(self, rate_hz: float) -> None:
        """
        Set the sample rate.

        Args:
            rate_hz: Sample rate in Hz
        """
        pass

    @abstractmethod
    def set_bandwidth(self, bw_hz: float) -> None:
        """
        Set the baseband filter bandwidth.

        Args:
            bw_hz: Bandwidth in Hz
        """
        pass

    @abstractmethod
    def receive(self, callback: Optional[Callable[[bytes], None]] = None) -> None:
        """
        Stream samples until stopped, calling callback once per buffer.

        Args:
            callback: Called synchronously with each raw buffer; must not block
        """
        pass

    @abstractmethod
    def stop_rx(self) -> None:
        """Stop receiving samples."""
        pass

    def has_capability(self, cap: DeviceCapability) -> bool:
        """Check if device has a specific capability."""
        if self._info is None:
            return False
        return cap in self._info.capabilities

    def __enter__(self):
        """Context manager entry."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False

    def __repr__(self) -> str:
        if self._info:
            return f"<{self.__class__.__name__} {self._info.name} ({self._info.serial})>"
        return f"<{self.__class__.__name__} (not opened)>"
