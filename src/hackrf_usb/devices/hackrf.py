"""
HackRF One device driver.

Provides interface for HackRF One from Great Scott Gadgets.
Specifications:
    - Frequency: 1 MHz - 6 GHz
    - Sample Rate: 2-20 MS/s
    - Baseband filter: 1.75-28 MHz
    - LNA gain: 0-40 dB in 8 dB steps
    - ADC/DAC: 8-bit (MAX5864)
    - Half-duplex TX/RX

The driver talks to the board directly over USB vendor requests. The
HackRFOne class composes the transport, parameter store, recovery and
stream loop around one shared device state.
"""

import logging
import time
from dataclasses import dataclass
from threading import Thread, current_thread
from typing import Callable, Iterable, List, Optional

from ..core.config import DriverConfig
from ..core.memory import MemoryInfo, MemoryManager
from ..core.parameters import ParameterStore, StreamStatusProvider
from ..core.protocol import (
    HACKRF_ONE_PRODUCT_ID,
    JAWBREAKER_PRODUCT_ID,
    RAD1O_PRODUCT_ID,
)
from ..core.recovery import ErrorRecord, Recovery
from ..core.state import DeviceState, StateHandle
from ..core.stream import SampleCallback, StreamLoop, StreamValidation
from ..core.transport import Transport
from ..utils.conversions import freq_to_str
from ..utils.iq import bytes_to_complex
from .base import DeviceCapability, DeviceInfo, DeviceSpec, SDRDevice
from .usb_handle import PyUsbHandle, UsbHandle

logger = logging.getLogger(__name__)

# HackRF One datasheet limits
HACKRF_SPEC = DeviceSpec(
    freq_min=1e6,  # 1 MHz
    freq_max=6e9,  # 6 GHz
    sample_rate_min=2e6,  # 2 MS/s
    sample_rate_max=20e6,  # 20 MS/s
    bandwidth_min=1.75e6,  # MAX2837 narrowest filter
    bandwidth_max=28e6,  # MAX2837 widest filter
    adc_bits=8,
    lna_gain_max=40,
    lna_gain_step=8,
)

PRODUCT_NAMES = {
    HACKRF_ONE_PRODUCT_ID: "HackRF One",
    JAWBREAKER_PRODUCT_ID: "HackRF Jawbreaker",
    RAD1O_PRODUCT_ID: "rad1o",
}

HACKRF_CAPABILITIES = [
    DeviceCapability.RX,
    DeviceCapability.TX,
    DeviceCapability.HALF_DUPLEX,
    DeviceCapability.EXT_CLOCK,
    DeviceCapability.RF_AMP,
]


def _describe(handle: UsbHandle) -> DeviceInfo:
    product = PRODUCT_NAMES.get(handle.product_id, "HackRF")
    return DeviceInfo(
        name=product,
        serial=handle.serial_number or "unknown",
        manufacturer="Great Scott Gadgets",
        product=product,
        vendor_id=handle.vendor_id,
        product_id=handle.product_id,
        capabilities=list(HACKRF_CAPABILITIES),
    )


@dataclass
class ConfigurationStatus:
    """Snapshot of device and parameter state."""

    is_open: bool
    is_streaming: bool
    is_closing: bool
    sample_rate: Optional[int]
    frequency: Optional[int]
    bandwidth: Optional[int]
    lna_gain: Optional[int]
    amp_enabled: bool
    is_configured: bool


class HackRFOne(SDRDevice, StreamStatusProvider):
    """
    HackRF One device driver.

    receive() blocks the calling thread; start_rx() runs it on a background
    thread. Parameter setters may be called while streaming: a retune stops
    the stream loop first.

    Args:
        handle: USB handle for the board
        config: Timing and retry settings
        device_finder: Returns attached candidate handles, used to rebind
            after the board re-enumerates
        sleep: Sleep function for settle delays and backoff
    """

    def __init__(
        self,
        handle: UsbHandle,
        config: Optional[DriverConfig] = None,
        device_finder: Optional[Callable[[], Iterable[UsbHandle]]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__()
        self._config = config or DriverConfig()
        self._spec = HACKRF_SPEC
        self._state = StateHandle()
        self._transport = Transport(
            handle, self._state, self._config, device_finder, sleep
        )
        self._params = ParameterStore(
            self._transport,
            self._state,
            self._spec,
            stream_status=self,
            reset_hook=self._escalate_reset,
        )
        self._memory = MemoryManager()
        self._recovery = Recovery(self._transport, self._params, self._state)
        self._stream = StreamLoop(
            self._transport,
            self._params,
            self._memory,
            self._recovery,
            self._state,
            self._config,
        )
        self._was_clean_closed = True
        self._rx_thread: Optional[Thread] = None
        self._rx_error: Optional[BaseException] = None

    @classmethod
    def find(
        cls, serial: Optional[str] = None, config: Optional[DriverConfig] = None
    ) -> "HackRFOne":
        """
        Locate an attached HackRF and wrap it. The device is not opened.

        Raises:
            DeviceNotFoundError: If no matching device is attached
        """
        config = config or DriverConfig()
        handle = PyUsbHandle.find(serial, timeout_ms=config.usb_timeout_ms)
        return cls(
            handle,
            config,
            device_finder=lambda: PyUsbHandle.find_all(timeout_ms=config.usb_timeout_ms),
        )

    @staticmethod
    def list_devices() -> List[DeviceInfo]:
        """List all attached HackRF devices."""
        devices = []
        try:
            for handle in PyUsbHandle.find_all():
                devices.append(_describe(handle))
        except Exception as e:
            logger.debug(f"HackRF enumeration failed: {e}")
        return devices

    # Lifecycle

    @property
    def state(self) -> DeviceState:
        return self._state.current

    @property
    def is_open(self) -> bool:
        return self._transport.is_open

    @property
    def is_streaming(self) -> bool:
        return self._state.is_streaming

    @property
    def config(self) -> DriverConfig:
        return self._config

    def open(self) -> None:
        """
        Open the device, claim its streaming interface and run first-time setup.

        A previous session that did not close cleanly forces a full re-claim.
        """
        self._transport.open(self._was_clean_closed)
        self._was_clean_closed = False
        self._info = _describe(self._transport.handle)
        self._params.perform_initialization_sequence()
        logger.info(f"Opened HackRF device: {self._info.serial}")

    def close(self) -> None:
        """Stop streaming, release the interface and close the handle."""
        self.stop_rx()
        rx_thread = self._rx_thread
        if rx_thread is not None and rx_thread is not current_thread():
            rx_thread.join(timeout=self._config.transfer_timeout * 2)
            if rx_thread.is_alive():
                logger.warning("RX thread did not exit before close")
        self._was_clean_closed = self._transport.close()
        logger.info("HackRF device closed")

    # Parameters

    def set_frequency(self, freq_hz: float) -> None:
        """Set center frequency. Stops an active stream loop first."""
        self._params.set_frequency(freq_hz)

    def get_frequency(self) -> Optional[int]:
        return self._params.frequency

    def set_sample_rate(self, rate_hz: float) -> None:
        """Set sample rate. Required before receive()."""
        self._params.set_sample_rate(rate_hz)

    def get_sample_rate(self) -> Optional[int]:
        return self._params.sample_rate

    def set_bandwidth(self, bw_hz: float) -> None:
        """Set baseband filter bandwidth."""
        self._params.set_bandwidth(bw_hz)

    def get_bandwidth(self) -> Optional[int]:
        return self._params.bandwidth

    def set_lna_gain(self, gain_db: int) -> None:
        """Set LNA gain (0-40 dB, rounded down to 8 dB steps)."""
        self._params.set_lna_gain(gain_db)

    def set_amp_enable(self, enabled: bool) -> None:
        """Enable/disable RF amplifier."""
        self._params.set_amp_enable(enabled)

    # Streaming

    def receive(self, callback: Optional[SampleCallback] = None) -> None:
        """Stream raw int8 I/Q buffers to callback until stop_rx(). Blocks."""
        self._stream.receive(callback)

    def start_rx(
        self, callback: Optional[Callable] = None, complex_samples: bool = False
    ) -> None:
        """
        Run receive() on a background thread.

        Preconditions are checked before the thread starts. A failure inside
        the loop is available from join_rx().

        Args:
            callback: Called with each buffer
            complex_samples: Deliver complex64 numpy arrays instead of bytes
        """
        if self._rx_thread is not None and self._rx_thread.is_alive():
            logger.warning("Already streaming RX")
            return
        self._stream.validate_device_health()

        if callback is not None and complex_samples:
            def deliver(data: bytes) -> None:
                callback(bytes_to_complex(data))
        else:
            deliver = callback

        self._rx_error = None

        def rx_thread():
            """Background thread for receiving samples."""
            try:
                self._stream.receive(deliver)
            except Exception as e:
                self._rx_error = e
                logger.error(f"RX thread error: {e}")

        self._rx_thread = Thread(target=rx_thread, name="hackrf-rx", daemon=True)
        self._rx_thread.start()

    def join_rx(self, timeout: Optional[float] = None) -> Optional[BaseException]:
        """
        Wait for the background RX thread.

        Returns:
            The exception that ended the stream, or None
        """
        if self._rx_thread is not None:
            self._rx_thread.join(timeout)
        return self._rx_error

    def stop_rx(self) -> None:
        """Stop receiving samples. Does not wait for the loop to exit."""
        self._stream.stop_rx()

    def validate_ready_for_streaming(self) -> StreamValidation:
        return self._stream.validate_ready_for_streaming()

    # Recovery

    def reset(self) -> None:
        """Soft reset: transceiver OFF, cached parameters cleared."""
        self._recovery.reset()

    def fast_recovery(self) -> None:
        """Soft reset and replay the last configuration."""
        self._recovery.fast_recovery()

    def _escalate_reset(self) -> bool:
        """Circuit-breaker hook: fast recovery, refused while one is running."""
        if self._recovery.in_progress:
            logger.warning("Reset escalation requested during recovery, refusing")
            return False
        try:
            self._recovery.fast_recovery()
            return True
        except Exception as e:
            self._recovery.track_error(e, "circuit_breaker_reset")
            logger.error(f"Reset escalation failed: {e}")
            return False

    @property
    def error_history(self) -> List[ErrorRecord]:
        return self._recovery.error_history

    @property
    def last_error(self) -> Optional[ErrorRecord]:
        return self._recovery.last_error

    def clear_error_history(self) -> None:
        self._recovery.clear_error_history()

    # Status

    def get_configuration_status(self) -> ConfigurationStatus:
        return ConfigurationStatus(
            is_open=self._transport.is_open,
            is_streaming=self._state.is_streaming,
            is_closing=self._state.is_closing,
            sample_rate=self._params.sample_rate,
            frequency=self._params.frequency,
            bandwidth=self._params.bandwidth,
            lna_gain=self._params.lna_gain,
            amp_enabled=self._params.amp_enabled,
            is_configured=self._params.is_ready_for_streaming,
        )

    def get_memory_info(self) -> MemoryInfo:
        return self._memory.get_memory_info()

    def clear_buffers(self) -> None:
        self._memory.clear_buffers()

    def __repr__(self) -> str:
        if self._info:
            frequency = self._params.frequency
            tuned = freq_to_str(frequency) if frequency is not None else "untuned"
            return f"<{self.__class__.__name__} {self._info.serial} @ {tuned} [{self.state.name}]>"
        return f"<{self.__class__.__name__} (not opened)>"
