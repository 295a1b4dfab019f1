"""
USB transport for the HackRF.

Transport is the only component that touches the UsbHandle. It owns the
connection lifecycle (open, claim, close, rebind after re-enumeration),
issues vendor control transfers under bounded retry with a circuit breaker,
and exposes raw bulk reads for the stream loop.
"""

import logging
import time
from typing import Callable, Iterable, Optional, Tuple

from ..devices.usb_handle import (
    RECIPIENT_DEVICE,
    RECIPIENT_INTERFACE,
    AlternateInfo,
    ConfigurationInfo,
    EndpointInfo,
    UsbHandle,
)
from .config import DriverConfig
from .errors import (
    DeviceClosingError,
    DeviceDisconnectedError,
    DriverResetRequiredError,
    TransportError,
)
from .protocol import VendorRequest
from .retry import RetryExecutor, RetryPolicy, is_disconnect_error, is_transient_error
from .state import DeviceState, StateHandle

logger = logging.getLogger(__name__)

# Attempts for open and interface claim
OPEN_ATTEMPTS = 2
CLAIM_ATTEMPTS = 2
# Unclean-open escalation kicks in once control failures pass this count
OPEN_RESET_FAILURE_THRESHOLD = 3

FIRMWARE_RESET_MESSAGE = (
    "HackRF firmware corruption detected. Use the HackRF driver-level reset "
    "(hackrf_reset or the board's reset button), not a generic USB reset."
)


class Transport:
    """
    Exclusive owner of the HackRF USB handle.

    Args:
        handle: USB handle for the device
        state: Shared device state
        config: Timing and retry settings
        device_finder: Returns currently attached candidate handles; used to
            rebind after the device re-enumerates
        sleep: Sleep function used for settle delays and backoff
    """

    def __init__(
        self,
        handle: UsbHandle,
        state: StateHandle,
        config: Optional[DriverConfig] = None,
        device_finder: Optional[Callable[[], Iterable[UsbHandle]]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.handle = handle
        self._state = state
        self._config = config or DriverConfig()
        self._device_finder = device_finder
        self._sleep = sleep
        self._retry = RetryExecutor(sleep)

        # Session binding, cleared whenever the interface must be re-claimed
        self.interface_number: Optional[int] = None
        self.in_endpoint_number = 1
        self.streaming_alt_setting: Optional[int] = None
        self.interface_claimed = False
        self.consecutive_control_failures = 0

    @property
    def config(self) -> DriverConfig:
        return self._config

    @property
    def closing(self) -> bool:
        return self._state.is_closing

    @property
    def is_open(self) -> bool:
        return self.handle.opened

    @property
    def is_claimed(self) -> bool:
        return self.interface_claimed and self.interface_number is not None

    def delay(self, seconds: float) -> None:
        """Settle delay."""
        if seconds > 0:
            self._sleep(seconds)

    def _forget_interface(self) -> None:
        self.interface_number = None
        self.in_endpoint_number = 1
        self.streaming_alt_setting = None
        self.interface_claimed = False

    def rebind(self) -> bool:
        """
        Re-attach to a freshly enumerated handle for the same physical device.

        Matches on vendor id, product id and (when known) serial number.

        Returns:
            True if a matching device was found and bound
        """
        if self._device_finder is None:
            return False
        previous = self.handle
        try:
            candidates = list(self._device_finder())
        except Exception as e:
            logger.warning(f"Device enumeration during rebind failed: {e}")
            return False

        serial = previous.serial_number
        for candidate in candidates:
            if (
                candidate.vendor_id == previous.vendor_id
                and candidate.product_id == previous.product_id
                and (not serial or candidate.serial_number == serial)
            ):
                self.handle = candidate
                self._forget_interface()
                logger.info(
                    f"Rebound to re-enumerated device {candidate.vendor_id:04x}:"
                    f"{candidate.product_id:04x}"
                )
                return True
        return False

    def _ensure_handle_open(self) -> None:
        if self.handle.opened:
            return

        def rebind_or_fail(attempt: int, error: BaseException) -> None:
            logger.warning(f"Device open failed ({error}), attempting rebind")
            if not self.rebind():
                raise DeviceDisconnectedError(
                    "Device disconnected and rebind failed"
                ) from error

        self._retry.run(
            lambda: self.handle.open(),
            RetryPolicy(
                max_attempts=OPEN_ATTEMPTS,
                classify=is_disconnect_error,
                on_retry=rebind_or_fail,
            ),
        )

    def _teardown(self) -> None:
        """Best-effort release and close, ignoring errors."""
        if self.handle.opened and self.interface_number is not None:
            try:
                self.handle.release_interface(self.interface_number)
            except Exception as e:
                logger.debug(f"Release during teardown failed: {e}")
        if self.handle.opened:
            try:
                self.handle.close()
            except Exception as e:
                logger.debug(f"Close during teardown failed: {e}")
        self._forget_interface()

    def _escalating_reset(self) -> None:
        """Open, USB reset, settle, reopen. Inner failures are logged only."""
        try:
            if not self.handle.opened:
                self.handle.open()
            self.handle.reset()
            self.delay(self._config.reset_settle)
            self.handle.open()
            self.consecutive_control_failures = 0
        except Exception as e:
            logger.warning(f"USB reset failed, proceeding anyway: {e}")

    def _active_configuration(self, suffix: str = "") -> ConfigurationInfo:
        if self.handle.active_configuration() is None:
            values = self.handle.configuration_values()
            self.handle.select_configuration(values[0] if values else 1)
        configuration = self.handle.active_configuration()
        if configuration is None or not configuration.alternates:
            raise TransportError(
                f"No interface found on USB device configuration{suffix}"
            )
        return configuration

    @staticmethod
    def _find_streaming_alternate(
        configuration: ConfigurationInfo, suffix: str = ""
    ) -> Tuple[AlternateInfo, EndpointInfo]:
        for alternate in configuration.alternates:
            endpoint = alternate.bulk_in_endpoint()
            if endpoint is not None:
                return alternate, endpoint
        raise TransportError(
            f"No suitable streaming interface found on HackRF device{suffix}"
        )

    def open(self, was_clean_closed: bool = True) -> None:
        """
        Open the device and claim its streaming interface.

        Args:
            was_clean_closed: False if the previous session did not shut down
                cleanly; forces a full teardown and re-claim

        Raises:
            DeviceDisconnectedError: If the device vanished and no replacement
                could be bound
            TransportError: If no streaming interface exists or it cannot be
                claimed
        """
        self._state.leave(DeviceState.CLOSING)

        if self.handle.opened and self.interface_number is not None:
            return

        needs_recovery = not was_clean_closed
        if needs_recovery:
            logger.info("Previous session ended uncleanly, forcing fresh claim")
            self._teardown()
            self.delay(self._config.open_settle)

        try:
            self._ensure_handle_open()
        except Exception as e:
            if (
                needs_recovery
                or self.consecutive_control_failures > OPEN_RESET_FAILURE_THRESHOLD
            ):
                logger.warning(
                    f"Gentle open failed ({e}), attempting USB reset "
                    f"(unclean={needs_recovery}, "
                    f"failures={self.consecutive_control_failures})"
                )
                self._escalating_reset()
            else:
                raise

        configuration = self._active_configuration()
        alternate, endpoint = self._find_streaming_alternate(configuration)
        self.interface_number = alternate.interface_number
        selected = {"alternate": alternate, "endpoint": endpoint}

        def claim() -> None:
            self.interface_number = selected["alternate"].interface_number
            self.handle.claim_interface(self.interface_number)
            self.interface_claimed = True
            self.handle.select_alternate_interface(
                self.interface_number, selected["alternate"].alternate_setting
            )

        def reset_and_rescan(attempt: int, error: BaseException) -> None:
            logger.warning(f"Interface claim failed ({error}), resetting and retrying")
            try:
                if not self.handle.opened:
                    self.handle.open()
            except Exception as e:
                logger.debug(f"Reopen before reset failed: {e}")
            try:
                self.handle.reset()
            except Exception as e:
                logger.debug(f"USB reset failed: {e}")
            self.delay(self._config.reset_settle)
            try:
                if not self.handle.opened:
                    self.handle.open()
            except Exception as e:
                logger.debug(f"Reopen after reset failed: {e}")
            rescanned = self._active_configuration(" (post-reset)")
            selected["alternate"], selected["endpoint"] = (
                self._find_streaming_alternate(rescanned, " (post-reset)")
            )

        try:
            self._retry.run(
                claim,
                RetryPolicy(
                    max_attempts=CLAIM_ATTEMPTS,
                    classify=lambda error: True,
                    on_retry=reset_and_rescan,
                ),
            )
        except Exception as e:
            self.interface_claimed = False
            raise TransportError(
                f"Failed to claim HackRF interface {self.interface_number}: {e}"
            ) from e

        self.streaming_alt_setting = selected["alternate"].alternate_setting
        self.in_endpoint_number = selected["endpoint"].number
        logger.info(
            f"Claimed interface {self.interface_number} "
            f"(alt {self.streaming_alt_setting}, bulk IN ep {self.in_endpoint_number})"
        )
        self.delay(self._config.open_settle)

    def close(self) -> bool:
        """
        Release the interface and close the handle. Idempotent.

        Returns:
            True if release and close raised no errors
        """
        if self.closing:
            return True
        self._state.transition(DeviceState.CLOSING)
        clean = True
        try:
            if self.handle.opened and self.interface_number is not None:
                try:
                    self.handle.release_interface(self.interface_number)
                except Exception as e:
                    clean = False
                    logger.warning(f"Failed to release interface: {e}")
            if self.handle.opened:
                try:
                    self.handle.close()
                except Exception as e:
                    clean = False
                    logger.warning(f"Failed to close USB handle: {e}")
        finally:
            self.interface_number = None
            self.interface_claimed = False
            self._state.leave(DeviceState.CLOSING)
        return clean

    def _require_usable(self) -> None:
        if self.closing:
            raise DeviceClosingError(
                "Device is closing or closed, aborting control transfer"
            )
        if not self.handle.opened:
            try:
                self.handle.open()
            except Exception as e:
                raise TransportError(
                    f"Device could not be opened for control transfer: {e}"
                ) from e

    def control_transfer_out(
        self,
        command: int,
        value: int = 0,
        data: Optional[bytes] = None,
        index: int = 0,
        *,
        is_set_freq: Optional[bool] = None,
        is_sample_rate: Optional[bool] = None,
        was_streaming: bool = False,
        perform_reset: Optional[Callable[[], bool]] = None,
    ) -> None:
        """
        Send a vendor OUT control request with retry and circuit breaker.

        The device-addressed request is tried first; when an interface is
        claimed an interface-addressed variant is tried as a fallback.

        Args:
            command: Vendor request code
            value: wValue
            data: Optional payload
            index: wIndex
            is_set_freq: Frequency-setting command (defaults from command)
            is_sample_rate: Sample-rate-setting command (defaults from command)
            was_streaming: Streaming was active when the call was made
            perform_reset: Escalation hook; returns True if it recovered

        Raises:
            DeviceClosingError: If the device is closing
            DriverResetRequiredError: If the circuit breaker trips and the
                reset hook is missing or fails
        """
        self._require_usable()

        if is_set_freq is None:
            is_set_freq = command == VendorRequest.SET_FREQ
        if is_sample_rate is None:
            is_sample_rate = command == VendorRequest.SAMPLE_RATE_SET

        cfg = self._config
        if is_set_freq:
            attempts, base_delay = cfg.freq_control_attempts, cfg.freq_control_base_delay
        else:
            attempts, base_delay = cfg.control_attempts, cfg.control_base_delay

        def attempt() -> None:
            if is_set_freq:
                self.delay(cfg.freq_pre_delay)
            variants = [(RECIPIENT_DEVICE, index)]
            if self.is_claimed:
                variants.append((RECIPIENT_INTERFACE, self.interface_number))
            last_error: Optional[Exception] = None
            for recipient, request_index in variants:
                try:
                    self.handle.control_transfer_out(
                        recipient, int(command), value, request_index, data
                    )
                    self.consecutive_control_failures = 0
                    return
                except Exception as e:
                    last_error = e
            raise last_error

        def circuit_breaker(attempt_number: int, error: BaseException) -> None:
            self.consecutive_control_failures += 1
            critical = (
                was_streaming or is_set_freq or is_sample_rate or self._state.is_streaming
            )
            if (
                critical
                and self.consecutive_control_failures >= cfg.max_failures_before_reset
            ):
                logger.warning(
                    f"{self.consecutive_control_failures} consecutive control "
                    f"failures on request {int(command)}, escalating"
                )
                if perform_reset is not None and perform_reset():
                    self.consecutive_control_failures = 0
                    return
                raise DriverResetRequiredError(FIRMWARE_RESET_MESSAGE) from error

        logger.debug(f"Control OUT request={int(command)} value={value} index={index}")
        self._retry.run(
            attempt,
            RetryPolicy(
                max_attempts=attempts,
                base_delay=base_delay,
                max_delay=cfg.control_max_delay,
                classify=is_transient_error,
                on_retry=circuit_breaker,
            ),
        )

    def control_transfer_in(
        self, command: int, value: int = 0, index: int = 0, length: int = 1
    ) -> bytes:
        """Send a device-addressed vendor IN request and return the reply."""
        self._require_usable()
        logger.debug(f"Control IN request={int(command)} value={value} index={index}")
        return self._retry.run(
            lambda: self.handle.control_transfer_in(
                RECIPIENT_DEVICE, int(command), value, index, length
            ),
            RetryPolicy(
                max_attempts=self._config.control_attempts,
                base_delay=self._config.control_base_delay,
                max_delay=self._config.control_max_delay,
                classify=is_transient_error,
            ),
        )

    def bulk_in(self, length: int) -> bytes:
        """Blocking read from the streaming endpoint. No native timeout."""
        return self.handle.bulk_transfer_in(self.in_endpoint_number, length)

    def hardware_reset(self, settle: Optional[float] = None) -> None:
        """
        USB port reset followed by a settle delay.

        The interface binding is dropped so the next open() re-claims.
        """
        if not self.handle.opened:
            self.handle.open()
        logger.warning("Performing USB hardware reset")
        self.handle.reset()
        self._forget_interface()
        self.delay(self._config.reset_settle if settle is None else settle)

    def __repr__(self) -> str:
        return (
            f"<Transport {'open' if self.is_open else 'closed'} "
            f"interface={self.interface_number}>"
        )
