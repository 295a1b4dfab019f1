"""
RX stream loop.

Bulk IN transfers have no native timeout, so each transfer runs on a short
lived daemon thread and the loop waits on it, a timer and the session's
cancellation token, whichever settles first. A transfer that loses the race
is abandoned, not cancelled; its thread stays blocked in libusb until data
arrives or the handle is closed.

Reads are issued with timeout=0 (no limit). Closing the device while such
a read is pending disposes the pyusb resources underneath it; the read then
fails on its abandoned thread and that error is dropped. HackRFOne.close()
joins its own RX thread before closing, but transfers abandoned earlier may
still be pending at that point.

Starting a session and tearing one down hold the same lifecycle lock, so
a loop that is still cleaning up cannot send OFF over a newer session.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from threading import Event, RLock, Thread
from typing import Callable, List, Optional, Tuple

from .config import DriverConfig
from .errors import (
    DeviceClosingError,
    DeviceNotOpenError,
    NotConfiguredError,
    StreamRecoveryError,
    StreamStartError,
)
from .memory import MemoryManager
from .parameters import ParameterStore
from .protocol import TransceiverMode, VendorRequest
from .recovery import Recovery
from .session import CancellationToken, StreamController, StreamSession
from .state import DeviceState, StateHandle
from .transport import Transport

logger = logging.getLogger(__name__)

RECOVERY_FAILED_MESSAGE = (
    "Device not responding after automatic recovery attempt. Please:\n"
    "1. Unplug and replug the USB cable\n"
    "2. Press the reset button on the HackRF\n"
    "3. Try a different USB port\n"
    "4. Verify the device works with the hackrf_info command"
)

SampleCallback = Callable[[bytes], None]


class TransferOutcome(Enum):
    """Which contender settled a transfer race first."""

    DATA = auto()
    TIMEOUT = auto()
    CANCELLED = auto()


@dataclass
class StreamValidation:
    """Streaming readiness check result."""

    ready: bool
    issues: List[str] = field(default_factory=list)


class StreamLoop:
    """Continuous bulk IN streaming with stall detection and recovery."""

    def __init__(
        self,
        transport: Transport,
        params: ParameterStore,
        memory: MemoryManager,
        recovery: Recovery,
        state: StateHandle,
        config: Optional[DriverConfig] = None,
    ):
        self._transport = transport
        self._params = params
        self._memory = memory
        self._recovery = recovery
        self._state = state
        self._config = config or transport.config
        self._controller = StreamController(self._config.max_consecutive_timeouts)
        self._lifecycle_lock = RLock()

    @property
    def session(self) -> Optional[StreamSession]:
        return self._controller.session

    def validate_ready_for_streaming(self) -> StreamValidation:
        """Check streaming preconditions without side effects."""
        issues = []
        if not self._transport.is_open:
            issues.append("Device is not open")
        if self._transport.closing:
            issues.append("Device is closing")
        if not self._params.is_ready_for_streaming:
            issues.append(
                "Sample rate not configured - call set_sample_rate() before streaming"
            )
        if self._state.is_streaming or self._state.is_recovering:
            issues.append("Device is already streaming")
        return StreamValidation(ready=not issues, issues=issues)

    def validate_device_health(self) -> None:
        """
        Raise if receive() cannot start.

        Raises:
            DeviceNotOpenError: If the device is not open
            DeviceClosingError: If the device is closing
            NotConfiguredError: If no sample rate has been configured
            StreamStartError: If a stream is already running or recovering
        """
        if not self._transport.is_open:
            raise DeviceNotOpenError("Device is not open")
        if self._transport.closing:
            raise DeviceClosingError("Device is closing")
        if not self._params.is_ready_for_streaming:
            raise NotConfiguredError(
                "Sample rate not configured. HackRF requires set_sample_rate() "
                "to be called before receive(). Without a sample rate the device "
                "will not stream data and bulk transfers will hang."
            )
        if self._state.is_streaming or self._state.is_recovering:
            raise StreamStartError("Device is already streaming")

    def stop_rx(self) -> None:
        """Stop the current session. Safe to call with no active session."""
        if not self._state.leave(DeviceState.STREAMING):
            self._state.leave(DeviceState.RECOVERING)
        self._controller.stop()

    def _race_transfer(self, token: CancellationToken) -> Tuple[TransferOutcome, Optional[bytes]]:
        """
        Run one bulk transfer against the timeout and cancellation.

        Raises:
            Whatever the transfer raised, if it failed before the timeout
        """
        settled = Event()
        outcome = {}

        def transfer() -> None:
            try:
                outcome["data"] = self._transport.bulk_in(self._config.transfer_size)
            except Exception as e:
                outcome["error"] = e
            settled.set()

        unregister = token.register(settled.set)
        try:
            Thread(target=transfer, name="hackrf-bulk-in", daemon=True).start()
            settled.wait(self._config.transfer_timeout)
        finally:
            unregister()

        if token.cancelled:
            return TransferOutcome.CANCELLED, None
        if "error" in outcome:
            raise outcome["error"]
        if "data" in outcome:
            return TransferOutcome.DATA, outcome["data"]
        return TransferOutcome.TIMEOUT, None

    def _enter_receive_mode(self, session: StreamSession) -> None:
        try:
            self._params.set_transceiver_mode(TransceiverMode.RECEIVE)
            return
        except Exception as error:
            logger.warning(f"Failed to enter RECEIVE mode ({error}), resetting device")
            original = error

        try:
            self._state.leave(DeviceState.STREAMING)
            self._transport.hardware_reset(settle=self._config.stream_reset_settle)
            self._transport.open(True)
            self._params.set_transceiver_mode(TransceiverMode.RECEIVE)
            with self._lifecycle_lock:
                if not session.cancelled:
                    self._state.transition(DeviceState.STREAMING)
        except Exception as reset_error:
            raise StreamStartError(
                "Failed to start RX mode and automatic USB reset recovery failed. "
                "Physically reconnect the device. "
                f"Original error: {original}. Reset error: {reset_error}"
            ) from reset_error

    def _recover(self, session: StreamSession, iteration: int) -> bool:
        """
        Run fast recovery after repeated timeouts.

        Returns:
            True to keep streaming, False if the session ended meanwhile
        """
        logger.warning("Max consecutive timeouts reached, initiating automatic recovery")
        with self._lifecycle_lock:
            if session.cancelled or not self._state.is_streaming:
                return False
            self._state.transition(DeviceState.RECOVERING)
        try:
            self._recovery.fast_recovery()
        except Exception as e:
            if session.cancelled or self._transport.closing:
                logger.info(f"Recovery interrupted by shutdown: {e}")
                return False
            self._recovery.track_error(
                e,
                "fast_recovery",
                iteration=iteration,
                sample_rate=self._params.sample_rate,
                frequency=self._params.frequency,
            )
            logger.error(f"Automatic recovery failed: {e}")
            raise StreamRecoveryError(RECOVERY_FAILED_MESSAGE) from e

        with self._lifecycle_lock:
            if session.cancelled or not self._state.is_recovering:
                return False
            self._state.transition(DeviceState.STREAMING)
        session.reset_timeouts()
        logger.warning("Automatic recovery successful, resuming stream")
        return True

    def receive(self, callback: Optional[SampleCallback] = None) -> None:
        """
        Stream until stopped, calling callback with each raw buffer.

        Blocks the calling thread. The callback runs synchronously on it and
        must not block.

        Raises:
            NotConfiguredError: If set_sample_rate() was never called
            StreamStartError: If a stream is already running, or RECEIVE mode
                cannot be entered
            StreamRecoveryError: If the stream stalls and recovery fails
        """
        with self._lifecycle_lock:
            self.validate_device_health()
            self._state.transition(DeviceState.STREAMING)
            session = self._controller.start()
        token = session.token
        logger.info("Starting HackRF RX stream")

        try:
            try:
                self._transport.control_transfer_out(VendorRequest.UI_ENABLE, value=0)
            except Exception as e:
                logger.warning(f"Failed to disable UI indicator: {e}")

            self._enter_receive_mode(session)
            self._transport.delay(self._config.mode_settle)

            iteration = 0
            while not token.cancelled and self._state.is_streaming:
                iteration += 1
                try:
                    outcome, data = self._race_transfer(token)
                    if outcome is TransferOutcome.CANCELLED or not self._state.is_streaming:
                        break
                    if outcome is TransferOutcome.DATA:
                        session.reset_timeouts()
                        if data:
                            self._memory.track_buffer(data)
                            if callback is not None:
                                callback(data)
                        continue
                except Exception as e:
                    if token.cancelled or not self._state.is_streaming:
                        break
                    self._recovery.track_error(
                        e,
                        "receive_loop",
                        iteration=iteration,
                        opened=self._transport.is_open,
                    )
                    logger.error(f"Unexpected error during USB transfer: {e}")
                    raise

                max_reached = session.handle_timeout()
                logger.warning(
                    f"USB transfer timeout ({session.consecutive_timeouts} consecutive, "
                    f"iteration {iteration}, will retry: {not max_reached})"
                )
                if not max_reached:
                    continue
                if self._transport.closing or not self._recover(session, iteration):
                    break
        finally:
            self._finish(session)

    def _finish(self, session: StreamSession) -> None:
        with self._lifecycle_lock:
            if not self._controller.release(session):
                # A newer receive() owns the device now
                return
            if not self._state.leave(DeviceState.STREAMING):
                self._state.leave(DeviceState.RECOVERING)
            if self._transport.closing:
                return
            try:
                self._params.set_transceiver_mode(TransceiverMode.OFF)
                self._transport.control_transfer_out(VendorRequest.UI_ENABLE, value=1)
            except Exception as e:
                logger.warning(f"Failed to restore idle mode after stream: {e}")
        logger.info("HackRF RX stream stopped")
