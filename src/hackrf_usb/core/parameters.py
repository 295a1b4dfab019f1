"""
Operating parameter store.

Caches the last RF parameters applied to the device, validates new values
against the device limits and sends the matching vendor commands through the
transport. Frequency changes quiesce an active stream first.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Callable, Optional

from ..devices.base import DeviceSpec
from ..utils.conversions import bandwidth_to_str, freq_to_str, sample_rate_to_str
from .errors import ParameterRangeError, TransportError
from .protocol import (
    TransceiverMode,
    VendorRequest,
    encode_frequency,
    encode_sample_rate,
    split_bandwidth,
)
from .state import DeviceState, StateHandle
from .transport import Transport

logger = logging.getLogger(__name__)


class StreamStatusProvider(ABC):
    """View of the stream loop that the parameter store needs for quiescing."""

    @property
    @abstractmethod
    def is_streaming(self) -> bool:
        pass

    @abstractmethod
    def stop_rx(self) -> None:
        pass


@dataclass
class OperatingParameters:
    """
    Last values applied to the device.

    None means never set, which is distinct from zero.
    """

    sample_rate_hz: Optional[int] = None
    frequency_hz: Optional[int] = None
    bandwidth_hz: Optional[int] = None
    lna_gain_db: Optional[int] = None
    amp_enabled: bool = False
    configured_once: bool = False


class ParameterStore:
    """
    Validated RF parameter cache backed by vendor commands.

    Args:
        transport: USB transport
        state: Shared device state
        spec: RF limits to validate against
        stream_status: Stream view used to quiesce before retuning
        reset_hook: Circuit-breaker escalation; returns True if it recovered
    """

    def __init__(
        self,
        transport: Transport,
        state: StateHandle,
        spec: DeviceSpec,
        stream_status: Optional[StreamStatusProvider] = None,
        reset_hook: Optional[Callable[[], bool]] = None,
    ):
        self._transport = transport
        self._state = state
        self._spec = spec
        self._stream_status = stream_status
        self._reset_hook = reset_hook
        self._params = OperatingParameters()

    # Cached values

    @property
    def sample_rate(self) -> Optional[int]:
        return self._params.sample_rate_hz

    @property
    def frequency(self) -> Optional[int]:
        return self._params.frequency_hz

    @property
    def bandwidth(self) -> Optional[int]:
        return self._params.bandwidth_hz

    @property
    def lna_gain(self) -> Optional[int]:
        return self._params.lna_gain_db

    @property
    def amp_enabled(self) -> bool:
        return self._params.amp_enabled

    @property
    def configured_once(self) -> bool:
        return self._params.configured_once

    @property
    def is_ready_for_streaming(self) -> bool:
        """Streaming gate: a sample rate is set and setup has completed once."""
        return self._params.sample_rate_hz is not None and self._params.configured_once

    def mark_configured(self) -> None:
        self._params.configured_once = True

    def snapshot(self) -> OperatingParameters:
        return replace(self._params)

    def restore(self, snapshot: OperatingParameters) -> None:
        self._params = replace(snapshot)

    def reset_state(self, clear_sample_rate: bool = False) -> None:
        """
        Forget cached parameters so the next use reconfigures.

        configured_once is kept to reflect the prior successful setup.
        """
        self._params.frequency_hz = None
        self._params.bandwidth_hz = None
        self._params.lna_gain_db = None
        self._params.amp_enabled = False
        if clear_sample_rate:
            self._params.sample_rate_hz = None

    # Helpers

    def _reopen_if_needed(self) -> None:
        if not self._transport.is_open and not self._transport.closing:
            self._transport.open(True)

    @staticmethod
    def _check_range(value: float, low: float, high: float, message: str) -> None:
        if not math.isfinite(value) or value < low or value > high:
            raise ParameterRangeError(message)

    # Unconditional commands, shared with initialization and recovery

    def send_sample_rate(self, rate_hz: float) -> None:
        payload = encode_sample_rate(rate_hz)
        self._transport.delay(self._transport.config.freq_pre_delay)
        self._transport.control_transfer_out(
            VendorRequest.SAMPLE_RATE_SET,
            data=payload,
            is_sample_rate=True,
            perform_reset=self._reset_hook,
        )

    def send_frequency(self, freq_hz: float, was_streaming: bool = False) -> None:
        self._transport.control_transfer_out(
            VendorRequest.SET_FREQ,
            data=encode_frequency(freq_hz),
            is_set_freq=True,
            was_streaming=was_streaming,
            perform_reset=self._reset_hook,
        )

    def send_bandwidth(self, bandwidth_hz: float) -> None:
        value, index = split_bandwidth(bandwidth_hz)
        self._transport.control_transfer_out(
            VendorRequest.BASEBAND_FILTER_BANDWIDTH_SET,
            value=value,
            index=index,
            perform_reset=self._reset_hook,
        )

    def send_lna_gain(self, gain_db: int) -> None:
        reply = self._transport.control_transfer_in(
            VendorRequest.SET_LNA_GAIN, value=0, index=gain_db, length=1
        )
        if not reply or reply[0] == 0:
            raise TransportError(f"Device rejected LNA gain {gain_db} dB")

    def send_amp_enable(self, enabled: bool) -> None:
        self._transport.control_transfer_out(
            VendorRequest.AMP_ENABLE,
            value=1 if enabled else 0,
            perform_reset=self._reset_hook,
        )

    # Setters

    def set_transceiver_mode(self, mode: TransceiverMode) -> None:
        self._transport.control_transfer_out(
            VendorRequest.SET_TRANSCEIVER_MODE,
            value=int(mode),
            perform_reset=self._reset_hook,
        )

    def set_frequency(self, freq_hz: float) -> None:
        """
        Tune the center frequency.

        Quiesces an active stream first and restores RECEIVE mode afterwards.
        The stream loop itself is not restarted.

        Raises:
            ParameterRangeError: If freq_hz is outside the device range
        """
        if self._params.frequency_hz == freq_hz:
            return
        self._reopen_if_needed()
        spec = self._spec
        self._check_range(
            freq_hz,
            spec.freq_min,
            spec.freq_max,
            f"Frequency {freq_hz / 1e6} MHz out of range. HackRF One supports "
            f"{freq_to_str(spec.freq_min)} to {freq_to_str(spec.freq_max)}",
        )

        was_streaming = (
            self._stream_status is not None and self._stream_status.is_streaming
        )
        if was_streaming:
            try:
                self._stream_status.stop_rx()
                self._transport.delay(self._transport.config.quiesce_settle)
            except Exception as e:
                logger.warning(f"Failed to quiesce stream before retune: {e}")

        try:
            self.send_frequency(freq_hz, was_streaming=was_streaming)
            self._params.frequency_hz = int(round(freq_hz))
            logger.debug(f"Set frequency to {freq_to_str(freq_hz)}")
            self._transport.delay(self._transport.config.post_command_settle)
        finally:
            if was_streaming and not self._transport.closing:
                try:
                    self.set_transceiver_mode(TransceiverMode.RECEIVE)
                except Exception as e:
                    logger.warning(f"Failed to restore RECEIVE mode after retune: {e}")

    def set_sample_rate(self, rate_hz: float) -> None:
        """
        Set the sample rate. This is the gate for streaming.

        The transceiver is switched OFF before the rate is validated, so an
        out-of-range request still changes the mode.

        Raises:
            ParameterRangeError: If rate_hz is outside the device range
        """
        if self._params.sample_rate_hz == rate_hz:
            self._params.configured_once = True
            return
        self._reopen_if_needed()
        try:
            self.set_transceiver_mode(TransceiverMode.OFF)
            self._transport.delay(self._transport.config.mode_settle)
        except Exception as e:
            logger.warning(f"Failed to switch transceiver OFF before rate change: {e}")

        spec = self._spec
        self._check_range(
            rate_hz,
            spec.sample_rate_min,
            spec.sample_rate_max,
            f"Sample rate {rate_hz / 1e6} MSPS out of range. HackRF One supports "
            f"{sample_rate_to_str(spec.sample_rate_min)} to "
            f"{sample_rate_to_str(spec.sample_rate_max)}",
        )

        self.send_sample_rate(rate_hz)
        self._params.sample_rate_hz = int(round(rate_hz))
        self._params.configured_once = True
        logger.debug(f"Set sample rate to {sample_rate_to_str(rate_hz)}")
        self._transport.delay(self._transport.config.post_command_settle)

    def set_bandwidth(self, bw_hz: float) -> None:
        """Set the baseband filter bandwidth."""
        if self._params.bandwidth_hz == bw_hz:
            return
        self._reopen_if_needed()
        spec = self._spec
        self._check_range(
            bw_hz,
            spec.bandwidth_min,
            spec.bandwidth_max,
            f"Bandwidth {bw_hz / 1e6} MHz out of range. HackRF One supports "
            f"{bandwidth_to_str(spec.bandwidth_min)} to {bandwidth_to_str(spec.bandwidth_max)}",
        )
        self.send_bandwidth(bw_hz)
        self._params.bandwidth_hz = int(round(bw_hz))
        logger.debug(f"Set bandwidth to {bandwidth_to_str(bw_hz)}")

    def set_lna_gain(self, gain_db: float) -> None:
        """Set LNA gain, rounded down to the device's step size."""
        if self._params.lna_gain_db == gain_db:
            return
        self._reopen_if_needed()
        spec = self._spec
        self._check_range(
            gain_db,
            0,
            spec.lna_gain_max,
            f"LNA gain {gain_db} dB out of range (0-{spec.lna_gain_max} dB)",
        )
        gain = int(gain_db) // spec.lna_gain_step * spec.lna_gain_step
        self.send_lna_gain(gain)
        self._params.lna_gain_db = gain
        logger.debug(f"Set LNA gain to {gain} dB")

    def set_amp_enable(self, enabled: bool) -> None:
        """Enable or disable the RF amplifier."""
        enabled = bool(enabled)
        if self._params.amp_enabled == enabled:
            return
        self._reopen_if_needed()
        self.send_amp_enable(enabled)
        self._params.amp_enabled = enabled
        logger.info(f"RF amplifier {'enabled' if enabled else 'disabled'}")

    def perform_initialization_sequence(self) -> None:
        """
        Put the device in RECEIVE mode and re-apply cached parameters.

        Skipped once the device has been configured. Any failing step aborts
        the sequence.
        """
        if self._params.configured_once:
            return

        params = self._params
        steps = [
            ("transceiver", lambda: self.set_transceiver_mode(TransceiverMode.RECEIVE)),
        ]
        if params.sample_rate_hz is not None:
            steps.append(("sample_rate", lambda: self.send_sample_rate(params.sample_rate_hz)))
        if params.bandwidth_hz is not None:
            steps.append(("bandwidth", lambda: self.send_bandwidth(params.bandwidth_hz)))
        if params.frequency_hz is not None:
            steps.append(("frequency", lambda: self.send_frequency(params.frequency_hz)))

        bracketed = self._state.current is DeviceState.IDLE
        if bracketed:
            self._state.transition(DeviceState.CONFIGURING)
        try:
            for name, step in steps:
                try:
                    step()
                except Exception as e:
                    logger.warning(f"Initialization step failed: {name}: {e}")
                    raise
            params.configured_once = True
            logger.debug("Initialization sequence complete")
        finally:
            if bracketed:
                self._state.leave(DeviceState.CONFIGURING)

    def __repr__(self) -> str:
        return f"<ParameterStore {self._params}>"
