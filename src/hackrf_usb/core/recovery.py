"""
Device recovery.

Two tiers, neither of which issues the vendor RESET request:
    - reset(): soft reset, transceiver OFF and cached parameters cleared
    - fast_recovery(): soft reset, then replay the last known-good
      configuration from a snapshot
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Deque, Dict, List, Optional

from .errors import DeviceClosingError
from .parameters import ParameterStore
from .protocol import TransceiverMode
from .state import StateHandle
from .transport import Transport

logger = logging.getLogger(__name__)

MAX_ERROR_HISTORY = 50


@dataclass
class ErrorRecord:
    """A recorded driver failure."""

    timestamp: float
    operation: str
    message: str
    error_type: str
    context: Dict[str, Any] = field(default_factory=dict)


class Recovery:
    """Soft reset, snapshot-based reconfiguration and error history."""

    def __init__(
        self,
        transport: Transport,
        params: ParameterStore,
        state: StateHandle,
        max_history: int = MAX_ERROR_HISTORY,
    ):
        self._transport = transport
        self._params = params
        self._state = state
        self._history: Deque[ErrorRecord] = deque(maxlen=max_history)
        self._history_lock = Lock()
        self._recovering = False

    @property
    def in_progress(self) -> bool:
        """True while fast_recovery() is running."""
        return self._recovering

    def reset(self) -> None:
        """
        Soft reset: switch the transceiver OFF and clear cached parameters.

        The sample rate is cleared too, so streaming requires a new
        set_sample_rate() call.
        """
        logger.warning("Soft reset: clearing cached parameters (vendor RESET not sent)")
        if self._transport.is_open and not self._transport.closing:
            try:
                self._params.set_transceiver_mode(TransceiverMode.OFF)
            except Exception as e:
                logger.warning(f"Failed to switch transceiver OFF during reset: {e}")
        self._params.reset_state(clear_sample_rate=True)

    def fast_recovery(self) -> None:
        """
        Soft reset and replay the last configuration.

        Sample rate, frequency, bandwidth and LNA gain are re-sent when they
        were set (zero included); amp enable is always re-sent. The device is
        left in RECEIVE mode with the snapshot restored.

        Raises:
            DeviceClosingError: If the device is closing
        """
        saved = self._params.snapshot()
        if self._transport.closing:
            raise DeviceClosingError("Cannot perform fast recovery while device is closing")

        logger.warning(f"Starting fast recovery from {saved}")
        self._recovering = True
        try:
            if not self._transport.is_open or not self._transport.is_claimed:
                try:
                    self._transport.open(True)
                except Exception as e:
                    logger.warning(f"Reopen before recovery failed, continuing: {e}")

            self.reset()

            if saved.sample_rate_hz is not None:
                self._params.send_sample_rate(saved.sample_rate_hz)
            if saved.frequency_hz is not None:
                self._params.send_frequency(saved.frequency_hz)
            if saved.bandwidth_hz is not None:
                self._params.send_bandwidth(saved.bandwidth_hz)
            if saved.lna_gain_db is not None:
                self._params.send_lna_gain(saved.lna_gain_db)
            self._params.send_amp_enable(saved.amp_enabled)

            self._params.set_transceiver_mode(TransceiverMode.RECEIVE)

            self._params.restore(saved)
            if saved.sample_rate_hz is not None:
                self._params.mark_configured()
            logger.info("Fast recovery complete, device reconfigured")
        finally:
            self._recovering = False

    def track_error(self, error: BaseException, operation: str = "", **context) -> ErrorRecord:
        """Record a failure in the bounded error history."""
        record = ErrorRecord(
            timestamp=time.time(),
            operation=operation,
            message=str(error),
            error_type=type(error).__name__,
            context=dict(context),
        )
        with self._history_lock:
            self._history.append(record)
        return record

    @property
    def error_history(self) -> List[ErrorRecord]:
        with self._history_lock:
            return list(self._history)

    @property
    def last_error(self) -> Optional[ErrorRecord]:
        with self._history_lock:
            return self._history[-1] if self._history else None

    def clear_error_history(self) -> None:
        with self._history_lock:
            self._history.clear()
