"""
Driver configuration.

Timing and retry budgets for the transport, parameter store and stream loop.
All durations are in seconds.
"""

import logging
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict

from .errors import ConfigValidationError

logger = logging.getLogger(__name__)


@dataclass
class DriverConfig:
    """Timing and retry settings for a HackRF session."""

    # Settle delays
    open_settle: float = 0.3  # after interface claim / unclean teardown
    reset_settle: float = 0.5  # after a USB hardware reset
    stream_reset_settle: float = 1.0  # reset when RX mode cannot be entered
    quiesce_settle: float = 0.05  # after stopping the stream for a retune
    mode_settle: float = 0.05  # after transceiver mode changes
    post_command_settle: float = 0.02  # after frequency / sample rate commands
    freq_pre_delay: float = 0.015  # before each SET_FREQ attempt

    # Streaming
    transfer_timeout: float = 1.0  # bulk transfer race timeout
    transfer_size: int = 4096  # bytes per bulk transfer
    max_consecutive_timeouts: int = 2  # timeouts before fast recovery

    # Control transfer retry budgets
    control_attempts: int = 6
    control_base_delay: float = 0.1
    freq_control_attempts: int = 12
    freq_control_base_delay: float = 0.15
    control_max_delay: float = 2.0
    max_failures_before_reset: int = 3

    # Per-request timeout handed to libusb for control transfers
    usb_timeout_ms: int = 1000

    def __post_init__(self) -> None:
        """Validate configuration values after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate all configuration fields."""
        for name in (
            "open_settle",
            "reset_settle",
            "stream_reset_settle",
            "quiesce_settle",
            "mode_settle",
            "post_command_settle",
            "freq_pre_delay",
            "control_base_delay",
            "freq_control_base_delay",
        ):
            value = getattr(self, name)
            if value < 0:
                raise ConfigValidationError(
                    f"{name} must be non-negative, got {value}"
                )
        if self.transfer_timeout <= 0:
            raise ConfigValidationError(
                f"transfer_timeout must be positive, got {self.transfer_timeout}"
            )
        if self.transfer_size <= 0 or self.transfer_size % 512 != 0:
            raise ConfigValidationError(
                f"transfer_size must be a positive multiple of 512, got {self.transfer_size}"
            )
        if self.max_consecutive_timeouts < 1:
            raise ConfigValidationError(
                f"max_consecutive_timeouts must be at least 1, got {self.max_consecutive_timeouts}"
            )
        if self.control_attempts < 1 or self.freq_control_attempts < 1:
            raise ConfigValidationError(
                "control_attempts and freq_control_attempts must be at least 1"
            )
        if self.control_max_delay < max(
            self.control_base_delay, self.freq_control_base_delay
        ):
            raise ConfigValidationError(
                f"control_max_delay must not be below the base delays, got {self.control_max_delay}"
            )
        if self.max_failures_before_reset < 1:
            raise ConfigValidationError(
                f"max_failures_before_reset must be at least 1, got {self.max_failures_before_reset}"
            )
        if self.usb_timeout_ms < 0:
            raise ConfigValidationError(
                f"usb_timeout_ms must be non-negative, got {self.usb_timeout_ms}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DriverConfig":
        """Create configuration from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown driver config keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})
