"""
Bounded retry with exponential backoff for USB operations.
"""

import errno
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

import usb.core

from .errors import DeviceNotFoundError, TransientUsbError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# errno values libusb reports for conditions that usually clear on retry
TRANSIENT_ERRNOS = frozenset(
    {errno.EBUSY, errno.EPIPE, errno.EIO, errno.EAGAIN, errno.EINTR, errno.EOVERFLOW}
)
DISCONNECT_ERRNOS = frozenset({errno.ENODEV, errno.ENOENT})

_TRANSIENT_MESSAGE = re.compile(
    r"transfer|busy|pipe error|invalid state|network error", re.IGNORECASE
)
_DISCONNECT_MESSAGE = re.compile(
    r"disconnected|no such device|no device selected|not found", re.IGNORECASE
)


def is_transient_error(error: BaseException) -> bool:
    """Default classifier: True for USB failures worth retrying."""
    if isinstance(error, (TransientUsbError, usb.core.USBTimeoutError)):
        return True
    if isinstance(error, usb.core.USBError) and error.errno in TRANSIENT_ERRNOS:
        return True
    return bool(_TRANSIENT_MESSAGE.search(str(error)))


def is_disconnect_error(error: BaseException) -> bool:
    """True when the device handle no longer refers to an attached device."""
    if isinstance(error, DeviceNotFoundError):
        return True
    if isinstance(error, usb.core.USBError) and error.errno in DISCONNECT_ERRNOS:
        return True
    return bool(_DISCONNECT_MESSAGE.search(str(error)))


@dataclass
class RetryPolicy:
    """Per-call retry settings."""

    max_attempts: int = 3
    base_delay: float = 0.1  # seconds
    max_delay: float = 1.0  # seconds
    classify: Callable[[BaseException], bool] = is_transient_error
    # Called before each retry; raising aborts retrying with that error
    on_retry: Optional[Callable[[int, BaseException], None]] = None

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows a failed attempt (1-based)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


class RetryExecutor:
    """Runs operations under a RetryPolicy."""

    def __init__(self, sleep: Callable[[float], None] = time.sleep):
        self._sleep = sleep

    def run(self, operation: Callable[[], T], policy: Optional[RetryPolicy] = None) -> T:
        """
        Execute operation, retrying classified failures with backoff.

        Args:
            operation: Zero-argument callable
            policy: Retry settings (defaults to RetryPolicy())

        Returns:
            The operation's return value

        Raises:
            The last failure once attempts are exhausted, the first
            non-retryable failure, or whatever on_retry raised
        """
        policy = policy or RetryPolicy()
        attempts = max(1, policy.max_attempts)
        attempt = 1
        while True:
            try:
                return operation()
            except Exception as error:
                if attempt >= attempts or not policy.classify(error):
                    raise
                logger.debug(
                    f"Attempt {attempt}/{attempts} failed, retrying: {error}"
                )
                if policy.on_retry is not None:
                    policy.on_retry(attempt, error)
                self._sleep(policy.delay_for(attempt))
                attempt += 1
