"""Tests for the retry executor and USB error classifiers."""

import errno
from unittest.mock import Mock, call

import pytest
import usb.core

from hackrf_usb.core.errors import DeviceNotFoundError, TransientUsbError
from hackrf_usb.core.retry import (
    RetryExecutor,
    RetryPolicy,
    is_disconnect_error,
    is_transient_error,
)


class TestClassifiers:
    """Tests for transient and disconnect classification."""

    def test_transient_usb_error_type(self):
        """Test our own transient error is always retryable."""
        assert is_transient_error(TransientUsbError("glitch"))

    def test_usb_timeout(self):
        """Test pyusb timeouts are retryable."""
        assert is_transient_error(usb.core.USBTimeoutError("Operation timed out"))

    def test_busy_errno(self):
        """Test EBUSY and EPIPE are retryable."""
        assert is_transient_error(usb.core.USBError("Resource busy", errno=errno.EBUSY))
        assert is_transient_error(usb.core.USBError("Pipe error", errno=errno.EPIPE))

    def test_message_patterns(self):
        """Test message matching for errors without an errno."""
        assert is_transient_error(RuntimeError("controlTransferOut: transfer error"))
        assert is_transient_error(RuntimeError("Device or resource BUSY"))
        assert is_transient_error(RuntimeError("invalid state"))

    def test_not_transient(self):
        """Test validation and permission failures are not retried."""
        assert not is_transient_error(ValueError("out of range"))
        assert not is_transient_error(usb.core.USBError("Access denied", errno=errno.EACCES))

    def test_disconnect(self):
        """Test disconnect detection."""
        assert is_disconnect_error(DeviceNotFoundError("gone"))
        assert is_disconnect_error(usb.core.USBError("No such device", errno=errno.ENODEV))
        assert is_disconnect_error(RuntimeError("No device selected"))
        assert not is_disconnect_error(usb.core.USBError("Resource busy", errno=errno.EBUSY))


class TestRetryPolicy:
    """Tests for backoff computation."""

    def test_doubling_backoff(self):
        """Test delay doubles per attempt."""
        policy = RetryPolicy(base_delay=0.1, max_delay=10.0)
        assert policy.delay_for(1) == pytest.approx(0.1)
        assert policy.delay_for(2) == pytest.approx(0.2)
        assert policy.delay_for(3) == pytest.approx(0.4)

    def test_backoff_cap(self):
        """Test delay is capped at max_delay."""
        policy = RetryPolicy(base_delay=0.5, max_delay=1.0)
        assert policy.delay_for(5) == 1.0


class TestRetryExecutor:
    """Tests for RetryExecutor.run."""

    def test_success_first_try(self):
        """Test no retries or sleeps on success."""
        sleep = Mock()
        op = Mock(return_value=42)

        result = RetryExecutor(sleep).run(op, RetryPolicy(max_attempts=3))

        assert result == 42
        assert op.call_count == 1
        sleep.assert_not_called()

    def test_transient_retries_then_rethrows(self):
        """Test a persistent transient failure uses attempts-1 backoffs."""
        sleep = Mock()
        error = TransientUsbError("busy")
        op = Mock(side_effect=error)

        with pytest.raises(TransientUsbError) as exc_info:
            RetryExecutor(sleep).run(
                op, RetryPolicy(max_attempts=4, base_delay=0.1, max_delay=0.3)
            )

        assert exc_info.value is error
        assert op.call_count == 4
        assert sleep.call_args_list == [call(0.1), call(0.2), call(0.3)]

    def test_non_retryable_fails_immediately(self):
        """Test a non-transient error is rethrown without delay."""
        sleep = Mock()
        op = Mock(side_effect=ValueError("bad"))

        with pytest.raises(ValueError):
            RetryExecutor(sleep).run(op, RetryPolicy(max_attempts=5))

        assert op.call_count == 1
        sleep.assert_not_called()

    def test_recovers_after_transient(self):
        """Test the result is returned once an attempt succeeds."""
        op = Mock(side_effect=[TransientUsbError("busy"), "ok"])

        assert RetryExecutor(Mock()).run(op, RetryPolicy(max_attempts=3)) == "ok"
        assert op.call_count == 2

    def test_on_retry_called_with_attempt(self):
        """Test on_retry receives the failed attempt number and error."""
        on_retry = Mock()
        errors = [TransientUsbError("a"), TransientUsbError("b")]
        op = Mock(side_effect=errors + ["done"])

        RetryExecutor(Mock()).run(op, RetryPolicy(max_attempts=3, on_retry=on_retry))

        assert on_retry.call_args_list == [call(1, errors[0]), call(2, errors[1])]

    def test_on_retry_failure_replaces_error(self):
        """Test an exception from on_retry aborts retrying."""
        sleep = Mock()
        op = Mock(side_effect=TransientUsbError("busy"))

        def escalate(attempt, error):
            raise RuntimeError("escalation impossible")

        with pytest.raises(RuntimeError, match="escalation impossible"):
            RetryExecutor(sleep).run(op, RetryPolicy(max_attempts=5, on_retry=escalate))

        assert op.call_count == 1
        sleep.assert_not_called()

    def test_custom_classifier(self):
        """Test callers can override the classifier."""
        op = Mock(side_effect=[KeyError("x"), "ok"])
        policy = RetryPolicy(max_attempts=2, classify=lambda e: isinstance(e, KeyError))

        assert RetryExecutor(Mock()).run(op, policy) == "ok"
