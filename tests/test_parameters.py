"""Tests for RF parameter validation and the commands they send."""

import errno
from unittest.mock import call

import pytest
import usb.core

from hackrf_usb.core.errors import ParameterRangeError, TransportError
from hackrf_usb.core.protocol import VendorRequest


class TestSampleRate:
    """Tests for set_sample_rate()."""

    def test_sets_and_caches(self, opened_device, handle):
        """Test the rate is sent as (freq_hz, divider) and cached."""
        opened_device.set_sample_rate(20e6)

        sent = handle.requests(VendorRequest.SAMPLE_RATE_SET)
        assert sent[-1].data == (20_000_000).to_bytes(4, "little") + (1).to_bytes(4, "little")
        assert opened_device.get_sample_rate() == 20_000_000

    @pytest.mark.parametrize("rate", [2e6, 20e6])
    def test_range_bounds_inclusive(self, opened_device, rate):
        """Test the minimum and maximum rates are accepted."""
        opened_device.set_sample_rate(rate)
        assert opened_device.get_sample_rate() == int(rate)

    @pytest.mark.parametrize("rate", [1e6, 25e6, float("nan")])
    def test_out_of_range_keeps_cached_value(self, opened_device, rate):
        """Test rejected rates leave the previous rate in place."""
        opened_device.set_sample_rate(10e6)

        with pytest.raises(ParameterRangeError, match="out of range"):
            opened_device.set_sample_rate(rate)
        assert opened_device.get_sample_rate() == 10_000_000

    def test_transceiver_off_before_validation(self, opened_device, handle):
        """Test OFF is sent even when the rate is then rejected."""
        handle.control_out_calls.clear()

        with pytest.raises(ParameterRangeError):
            opened_device.set_sample_rate(25e6)

        assert handle.out_requests() == [VendorRequest.SET_TRANSCEIVER_MODE]
        assert handle.control_out_calls[0].value == 0

    def test_unchanged_rate_is_noop(self, opened_device, handle):
        """Test repeating the current rate sends nothing."""
        opened_device.set_sample_rate(10e6)
        handle.control_out_calls.clear()

        opened_device.set_sample_rate(10e6)

        assert handle.control_out_calls == []

    def test_post_command_settle(self, opened_device, sleep):
        """Test the rate change settles afterwards."""
        sleep.reset_mock()
        opened_device.set_sample_rate(8e6)
        assert sleep.call_args_list[-1] == call(0.02)


class TestFrequency:
    """Tests for set_frequency()."""

    def test_sets_and_caches(self, opened_device, handle):
        """Test MHz/Hz payload and cached value."""
        opened_device.set_frequency(433.92e6)

        sent = handle.requests(VendorRequest.SET_FREQ)
        assert sent[-1].data == (433).to_bytes(4, "little") + (920_000).to_bytes(4, "little")
        assert opened_device.get_frequency() == 433_920_000

    @pytest.mark.parametrize("freq", [1e6, 6e9])
    def test_range_bounds_inclusive(self, opened_device, handle, freq):
        """Test the band edges are accepted and sent."""
        opened_device.set_frequency(freq)
        assert opened_device.get_frequency() == int(freq)
        assert len(handle.requests(VendorRequest.SET_FREQ)) == 1

    @pytest.mark.parametrize("freq", [0.5e6, 7e9, float("nan")])
    def test_out_of_range(self, opened_device, handle, freq):
        """Test rejected frequencies send nothing and cache nothing."""
        with pytest.raises(ParameterRangeError, match="out of range"):
            opened_device.set_frequency(freq)
        assert handle.requests(VendorRequest.SET_FREQ) == []
        assert opened_device.get_frequency() is None

    def test_unchanged_frequency_is_noop(self, opened_device, handle):
        """Test retuning to the same frequency sends nothing."""
        opened_device.set_frequency(915e6)
        opened_device.set_frequency(915e6)
        assert len(handle.requests(VendorRequest.SET_FREQ)) == 1

    def test_reopens_closed_device(self, opened_device, handle):
        """Test a setter reopens a device that was closed."""
        opened_device.close()

        opened_device.set_frequency(100e6)

        assert handle.opened
        assert opened_device.get_frequency() == 100_000_000


class TestBandwidth:
    """Tests for set_bandwidth()."""

    def test_value_and_index_split(self, opened_device, handle):
        """Test the bandwidth is split across wValue and wIndex."""
        opened_device.set_bandwidth(5e6)

        sent = handle.requests(VendorRequest.BASEBAND_FILTER_BANDWIDTH_SET)[-1]
        assert sent.value == 19264
        assert sent.index == 76
        assert opened_device.get_bandwidth() == 5_000_000

    @pytest.mark.parametrize("bandwidth", [1.75e6, 28e6])
    def test_range_bounds_inclusive(self, opened_device, bandwidth):
        """Test the narrowest and widest filters are accepted."""
        opened_device.set_bandwidth(bandwidth)
        assert opened_device.get_bandwidth() == int(bandwidth)

    def test_out_of_range(self, opened_device):
        """Test bandwidth limits."""
        with pytest.raises(ParameterRangeError):
            opened_device.set_bandwidth(30e6)


class TestGainAndAmp:
    """Tests for LNA gain and RF amplifier."""

    def test_lna_rounds_down_to_step(self, opened_device, handle):
        """Test LNA gain is rounded down to 8 dB steps and sent as control IN."""
        opened_device.set_lna_gain(20)

        sent = handle.control_in_calls[-1]
        assert sent.request == VendorRequest.SET_LNA_GAIN
        assert sent.value == 0
        assert sent.index == 16
        assert opened_device.get_configuration_status().lna_gain == 16

    def test_lna_rejected_by_device(self, opened_device, handle):
        """Test a zero reply from the device is an error."""
        handle.lna_reply = b"\x00"
        with pytest.raises(TransportError, match="LNA gain"):
            opened_device.set_lna_gain(8)
        assert opened_device.get_configuration_status().lna_gain is None

    def test_lna_out_of_range(self, opened_device):
        """Test LNA gain above 40 dB is rejected."""
        with pytest.raises(ParameterRangeError):
            opened_device.set_lna_gain(48)

    def test_amp_noop_when_unchanged(self, opened_device, handle):
        """Test amp commands are only sent on change."""
        opened_device.set_amp_enable(False)
        assert handle.requests(VendorRequest.AMP_ENABLE) == []

        opened_device.set_amp_enable(True)
        opened_device.set_amp_enable(True)

        sent = handle.requests(VendorRequest.AMP_ENABLE)
        assert len(sent) == 1
        assert sent[0].value == 1

    def test_amp_failure_not_cached(self, opened_device, handle):
        """Test a failed amp command leaves the cached value alone."""
        # Both the device and interface addressed variants fail
        handle.fail_control_out(
            VendorRequest.AMP_ENABLE,
            usb.core.USBError("Access denied", errno=errno.EACCES),
            times=2,
        )
        with pytest.raises(usb.core.USBError):
            opened_device.set_amp_enable(True)
        assert opened_device.get_configuration_status().amp_enabled is False


class TestInitialization:
    """Tests for the first-open initialization sequence."""

    def test_first_open_enters_receive(self, device, handle):
        """Test open puts the transceiver in RECEIVE and marks setup done."""
        device.open()

        modes = handle.requests(VendorRequest.SET_TRANSCEIVER_MODE)
        assert [c.value for c in modes] == [1]
        assert device._params.configured_once

    def test_cached_values_replayed_on_first_open(self, device, handle):
        """Test values cached before setup are sent unconditionally."""
        device._params._params.sample_rate_hz = 10_000_000
        device._params._params.frequency_hz = 915_000_000

        device.open()

        assert handle.out_requests() == [
            VendorRequest.SET_TRANSCEIVER_MODE,
            VendorRequest.SAMPLE_RATE_SET,
            VendorRequest.SET_FREQ,
        ]

    def test_sequence_skipped_after_setup(self, opened_device, handle):
        """Test later opens do not rerun setup."""
        opened_device.close()
        handle.control_out_calls.clear()

        opened_device.open()

        assert handle.control_out_calls == []

    def test_failure_propagates(self, device, handle):
        """Test a failing step aborts open and leaves setup incomplete."""
        handle.fail_control_out(
            VendorRequest.SET_TRANSCEIVER_MODE,
            usb.core.USBError("Access denied", errno=errno.EACCES),
            times=2,
        )
        with pytest.raises(usb.core.USBError):
            device.open()
        assert not device._params.configured_once
