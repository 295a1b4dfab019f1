"""Tests for vendor protocol encoding."""

import struct

import pytest

from hackrf_usb.core.protocol import (
    MAX_SAMPLE_RATE_DIVIDER,
    TransceiverMode,
    VendorRequest,
    derive_sample_rate_params,
    encode_frequency,
    encode_sample_rate,
    pack_uint32_le,
    split_bandwidth,
    split_frequency,
)


class TestRequestCodes:
    """Tests for libhackrf request numbering."""

    def test_core_codes(self):
        """Test the codes the driver sends."""
        assert VendorRequest.SET_TRANSCEIVER_MODE == 1
        assert VendorRequest.SAMPLE_RATE_SET == 6
        assert VendorRequest.BASEBAND_FILTER_BANDWIDTH_SET == 7
        assert VendorRequest.SET_FREQ == 16
        assert VendorRequest.AMP_ENABLE == 17
        assert VendorRequest.SET_LNA_GAIN == 19
        assert VendorRequest.RESET == 30
        assert VendorRequest.UI_ENABLE == 37

    def test_transceiver_modes(self):
        """Test mode values."""
        assert (TransceiverMode.OFF, TransceiverMode.RECEIVE, TransceiverMode.TRANSMIT) == (0, 1, 2)


class TestFrequencyEncoding:
    """Tests for SET_FREQ payloads."""

    def test_split_whole_mhz(self):
        """Test a whole-MHz frequency."""
        assert split_frequency(915_000_000) == (915, 0)

    def test_split_with_remainder(self):
        """Test the sub-MHz remainder is kept in Hz."""
        assert split_frequency(433_920_500) == (433, 920_500)

    def test_payload_layout(self):
        """Test payload is two little-endian uint32 words."""
        assert encode_frequency(2_400_000_001) == struct.pack("<II", 2400, 1)

    def test_negative_rejected(self):
        """Test negative frequencies are rejected."""
        with pytest.raises(ValueError):
            split_frequency(-1)


class TestPackUint32:
    """Tests for pack_uint32_le."""

    def test_rounding(self):
        """Test values are rounded to integers."""
        assert pack_uint32_le([1.6, 2.2]) == struct.pack("<II", 2, 2)

    def test_overflow(self):
        """Test values above uint32 range are rejected."""
        with pytest.raises(ValueError):
            pack_uint32_le([2**32])

    def test_non_finite(self):
        """Test NaN is rejected."""
        with pytest.raises(ValueError):
            pack_uint32_le([float("nan")])


class TestSampleRateParams:
    """Tests for sample-rate divider derivation."""

    @pytest.mark.parametrize("rate", [2e6, 8e6, 10e6, 20e6])
    def test_integer_rates_use_divider_one(self, rate):
        """Test integral rates need no divider."""
        assert derive_sample_rate_params(rate) == (int(rate), 1)

    def test_fractional_rate(self):
        """Test a fractional rate picks a divider that reproduces it."""
        rate = 8e6 / 3
        freq_hz, divider = derive_sample_rate_params(rate)
        assert 1 < divider <= MAX_SAMPLE_RATE_DIVIDER
        assert freq_hz / divider == pytest.approx(rate, abs=1e-3)

    def test_encode_sample_rate(self):
        """Test the payload is (freq_hz, divider)."""
        assert encode_sample_rate(20e6) == struct.pack("<II", 20_000_000, 1)

    @pytest.mark.parametrize("rate", [0, -1, float("inf"), float("nan")])
    def test_invalid_rates(self, rate):
        """Test non-positive and non-finite rates are rejected."""
        with pytest.raises(ValueError):
            derive_sample_rate_params(rate)


class TestBandwidthSplit:
    """Tests for BASEBAND_FILTER_BANDWIDTH_SET setup words."""

    def test_split(self):
        """Test low and high 16-bit halves."""
        assert split_bandwidth(5_000_000) == (5_000_000 & 0xFFFF, 5_000_000 >> 16)

    def test_small_value(self):
        """Test a value that fits in 16 bits has a zero high word."""
        assert split_bandwidth(1000) == (1000, 0)
