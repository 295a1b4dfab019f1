"""Tests for I/Q sample and formatting utilities."""

import numpy as np

from hackrf_usb.utils.conversions import bandwidth_to_str, freq_to_str, sample_rate_to_str
from hackrf_usb.utils.iq import bytes_to_complex, interleaved_to_complex


class TestInterleavedToComplex:
    """Tests for int8 interleaved conversion."""

    def test_basic_conversion(self):
        """Test I/Q pairs map to real/imag parts."""
        data = np.array([64, -64, 0, 127], dtype=np.int8)

        result = interleaved_to_complex(data)

        expected = np.array([0.5 - 0.5j, 0 + 127 / 128 * 1j], dtype=np.complex64)
        np.testing.assert_array_almost_equal(result, expected)
        assert result.dtype == np.complex64

    def test_odd_length_drops_tail(self):
        """Test a trailing unpaired byte is ignored."""
        data = np.array([1, 2, 3], dtype=np.int8)
        assert len(interleaved_to_complex(data)) == 1

    def test_bytes_buffer(self):
        """Test raw transfer bytes are read as signed."""
        result = bytes_to_complex(bytes([0xFF, 0x80]))
        np.testing.assert_array_almost_equal(result, [(-1 / 128) - 1j])

    def test_full_transfer(self):
        """Test a 4096-byte transfer yields 2048 samples."""
        assert len(bytes_to_complex(bytes(4096))) == 2048


class TestFormatting:
    """Tests for human-readable strings."""

    def test_freq_to_str(self):
        """Test unit selection."""
        assert freq_to_str(915e6) == "915.000000 MHz"
        assert freq_to_str(2.4e9) == "2.400000 GHz"
        assert freq_to_str(500) == "500.0 Hz"

    def test_sample_rate_to_str(self):
        """Test sample rate formatting."""
        assert sample_rate_to_str(20e6) == "20.00 MS/s"

    def test_bandwidth_to_str(self):
        """Test bandwidth formatting."""
        assert bandwidth_to_str(1.75e6) == "1.750000 MHz BW"
