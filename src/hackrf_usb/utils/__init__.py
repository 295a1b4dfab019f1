"""
Utility functions - formatting and I/Q helpers.
"""

from .conversions import bandwidth_to_str, freq_to_str, sample_rate_to_str
from .iq import bytes_to_complex, interleaved_to_complex

__all__ = [
    "freq_to_str",
    "sample_rate_to_str",
    "bandwidth_to_str",
    "interleaved_to_complex",
    "bytes_to_complex",
]
