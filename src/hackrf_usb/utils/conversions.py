"""
Human-readable formatting of RF quantities for log and error messages.
"""


def freq_to_str(freq_hz: float) -> str:
    """
    Convert frequency to human-readable string.

    Args:
        freq_hz: Frequency in Hz

    Returns:
        Formatted string (e.g., "915.000000 MHz")
    """
    if freq_hz >= 1e9:
        return f"{freq_hz / 1e9:.6f} GHz"
    elif freq_hz >= 1e6:
        return f"{freq_hz / 1e6:.6f} MHz"
    elif freq_hz >= 1e3:
        return f"{freq_hz / 1e3:.3f} kHz"
    else:
        return f"{freq_hz:.1f} Hz"


def sample_rate_to_str(rate_hz: float) -> str:
    """
    Convert sample rate to human-readable string.

    Args:
        rate_hz: Sample rate in Hz

    Returns:
        Formatted string (e.g., "20.00 MS/s")
    """
    if rate_hz >= 1e6:
        return f"{rate_hz / 1e6:.2f} MS/s"
    elif rate_hz >= 1e3:
        return f"{rate_hz / 1e3:.2f} kS/s"
    else:
        return f"{rate_hz:.0f} S/s"


def bandwidth_to_str(bw_hz: float) -> str:
    """Convert bandwidth to human-readable string."""
    return freq_to_str(bw_hz).replace("Hz", "Hz BW")
