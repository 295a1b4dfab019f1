"""
I/Q sample utilities.

The HackRF delivers signed 8-bit samples interleaved as [I0, Q0, I1, Q1, ...].
"""

import numpy as np

HACKRF_SAMPLE_SCALE = 128.0


def interleaved_to_complex(data: np.ndarray, scale: float = HACKRF_SAMPLE_SCALE) -> np.ndarray:
    """
    Convert interleaved int8 I/Q data to complex.

    Args:
        data: Interleaved [I0, Q0, I1, Q1, ...] int8 data
        scale: Full-scale divisor

    Returns:
        complex64 array normalized to [-1, 1)
    """
    if len(data) % 2:
        # A trailing lone I sample has no Q partner
        data = data[:-1]
    iq = data.astype(np.float32).reshape(-1, 2) / scale
    return (iq[:, 0] + 1j * iq[:, 1]).astype(np.complex64)


def bytes_to_complex(buffer: bytes) -> np.ndarray:
    """Convert a raw bulk transfer buffer to complex64 samples."""
    return interleaved_to_complex(np.frombuffer(buffer, dtype=np.int8))

