"""
HackRF vendor protocol.

Request codes follow libhackrf's hackrf_vendor_request numbering. Payloads
for frequency and sample rate are pairs of little-endian uint32 values.
"""

import math
import struct
from enum import IntEnum
from typing import Iterable, Tuple

UINT32_MAX = 0xFFFFFFFF
MHZ_IN_HZ = 1_000_000
MAX_SAMPLE_RATE_DIVIDER = 32

# USB identity
HACKRF_VENDOR_ID = 0x1D50
HACKRF_ONE_PRODUCT_ID = 0x6089
JAWBREAKER_PRODUCT_ID = 0x604B
RAD1O_PRODUCT_ID = 0xCC15
HACKRF_PRODUCT_IDS = (HACKRF_ONE_PRODUCT_ID, JAWBREAKER_PRODUCT_ID, RAD1O_PRODUCT_ID)


class VendorRequest(IntEnum):
    """HackRF vendor request codes."""

    SET_TRANSCEIVER_MODE = 1
    MAX2837_WRITE = 2
    MAX2837_READ = 3
    SI5351C_WRITE = 4
    SI5351C_READ = 5
    SAMPLE_RATE_SET = 6
    BASEBAND_FILTER_BANDWIDTH_SET = 7
    RFFC5071_WRITE = 8
    RFFC5071_READ = 9
    SPIFLASH_ERASE = 10
    SPIFLASH_WRITE = 11
    SPIFLASH_READ = 12
    BOARD_ID_READ = 14
    VERSION_STRING_READ = 15
    SET_FREQ = 16
    AMP_ENABLE = 17
    BOARD_PARTID_SERIALNO_READ = 18
    SET_LNA_GAIN = 19
    SET_VGA_GAIN = 20
    SET_TXVGA_GAIN = 21
    ANTENNA_ENABLE = 23
    SET_FREQ_EXPLICIT = 24
    USB_WCID_VENDOR_REQ = 25
    INIT_SWEEP = 26
    OPERACAKE_GET_BOARDS = 27
    OPERACAKE_SET_PORTS = 28
    SET_HW_SYNC_MODE = 29
    RESET = 30
    OPERACAKE_SET_RANGES = 31
    CLKOUT_ENABLE = 32
    SPIFLASH_STATUS = 33
    SPIFLASH_CLEAR_STATUS = 34
    OPERACAKE_GPIO_TEST = 35
    CPLD_CHECKSUM = 36
    UI_ENABLE = 37


class TransceiverMode(IntEnum):
    """RF operating mode of the board."""

    OFF = 0
    RECEIVE = 1
    TRANSMIT = 2


def _check_non_negative(value: float, label: str) -> None:
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"{label} must be a non-negative finite number")


def split_frequency(frequency_hz: float) -> Tuple[int, int]:
    """
    Split a frequency into whole MHz and remainder Hz.

    Args:
        frequency_hz: Frequency in Hz

    Returns:
        Tuple of (mhz, hz)
    """
    _check_non_negative(frequency_hz, "Frequency")
    rounded = int(round(frequency_hz))
    mhz, hz = divmod(rounded, MHZ_IN_HZ)
    if mhz > UINT32_MAX:
        raise ValueError("Frequency components exceed uint32 range")
    return mhz, hz


def pack_uint32_le(values: Iterable[float]) -> bytes:
    """Pack values as consecutive little-endian uint32 words."""
    words = []
    for value in values:
        _check_non_negative(value, "Control value")
        rounded = int(round(value))
        if rounded > UINT32_MAX:
            raise ValueError("Control value exceeds uint32 range")
        words.append(rounded)
    return struct.pack(f"<{len(words)}I", *words)


def encode_frequency(frequency_hz: float) -> bytes:
    """Build the SET_FREQ payload."""
    return pack_uint32_le(split_frequency(frequency_hz))


def derive_sample_rate_params(sample_rate_hz: float) -> Tuple[int, int]:
    """
    Find the (freq_hz, divider) pair that best approximates a sample rate.

    The firmware runs at freq_hz / divider. Dividers 1..32 are tried and the
    first exact match wins.

    Returns:
        Tuple of (freq_hz, divider)
    """
    if not math.isfinite(sample_rate_hz) or sample_rate_hz <= 0:
        raise ValueError("Sample rate must be a positive finite number")

    initial = int(round(sample_rate_hz))
    if initial <= 0:
        raise ValueError("Sample rate cannot be rounded to uint32")
    if initial > UINT32_MAX:
        raise ValueError("Sample rate exceeds uint32 range")

    best_freq = initial
    best_divider = 1
    smallest_error = abs(initial - sample_rate_hz)

    for divider in range(1, MAX_SAMPLE_RATE_DIVIDER + 1):
        candidate = int(round(sample_rate_hz * divider))
        if candidate <= 0 or candidate > UINT32_MAX:
            continue
        error = abs(candidate / divider - sample_rate_hz)
        if error < smallest_error:
            best_freq = candidate
            best_divider = divider
            smallest_error = error
            if error == 0:
                break

    return best_freq, best_divider


def encode_sample_rate(sample_rate_hz: float) -> bytes:
    """Build the SAMPLE_RATE_SET payload."""
    return pack_uint32_le(derive_sample_rate_params(sample_rate_hz))


def split_bandwidth(bandwidth_hz: float) -> Tuple[int, int]:
    """
    Split a bandwidth into the (value, index) words of the setup packet.

    Returns:
        Tuple of (low 16 bits, high 16 bits)
    """
    _check_non_negative(bandwidth_hz, "Bandwidth")
    rounded = int(round(bandwidth_hz))
    if rounded > UINT32_MAX:
        raise ValueError("Bandwidth exceeds uint32 range")
    return rounded & 0xFFFF, (rounded >> 16) & 0xFFFF
