"""
Byte accounting for delivered sample buffers.

Samples are never retained here; the callback owns buffer lifetime.
"""

from dataclasses import dataclass
from threading import Lock

# Informational capacity reported by get_memory_info()
DEFAULT_CAPACITY = 16 * 1024 * 1024


@dataclass
class MemoryInfo:
    """Buffer usage snapshot."""

    total_buffer_size: int
    used_buffer_size: int
    active_buffers: int = 0


class MemoryManager:
    """Thread-safe running total of bytes delivered to the RX callback."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self._capacity = capacity
        self._total_bytes = 0
        self._lock = Lock()

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._total_bytes

    def track_buffer(self, data: bytes) -> None:
        with self._lock:
            self._total_bytes += len(data)

    def get_memory_info(self) -> MemoryInfo:
        with self._lock:
            return MemoryInfo(
                total_buffer_size=self._capacity,
                used_buffer_size=self._total_bytes,
                active_buffers=0,
            )

    def clear_buffers(self) -> None:
        with self._lock:
            self._total_bytes = 0
