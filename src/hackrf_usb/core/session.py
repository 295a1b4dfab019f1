"""
Per-session cancellation and timeout bookkeeping for the RX stream.
"""

import logging
from threading import Event, Lock
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Single-shot, thread-safe cancellation flag.

    Callbacks registered before cancellation run once when cancel() is first
    called. Callbacks registered afterwards run immediately.
    """

    def __init__(self):
        self._event = Event()
        self._lock = Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancellation callback failed: {e}")

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Run callback on cancellation.

        Returns:
            A function that unregisters the callback
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._unregister(callback)
        callback()
        return lambda: None

    def _unregister(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class StreamSession:
    """A single receive() run: its token and consecutive timeout count."""

    def __init__(self, max_consecutive_timeouts: int = 2):
        self.token = CancellationToken()
        self.max_consecutive_timeouts = max_consecutive_timeouts
        self._consecutive_timeouts = 0

    @property
    def consecutive_timeouts(self) -> int:
        return self._consecutive_timeouts

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def handle_timeout(self) -> bool:
        """
        Count a transfer timeout.

        Returns:
            True once the consecutive timeout threshold is reached
        """
        self._consecutive_timeouts += 1
        return self._consecutive_timeouts >= self.max_consecutive_timeouts

    def reset_timeouts(self) -> None:
        self._consecutive_timeouts = 0


class StreamController:
    """Owns the current StreamSession. Starting a new one cancels the old."""

    def __init__(self, max_consecutive_timeouts: int = 2):
        self._max_consecutive_timeouts = max_consecutive_timeouts
        self._session: Optional[StreamSession] = None
        self._lock = Lock()

    @property
    def session(self) -> Optional[StreamSession]:
        with self._lock:
            return self._session

    def start(self) -> StreamSession:
        with self._lock:
            previous = self._session
            self._session = StreamSession(self._max_consecutive_timeouts)
            session = self._session
        if previous is not None:
            previous.token.cancel()
        return session

    def stop(self) -> None:
        """Cancel the current session, if any."""
        with self._lock:
            session, self._session = self._session, None
        if session is not None:
            session.token.cancel()

    def release(self, session: StreamSession) -> bool:
        """
        Finish a session on loop exit.

        Returns:
            False if a newer session has superseded this one
        """
        with self._lock:
            superseded = self._session is not None and self._session is not session
            if self._session is session:
                self._session = None
        session.token.cancel()
        return not superseded
