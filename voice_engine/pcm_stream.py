"""Thread-safe PCM FIFO backing a local audio destination.

The synthesizer writes from a worker thread; the recorder drains on the
event loop every timeslice. Unlike a ring buffer nothing is ever dropped:
a capture must contain every sample that was spoken.
"""

import threading
from collections import deque


class PCMStream:
    """Unbounded FIFO of int16 mono PCM blobs at a fixed sample rate."""

    def __init__(self, sample_rate: int = 48000, channels: int = 1):
        self.sample_rate = sample_rate
        self.channels = channels
        self._chunks: deque[bytes] = deque()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def available(self) -> int:
        """Total bytes waiting to be drained."""
        with self._lock:
            return sum(len(c) for c in self._chunks)

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> int:
        """Append PCM. Writes after close() are discarded and return 0."""
        if not data:
            return 0
        with self._lock:
            if self._closed:
                return 0
            self._chunks.append(bytes(data))
            return len(data)

    def drain(self) -> bytes:
        """Take everything written so far."""
        with self._lock:
            if not self._chunks:
                return b""
            data = b"".join(self._chunks)
            self._chunks.clear()
            return data

    def close(self):
        """Reject further writes and discard anything pending."""
        with self._lock:
            self._closed = True
            self._chunks.clear()
