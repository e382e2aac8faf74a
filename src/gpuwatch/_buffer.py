"""Fixed-capacity sample ring for history windows."""

from __future__ import annotations

from collections import deque


class RingBuffer:
    """Fixed-capacity FIFO of samples backed by collections.deque.

    Appending to a full buffer evicts the oldest sample in O(1). Samples are
    never reordered.
    """

    def __init__(self, maxsize: int) -> None:
        if maxsize <= 0:
            raise ValueError(f"maxsize must be positive, got {maxsize}")
        self._buffer: deque[float] = deque(maxlen=maxsize)

    def append(self, sample: float) -> None:
        """Add a sample. Oldest sample is evicted if full."""
        self._buffer.append(sample)

    def snapshot(self) -> tuple[float, ...]:
        """Return the samples, oldest first, as an immutable copy."""
        return tuple(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)
