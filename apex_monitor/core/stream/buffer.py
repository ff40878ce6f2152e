"""In-memory copy of the streamed output for live display."""

from collections import deque
from typing import Deque


class LiveBuffer:
    """Ordered chunks of tail output, capped at ``max_chars``.

    When the cap is exceeded the oldest chunks are evicted. The newest chunk
    is always kept, even if it alone exceeds the cap.
    """

    def __init__(self, max_chars: int = 5_000_000):
        self.max_chars = max(1, max_chars)
        self._chunks: Deque[str] = deque()
        self._chars = 0
        self.evicted_chunks = 0
        # Characters ever appended since the last clear, evicted ones included.
        self.total_chars = 0

    def __len__(self) -> int:
        return len(self._chunks)

    @property
    def chars(self) -> int:
        return self._chars

    def append(self, chunk: str) -> None:
        if not chunk:
            return
        self._chunks.append(chunk)
        self._chars += len(chunk)
        self.total_chars += len(chunk)
        while self._chars > self.max_chars and len(self._chunks) > 1:
            dropped = self._chunks.popleft()
            self._chars -= len(dropped)
            self.evicted_chunks += 1

    def text(self) -> str:
        return "".join(self._chunks)

    def since(self, offset: int) -> str:
        """Text appended after ``total_chars`` was ``offset``, minus anything evicted."""
        missing = self.total_chars - offset
        if missing <= 0:
            return ""
        text = self.text()
        return text[-missing:] if missing < len(text) else text

    def clear(self) -> None:
        self._chunks.clear()
        self._chars = 0
        self.evicted_chunks = 0
        self.total_chars = 0
