"""In-memory log handler backing the /api/logs endpoint."""
import logging
from collections import deque
from typing import List, Optional

from journal_search_server.config import settings


class MemoryLogHandler(logging.Handler):
    """Keep the most recent formatted log records in a bounded buffer."""

    def __init__(self, capacity: int = 1000):
        super().__init__()
        self.buffer = deque(maxlen=capacity)
        self.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    def emit(self, record: logging.LogRecord):
        try:
            self.buffer.append(self.format(record))
        except Exception:
            self.handleError(record)

    def get_recent_logs(self, lines: int = 10) -> List[str]:
        """Return the last `lines` log lines, oldest first."""
        if lines <= 0:
            return []
        return list(self.buffer)[-lines:]


_memory_handler: Optional[MemoryLogHandler] = None


def get_memory_handler() -> MemoryLogHandler:
    """Get or create the memory handler and attach it to the root logger."""
    global _memory_handler
    if _memory_handler is None:
        _memory_handler = MemoryLogHandler(settings.log_buffer_size)
        logging.getLogger().addHandler(_memory_handler)
    return _memory_handler
