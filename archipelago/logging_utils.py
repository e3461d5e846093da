"""
Logging setup and per-island log context
"""

import contextvars
import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager

from archipelago.identity import IslandId

# Island currently executing in this thread/task; "-" outside of any island
current_island: contextvars.ContextVar[str] = contextvars.ContextVar("current_island", default="-")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(island)s] %(message)s"


@contextmanager
def island_context(island_id: IslandId | str) -> Iterator[None]:
    """Mark the enclosed code as running on behalf of ``island_id``"""
    token = current_island.set(str(island_id))
    try:
        yield
    finally:
        current_island.reset(token)


class IslandContextFilter(logging.Filter):
    """Adds the current island to every record as ``%(island)s``"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.island = current_island.get()
        return True


def setup_logging(log_level: str = "INFO", log_dir: str | None = None) -> logging.Logger:
    """
    Configure the ``archipelago`` logger.

    Logs go to the console and, when ``log_dir`` is given, to a timestamped
    file in that directory.
    """
    root_logger = logging.getLogger("archipelago")
    root_logger.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)
    context_filter = IslandContextFilter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.addFilter(context_filter)
    root_logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, f"archipelago_{time.strftime('%Y%m%d_%H%M%S')}.log")
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(context_filter)
        root_logger.addHandler(file_handler)
        root_logger.info(f"Logging to {log_file}")

    return root_logger
