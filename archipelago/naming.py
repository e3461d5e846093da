"""
In-process name service where islands publish their endpoints
"""

import logging
import threading
from typing import Any

from archipelago.exceptions import RegistrationError
from archipelago.identity import IslandId

logger = logging.getLogger(__name__)


class LocalNameService:
    """Thread-safe dictionary from island id string to endpoint"""

    def __init__(self):
        self._entries: dict[str, Any] = {}
        self._lock = threading.Lock()

    def bind(self, island_id: IslandId | str, endpoint: Any) -> None:
        with self._lock:
            self._entries[str(island_id)] = endpoint
        logger.debug(f"Bound {island_id}")

    def lookup(self, island_id: IslandId | str) -> Any:
        with self._lock:
            try:
                return self._entries[str(island_id)]
            except KeyError:
                raise RegistrationError(island_id) from None

    def unbind(self, island_id: IslandId | str) -> None:
        with self._lock:
            self._entries.pop(str(island_id), None)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._entries)
