"""Bounded record of the last feedback label given for each query."""
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_FEEDBACK_CAPACITY = 1024
FEEDBACK_VALUES = frozenset({"good", "bad"})


class FeedbackStore:
    """
    Maps a query to its most recent feedback label, evicting the least
    recently written query once `capacity` is exceeded. It is only touched
    from the server's event loop, so it takes no lock.
    """

    def __init__(self, capacity: int = DEFAULT_FEEDBACK_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: "OrderedDict[str, str]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, query: str, value: str) -> bool:
        """
        Stores `value` for `query`.

        Returns:
            False when the query is empty or the value is not a known label.
        """
        if not query or value not in FEEDBACK_VALUES:
            LOGGER.warning("Invalid feedback input: query=%r value=%r", query[:40] if query else query, value)
            return False
        self._entries[query] = value
        self._entries.move_to_end(query)
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            LOGGER.debug("Evicted feedback for %r", evicted[:40])
        LOGGER.info("Feedback updated: %s -> %s", query[:40], value)
        return True

    def get(self, query: str) -> Optional[str]:
        return self._entries.get(query)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._entries)


__all__ = ["DEFAULT_FEEDBACK_CAPACITY", "FEEDBACK_VALUES", "FeedbackStore"]
