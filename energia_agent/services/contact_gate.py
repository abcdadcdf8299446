from contextlib import contextmanager
from typing import Iterator

from energia_agent.logging_config import get_logger

logger = get_logger("contact_gate")


class ContactGate:
    """At most one in-flight turn per contact. Busy contacts are rejected, not queued.

    All callers run on one event loop and ``try_enter`` never awaits, so the
    check-and-add is atomic.
    """

    def __init__(self):
        self._in_flight: set[str] = set()

    def try_enter(self, contact_id: str) -> bool:
        if contact_id in self._in_flight:
            logger.info("Contact busy, dropping event", extra={"context": {"contact_id": contact_id}})
            return False
        self._in_flight.add(contact_id)
        return True

    def exit(self, contact_id: str) -> None:
        self._in_flight.discard(contact_id)

    def is_busy(self, contact_id: str) -> bool:
        return contact_id in self._in_flight

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    @contextmanager
    def acquire(self, contact_id: str) -> Iterator[bool]:
        """Yield whether the turn was admitted; release on every exit path."""
        admitted = self.try_enter(contact_id)
        try:
            yield admitted
        finally:
            if admitted:
                self.exit(contact_id)
