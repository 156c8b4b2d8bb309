"""Abstract event log interface.

The core depends on EventLog, not on a concrete backend, so the dispatcher
and the orchestration layer can be exercised against NoOpEventLog or a
test double without touching disk.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from editguard_store.models import Event


class EventLog(ABC):
    """Append-only, ordered record of edit-safety decisions.

    Implementations must never raise from any of these methods: a failure to
    record or read history must not interrupt the edit workflow.
    """

    @abstractmethod
    async def append(self, event: Event) -> bool:
        """Append one event to the tail of the log.

        Returns True when the event was durably written, False otherwise.
        """

    @abstractmethod
    async def read(self) -> list[Event]:
        """Return every event in append order, or [] on any failure."""

    async def read_by_session(self, session_id: str) -> list[Event]:
        return [e for e in await self.read() if e.session_id == session_id]

    async def read_by_type(self, event_type: str) -> list[Event]:
        return [e for e in await self.read() if e.type == event_type]

    async def aclose(self) -> None:
        """Release any resources held by the log (worker tasks, handles).

        The default is a no-op, so callers can always close safely.
        """
