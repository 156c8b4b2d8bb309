"""No-op event log — used for dry runs that must not record anything.

Using a NoOpEventLog rather than None lets the orchestration layer always
call append() without conditional checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from editguard_store.base import EventLog

if TYPE_CHECKING:
    from editguard_store.models import Event


class NoOpEventLog(EventLog):
    """Silently discards all events."""

    async def append(self, event: Event) -> bool:
        return False

    async def read(self) -> list[Event]:
        return []
