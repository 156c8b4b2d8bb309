"""Event log data models.

Decoupled from editguard_core so external readers (status bars, sidebars,
CLIs) can load the log without pulling in the analyzer or the LLM providers.

The on-disk shape is the integration boundary: a JSON array of objects
``{timestamp, sessionId, type, data}``, newest appended last.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

# Event type discriminators. Every reader filters on these strings.
EDIT_BLOCKED = "edit-blocked"  # pre-edit gate refused the edit
EDIT_ALLOWED = "edit-allowed"  # pre-edit gate let the edit through
SANITY_FAILED = "sanity-failed"  # static checks failed after the edit
SANITY_PASSED = "sanity-passed"  # static checks all green
RISK_ASSESSED = "risk-assessed"  # rules engine scored the edit
LLM_ANALYSIS = "llm-analysis"  # enrichment appended by the dispatcher

EVENT_TYPES = (EDIT_BLOCKED, EDIT_ALLOWED, SANITY_FAILED, SANITY_PASSED, RISK_ASSESSED, LLM_ANALYSIS)


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def _as_text(value) -> str:
    return value if isinstance(value, str) else ""


@dataclass(frozen=True)
class Event:
    """A single recorded decision.

    ``data`` varies by ``type``; see the event type constants above. Events
    are never mutated after being appended, hence frozen.
    """

    timestamp: str
    session_id: str
    type: str
    data: dict = field(default_factory=dict)

    @classmethod
    def create(cls, type: str, session_id: str, data: dict) -> Event:
        return cls(timestamp=utc_timestamp(), session_id=session_id, type=type, data=data)

    @property
    def file(self) -> str:
        return self.text("file")

    def text(self, key: str) -> str:
        """String field of ``data``, or "" when the stored value is missing or not a string."""
        return _as_text(self.data.get(key))

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "sessionId": self.session_id,
            "type": self.type,
            "data": self.data,
        }

    @staticmethod
    def from_dict(d: dict) -> Event:
        data = d.get("data")
        return Event(
            timestamp=_as_text(d.get("timestamp")),
            session_id=_as_text(d.get("sessionId")),
            type=_as_text(d.get("type")),
            data=data if isinstance(data, dict) else {},
        )
