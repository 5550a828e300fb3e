from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session


class Outcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    IGNORED = "ignored"


@dataclass
class HandlerResult:
    outcome: Outcome
    detail: str | None = None


@dataclass
class EventContext:
    """
    Unit of work handed to a domain mutator.

    Workflow notifications are buffered here and only fired by the caller after the
    mutator's writes commit, so a rolled-back event never notifies anyone.
    """

    db: Session
    notifications: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def notify(self, event: str, data: dict[str, Any]) -> None:
        self.notifications.append((event, data))
