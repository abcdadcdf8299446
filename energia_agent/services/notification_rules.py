"""Admin alerts derived from what changed on a lead during one turn."""

import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from energia_agent.services.stage_machine import crossed_qualified_threshold


def _normalize(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return " ".join(stripped.lower().split())


class InterestLevel(str, Enum):
    LOW = "Baixo"
    MEDIUM = "Médio"
    HIGH = "Alto"
    HOT = "Quente"
    NEEDS_HUMAN = "Precisa de Intervenção Humana"

    @classmethod
    def parse(cls, value: Any) -> Optional["InterestLevel"]:
        """Match a model-written tag regardless of case and accents ("alto", "MEDIO")."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or not value.strip():
            return None
        key = _normalize(value)
        for level in cls:
            if _normalize(level.value) == key:
                return level
        return None

    @property
    def is_hot(self) -> bool:
        return self in HOT_INTEREST_LEVELS


HOT_INTEREST_LEVELS = frozenset({InterestLevel.HIGH, InterestLevel.HOT})


class NotificationKind(str, Enum):
    NEW_LEAD = "new_lead"
    QUALIFIED_LEAD = "qualified_lead"
    HIGH_INTEREST = "high_interest"
    HUMAN_INTERVENTION_REQUESTED = "human_intervention_requested"
    SYSTEM_ERROR = "system_error"


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class TurnOutcome:
    """What happened during the turn beyond the lead delta."""

    contact_id: str
    error: Optional[str] = None


def _payload(lead, contact_id: str, contract=None, **extra: Any) -> dict[str, Any]:
    payload = {
        "contact_id": contact_id,
        "name": getattr(lead, "name", None),
        "stage": getattr(lead, "stage", None),
        "interest_level": getattr(lead, "interest_level", None),
        "summary": getattr(contract, "summary", None) or getattr(lead, "summary", None),
    }
    payload.update(extra)
    return payload


def derive_notifications(previous, updated, contract, outcome: TurnOutcome) -> list[Notification]:
    """Every rule is edge-triggered and evaluated independently.

    ``previous`` is None when the lead did not exist before the turn.
    ``updated`` may be None when the turn failed before the lead was written.
    """
    notifications: list[Notification] = []
    contact_id = outcome.contact_id

    if previous is None and updated is not None:
        notifications.append(Notification(NotificationKind.NEW_LEAD, _payload(updated, contact_id, contract)))

    if updated is not None:
        before_stage = previous.stage if previous is not None else None
        if crossed_qualified_threshold(before_stage, updated.stage):
            notifications.append(Notification(NotificationKind.QUALIFIED_LEAD, _payload(updated, contact_id, contract)))

        before_interest = InterestLevel.parse(previous.interest_level) if previous is not None else None
        after_interest = InterestLevel.parse(updated.interest_level)
        if after_interest is not None and after_interest != before_interest:
            if after_interest.is_hot:
                notifications.append(Notification(NotificationKind.HIGH_INTEREST, _payload(updated, contact_id, contract)))
            elif after_interest is InterestLevel.NEEDS_HUMAN:
                notifications.append(
                    Notification(NotificationKind.HUMAN_INTERVENTION_REQUESTED, _payload(updated, contact_id, contract))
                )

    if outcome.error:
        notifications.append(
            Notification(
                NotificationKind.SYSTEM_ERROR,
                _payload(updated, contact_id, contract, error=outcome.error),
            )
        )

    return notifications
