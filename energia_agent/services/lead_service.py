import time
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from energia_agent.logging_config import get_logger
from energia_agent.models import Lead, Message
from energia_agent.services.stage_machine import reset_stage

logger = get_logger("lead_service")

DEFAULT_SOURCE = "Organico"
MESSAGE_DIRECTIONS = ("user", "agent")


@dataclass(frozen=True)
class LeadSnapshot:
    """Detached, read-only copy of a Lead row."""

    contact_id: str
    stage: int = 0
    interest_level: Optional[str] = None
    source: str = DEFAULT_SOURCE
    protocol: Optional[str] = None
    name: Optional[str] = None
    tax_id: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    address_street: Optional[str] = None
    address_number: Optional[str] = None
    address_district: Optional[str] = None
    address_city: Optional[str] = None
    address_state: Optional[str] = None
    average_consumption: Optional[float] = None
    lighting_fee: Optional[float] = None
    connection_type: Optional[str] = None
    summary: Optional[str] = None
    bill_holder_name: Optional[str] = None
    bill_holder_document: Optional[str] = None
    proposal_sent: bool = False
    proposal_sent_at: Optional[datetime] = None
    proposal_session_id: Optional[str] = None
    last_interaction_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, lead: Lead) -> "LeadSnapshot":
        return cls(**{f.name: getattr(lead, f.name) for f in fields(cls)})

    def known_fields(self) -> dict[str, Any]:
        """Captured customer data shown to the model as already known."""
        return {name: getattr(self, name) for name in KNOWN_FIELD_NAMES if getattr(self, name) is not None}


KNOWN_FIELD_NAMES = (
    "name",
    "tax_id",
    "email",
    "address",
    "address_street",
    "address_number",
    "address_district",
    "address_city",
    "address_state",
    "average_consumption",
    "lighting_fee",
    "connection_type",
)
UPDATABLE_FIELDS = frozenset(f.name for f in fields(LeadSnapshot)) - {"contact_id", "created_at"}


@dataclass(frozen=True)
class MessageRecord:
    contact_id: str
    direction: str
    text: str
    created_at: datetime


def new_protocol() -> str:
    return str(int(time.time() * 1000))


class LeadStore:
    """Lead and message persistence. Each call runs in its own session."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def get(self, contact_id: str) -> Optional[LeadSnapshot]:
        with self.session_factory() as db:
            lead = db.query(Lead).filter(Lead.contact_id == contact_id).first()
            return LeadSnapshot.from_model(lead) if lead else None

    def upsert(self, contact_id: str, updates: Optional[dict[str, Any]] = None) -> LeadSnapshot:
        """Create the lead if missing, then apply non-null known attributes in place."""
        updates = updates or {}
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            logger.warning(f"Ignoring unknown lead attributes: {sorted(unknown)}")

        with self.session_factory() as db:
            lead = db.query(Lead).filter(Lead.contact_id == contact_id).first()
            if lead is None:
                lead = Lead(
                    contact_id=contact_id,
                    stage=0,
                    source=DEFAULT_SOURCE,
                    protocol=new_protocol(),
                    proposal_sent=False,
                    created_at=datetime.now(timezone.utc),
                )
                db.add(lead)
                logger.info("Lead created", extra={"context": {"contact_id": contact_id}})

            for key, value in updates.items():
                if key in UPDATABLE_FIELDS and value is not None:
                    setattr(lead, key, value)

            db.commit()
            db.refresh(lead)
            return LeadSnapshot.from_model(lead)

    def append_message(self, contact_id: str, direction: str, text: str) -> MessageRecord:
        if direction not in MESSAGE_DIRECTIONS:
            raise ValueError(f"Unknown message direction: {direction}")
        now = datetime.now(timezone.utc)
        with self.session_factory() as db:
            db.add(Message(contact_id=contact_id, direction=direction, text=text, created_at=now))
            db.commit()
        return MessageRecord(contact_id=contact_id, direction=direction, text=text, created_at=now)

    def list_messages(self, contact_id: str, limit: Optional[int] = None) -> list[MessageRecord]:
        """Messages in conversation order; with ``limit``, only the most recent ones."""
        with self.session_factory() as db:
            query = db.query(Message).filter(Message.contact_id == contact_id).order_by(Message.id.desc())
            if limit:
                query = query.limit(limit)
            rows = list(reversed(query.all()))
            return [
                MessageRecord(contact_id=row.contact_id, direction=row.direction, text=row.text, created_at=row.created_at)
                for row in rows
            ]

    def reset_stage(self, contact_id: str) -> Optional[LeadSnapshot]:
        with self.session_factory() as db:
            lead = db.query(Lead).filter(Lead.contact_id == contact_id).first()
            if lead is None:
                return None
            lead.stage = int(reset_stage())
            db.commit()
            db.refresh(lead)
            logger.info("Lead stage reset", extra={"context": {"contact_id": contact_id}})
            return LeadSnapshot.from_model(lead)
