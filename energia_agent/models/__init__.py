from energia_agent.models.lead import Lead
from energia_agent.models.message import Message

__all__ = [
    "Lead",
    "Message",
]
