"""Admin notifications sent over WhatsApp to the sales managers."""

from typing import Iterable, Optional

from energia_agent.config import settings
from energia_agent.logging_config import get_logger
from energia_agent.services.notification_rules import Notification, NotificationKind

logger = get_logger("alert_service")

TEMPLATES = {
    NotificationKind.NEW_LEAD: "👋 Novo Lead!\n*Contato:* {contact_id}",
    NotificationKind.HIGH_INTEREST: (
        "🔥 Interesse Alto Detectado!\n\n*Nome:* {name}\n*Contato:* {contact_id}\n*Nível:* *{interest_level}*"
    ),
    NotificationKind.QUALIFIED_LEAD: (
        "🏆✨ LEAD QUENTE (INTENÇÃO DE FECHAR)! ✨🏆\n\n*Cliente:* {name}\n*Contato:* {contact_id}\n\n"
        "*Resumo da IA:*\n_{summary}_\n\n*Nível de Interesse:* *{interest_level}*"
    ),
    NotificationKind.HUMAN_INTERVENTION_REQUESTED: (
        "🆘 AJUDA SOLICITADA!\n\n*Contato:* {contact_id}\n*Motivo:* Cliente pediu para falar com um humano."
    ),
    NotificationKind.SYSTEM_ERROR: "🆘 ERRO GRAVE NO BOT 🆘\n\nFalha em msg de {contact_id}.\n\n*Erro:* {error}",
}

# Only the primary admin receives these.
PRIMARY_ONLY = frozenset({NotificationKind.NEW_LEAD, NotificationKind.SYSTEM_ERROR})

_DEFAULTS = {
    NotificationKind.HIGH_INTEREST: {"name": "N/A"},
    NotificationKind.QUALIFIED_LEAD: {"summary": "Cliente aceitou a proposta.", "interest_level": "Alto"},
}


def render(kind: NotificationKind, payload: dict) -> str:
    values = {"contact_id": "", "name": "", "interest_level": "", "summary": "", "error": ""}
    values.update(_DEFAULTS.get(kind, {}))
    values.update({key: value for key, value in payload.items() if value not in (None, "")})
    return TEMPLATES[kind].format(**values)


class AdminNotifier:
    def __init__(self, transport, primary_number: Optional[str] = None, secondary_number: Optional[str] = None):
        self.transport = transport
        self.primary_number = primary_number if primary_number is not None else settings.admin_whatsapp_number_1
        self.secondary_number = (
            secondary_number if secondary_number is not None else settings.admin_whatsapp_number_2
        )

    def recipients(self, kind: NotificationKind) -> list[str]:
        numbers = []
        if self.primary_number:
            numbers.append(self.primary_number)
        if kind not in PRIMARY_ONLY and self.secondary_number and self.secondary_number != self.primary_number:
            numbers.append(self.secondary_number)
        return numbers

    async def notify(self, kind: NotificationKind, payload: dict) -> bool:
        """Send one notification. Returns False on any failure, never raises."""
        recipients = self.recipients(kind)
        if not recipients:
            logger.warning(f"Admin notification not configured: {kind.value}")
            return False

        try:
            text = render(kind, payload)
        except (KeyError, ValueError) as e:
            logger.error(f"Failed to render admin notification {kind.value}: {e}")
            return False

        delivered = True
        for number in recipients:
            try:
                ok = await self.transport.send_text(number, text)
            except Exception as e:
                logger.error(f"Failed to send admin notification: {e}", extra={"context": {"kind": kind.value}})
                ok = False
            delivered = delivered and ok
        return delivered

    async def dispatch(self, notifications: Iterable[Notification]) -> int:
        """Fire-and-forget delivery of derived notifications. Returns how many fully succeeded."""
        sent = 0
        for notification in notifications:
            if await self.notify(notification.kind, notification.payload):
                sent += 1
        return sent
