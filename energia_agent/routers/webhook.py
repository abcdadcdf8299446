from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from energia_agent.config import settings
from energia_agent.dependencies import get_orchestrator, schedule_turn
from energia_agent.logging_config import get_logger
from energia_agent.schemas.webhook import EvolutionWebhook, WebhookAck
from energia_agent.services.orchestrator import ConversationOrchestrator, InboundEvent

logger = get_logger("webhook")

router = APIRouter(tags=["webhook"])

HANDLED_EVENT = "messages.upsert"


def _get_request_webhook_secret(request: Request) -> Optional[str]:
    header_secret = request.headers.get("X-Webhook-Secret")
    if header_secret:
        return header_secret.strip()
    query_secret = request.query_params.get("webhook_secret")
    if query_secret:
        return query_secret.strip()
    return None


def _check_webhook_secret(request: Request) -> None:
    expected = (settings.webhook_secret or "").strip()
    if not expected:
        return
    provided = _get_request_webhook_secret(request)
    if not provided or provided != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")


def build_event(payload: EvolutionWebhook, raw_body: dict, source: Optional[str] = None) -> tuple[Optional[InboundEvent], str]:
    """Inbound event for a processable payload, or None with the reason it was skipped."""
    if payload.event != HANDLED_EVENT:
        return None, "unhandled_event"
    if payload.data is None or payload.data.message is None:
        return None, "no_message"
    if payload.data.key.fromMe:
        return None, "from_me"

    contact_id = payload.contact_id
    if not contact_id:
        return None, "no_contact"

    kind = payload.message_kind()
    if kind is None:
        return None, "unsupported_message"

    return (
        InboundEvent(
            contact_id=contact_id,
            kind=kind,
            text=payload.text if kind == "text" else None,
            raw_message=raw_body.get("data") if kind != "text" else None,
            source=source.strip() if source and source.strip() else None,
        ),
        "",
    )


@router.post("/webhook", response_model=WebhookAck)
async def handle_webhook(
    request: Request,
    source: Optional[str] = None,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    """Acknowledge the Evolution API at once; the turn runs in the background."""
    _check_webhook_secret(request)

    try:
        body = await request.json()
        payload = EvolutionWebhook.model_validate(body)
    except (ValueError, ValidationError) as e:
        logger.warning(f"Unreadable webhook payload: {e}")
        return WebhookAck(status="ignored", reason="invalid_payload")

    event, reason = build_event(payload, body, source)
    if event is None:
        logger.debug(f"Webhook ignored: {reason}")
        return WebhookAck(status="ignored", reason=reason)

    if orchestrator.gate.is_busy(event.contact_id):
        logger.info("Webhook dropped, contact busy", extra={"context": {"contact_id": event.contact_id}})
        return WebhookAck(status="busy")

    schedule_turn(orchestrator, event)
    logger.info(
        "Webhook accepted",
        extra={"context": {"contact_id": event.contact_id, "kind": event.kind, "source": event.source}},
    )
    return WebhookAck(status="accepted")
