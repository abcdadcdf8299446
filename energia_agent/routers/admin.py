"""Operational endpoints: stage reset and health."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from energia_agent.config import settings
from energia_agent.dependencies import get_orchestrator, get_store, get_transport
from energia_agent.logging_config import get_logger
from energia_agent.schemas.admin import HealthResponse, ResetUserRequest, ResetUserResponse
from energia_agent.services.lead_service import LeadStore
from energia_agent.services.orchestrator import ConversationOrchestrator
from energia_agent.services.whatsapp_service import EvolutionClient

logger = get_logger("admin")

router = APIRouter(tags=["admin"])


def _require_admin_token(provided: Optional[str]) -> None:
    expected = settings.admin_token
    if not expected:
        return
    if not provided or provided != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


@router.post("/reset-user", response_model=ResetUserResponse)
def reset_user(
    request: ResetUserRequest,
    store: LeadStore = Depends(get_store),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    """Put a lead back at stage 0 so automation resumes."""
    _require_admin_token(x_admin_token)

    lead = store.reset_stage(request.number)
    if lead is None:
        raise HTTPException(status_code=404, detail="Usuário não encontrado.")

    logger.info("Lead stage reset via admin", extra={"context": {"contact_id": request.number}})
    return ResetUserResponse(success=f"Estágio do usuário {request.number} resetado para 0.", stage=lead.stage)


@router.get("/health", response_model=HealthResponse)
async def health(
    transport: EvolutionClient = Depends(get_transport),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    whatsapp = await transport.instance_status()
    return HealthResponse(
        status="ok",
        whatsapp=whatsapp,
        in_flight=len(orchestrator.gate.in_flight),
    )
