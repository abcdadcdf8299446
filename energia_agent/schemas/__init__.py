from energia_agent.schemas.admin import HealthResponse, ResetUserRequest, ResetUserResponse
from energia_agent.schemas.webhook import EvolutionWebhook, WebhookAck

__all__ = [
    "EvolutionWebhook",
    "HealthResponse",
    "ResetUserRequest",
    "ResetUserResponse",
    "WebhookAck",
]
