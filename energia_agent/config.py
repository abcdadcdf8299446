from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./crm.db"
    debug: bool = False
    log_level: str = "INFO"

    # Evolution API (WhatsApp transport)
    evolution_api_url: str = "http://localhost:8081"
    evolution_api_key: Optional[str] = None
    evolution_instance_name: str = "energia"
    evolution_timeout_seconds: float = 30.0

    # Gemini
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    llm_timeout_seconds: float = 45.0
    llm_max_output_tokens: int = 1024
    llm_temperature: float = 0.7
    history_limit: int = 40

    # Admin alerts
    admin_whatsapp_number_1: Optional[str] = None
    admin_whatsapp_number_2: Optional[str] = None

    # Proposal API
    proposal_api_url: str = "https://geus.energiaa.com.br/api/propostaAgente/receber-proposta/"
    proposal_timeout_seconds: float = 30.0

    # Endpoint protection
    webhook_secret: Optional[str] = None
    admin_token: Optional[str] = None

    # Humanized dispatch pacing
    dispatch_ms_per_char: int = 50
    dispatch_min_delay_ms: int = 500
    dispatch_max_delay_ms: int = 3000
    dispatch_jitter_ms: int = 1000
    dispatch_first_segment_delay_ms: int = 0

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
