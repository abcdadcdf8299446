from dataclasses import dataclass
from typing import Optional

import httpx

from energia_agent.config import settings
from energia_agent.logging_config import get_logger

logger = get_logger("whatsapp_service")


@dataclass
class MediaPayload:
    base64: str
    mime_type: str

    @property
    def is_audio(self) -> bool:
        return self.mime_type.startswith("audio/")


class EvolutionClient:
    """Evolution API transport (WhatsApp)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_name: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.evolution_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.evolution_api_key
        self.instance_name = instance_name or settings.evolution_instance_name
        self.timeout_seconds = timeout_seconds or settings.evolution_timeout_seconds

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"apikey": self.api_key or ""},
            timeout=self.timeout_seconds,
        )

    async def send_text(self, number: str, text: str) -> bool:
        """Send one text message. Returns False instead of raising."""
        if not number or not isinstance(text, str) or not text.strip():
            logger.warning(f"send_text: missing number={number!r} or empty text")
            return False

        try:
            async with self._client() as client:
                response = await client.post(
                    f"/message/sendText/{self.instance_name}",
                    json={"number": number, "text": text},
                )
            if response.status_code >= 400:
                logger.error(
                    f"Evolution send failed: status={response.status_code}, body={response.text[:200]}",
                    extra={"context": {"number": number}},
                )
                return False
            return True
        except httpx.HTTPError as e:
            logger.error(f"Error sending WhatsApp message: {e}", extra={"context": {"number": number}})
            return False

    async def fetch_media_base64(self, raw_message: dict) -> MediaPayload:
        """Download inbound media as base64. Raises on transport or payload errors."""
        async with self._client() as client:
            response = await client.post(
                f"/chat/getBase64FromMediaMessage/{self.instance_name}",
                json={"message": raw_message},
            )
        response.raise_for_status()
        data = response.json()
        base64_data = data.get("base64")
        mime_type = data.get("mimetype") or data.get("mimeType")
        if not base64_data or not mime_type:
            raise ValueError("Media payload missing base64 data or mimetype")
        # "audio/ogg; codecs=opus" -> "audio/ogg"
        return MediaPayload(base64=base64_data, mime_type=mime_type.split(";")[0].strip())

    async def instance_status(self) -> dict:
        """Connection state of the configured instance, for health checks."""
        status = {"instance": self.instance_name, "status": "unknown", "connected": False}
        try:
            async with self._client() as client:
                response = await client.get("/instance/fetchInstances")
            response.raise_for_status()
            instances = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Evolution instance check failed: {e}")
            status.update({"status": "error", "error": str(e)})
            return status

        for item in instances if isinstance(instances, list) else []:
            info = item.get("instance", item) if isinstance(item, dict) else {}
            name = info.get("instanceName") or info.get("name")
            if name == self.instance_name:
                state = info.get("status") or info.get("connectionStatus") or "unknown"
                status.update({"status": state, "connected": state == "open"})
                return status

        status["status"] = "not_found"
        return status
