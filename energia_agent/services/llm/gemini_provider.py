from typing import List, Optional

import httpx

from energia_agent.logging_config import get_logger
from energia_agent.services.llm.base import InlineData, LLMProvider, LLMResponse

logger = get_logger("llm.gemini")

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


class GeminiProvider(LLMProvider):
    """Google Gemini generateContent REST API."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gemini-1.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        temperature: float = 0.7,
        max_tokens: int = 1024,
        timeout_seconds: float = 60.0,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds

    def build_payload(
        self,
        system_prompt: Optional[str],
        history: List[dict],
        prompt: str,
        attachments: Optional[List[InlineData]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> dict:
        parts: list[dict] = [{"text": prompt}]
        for attachment in attachments or []:
            parts.append({"inlineData": {"mimeType": attachment.mime_type, "data": attachment.data}})

        # Roles alternate: a trailing customer turn absorbs the new prompt.
        contents = [{**turn, "parts": list(turn.get("parts") or [])} for turn in history]
        if contents and contents[-1].get("role") == "user":
            contents[-1]["parts"].extend(parts)
        else:
            contents.append({"role": "user", "parts": parts})

        payload = {
            "contents": contents,
            "generationConfig": {
                "temperature": self.temperature if temperature is None else temperature,
                "maxOutputTokens": max_tokens or self.max_tokens,
            },
            "safetySettings": SAFETY_SETTINGS,
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        return payload

    async def generate(
        self,
        system_prompt: Optional[str],
        history: List[dict],
        prompt: str,
        *,
        attachments: Optional[List[InlineData]] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Generate response from Gemini."""
        if not self.api_key:
            raise RuntimeError("Gemini API key is not configured")

        model = model or self.default_model
        payload = self.build_payload(system_prompt, history, prompt, attachments, temperature, max_tokens)
        logger.debug(f"Gemini request: model={model}, history_count={len(history)}")

        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(
                f"{self.base_url}/models/{model}:generateContent",
                headers={"x-goog-api-key": self.api_key, "Content-Type": "application/json"},
                json=payload,
            )

        if response.status_code != 200:
            logger.error(f"Gemini error: {response.text[:500]}")
            raise Exception(f"Gemini API error: {response.status_code} - {response.text[:200]}")

        data = response.json()
        content = ""
        finish_reason = None
        candidates = data.get("candidates") or []
        if candidates:
            candidate = candidates[0]
            finish_reason = candidate.get("finishReason")
            parts = (candidate.get("content") or {}).get("parts") or []
            content = "".join(part.get("text", "") for part in parts)
        logger.debug(f"Gemini content: {content[:100] if content else 'EMPTY'}")

        return LLMResponse(
            content=content,
            model=data.get("modelVersion", model),
            usage=data.get("usageMetadata"),
            finish_reason=finish_reason,
        )
