from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None
    finish_reason: Optional[str] = None


@dataclass
class InlineData:
    """Binary attachment sent alongside a prompt (audio, bill image, PDF)."""

    data: str  # base64
    mime_type: str


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
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
        """Generate the next model turn.

        ``history`` holds prior turns as ``{"role": "user"|"model", "parts": [{"text": ...}]}``.
        """
        pass
