from energia_agent.services.llm.base import InlineData, LLMProvider, LLMResponse
from energia_agent.services.llm.gemini_provider import GeminiProvider

__all__ = ["GeminiProvider", "InlineData", "LLMProvider", "LLMResponse"]
