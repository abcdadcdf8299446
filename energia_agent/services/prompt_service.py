import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Optional

from energia_agent.logging_config import get_logger
from energia_agent.services.contract_parser import CAPTURE_FIELD_MAP

logger = get_logger("prompt_service")

_SYSTEM_PROMPT_PATH = Path(__file__).resolve().parents[1] / "knowledge" / "system_prompt.md"
FALLBACK_SYSTEM_PROMPT = "Você é um assistente prestativo. Responda em JSON."
ORGANIC_SOURCE = "Organico"

HISTORY_ROLES = {"user": "user", "agent": "model"}
_CONTRACT_KEYS = {attribute: key for key, attribute in CAPTURE_FIELD_MAP.items()}


@dataclass
class ConversationContext:
    stage: int
    known_fields: dict[str, Any] = field(default_factory=dict)
    dossier: Optional[str] = None
    proposal: Optional[dict[str, str]] = None
    campaign_source: Optional[str] = None


@lru_cache(maxsize=2)
def load_system_prompt(path: Path = _SYSTEM_PROMPT_PATH) -> str:
    try:
        text = path.read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.error(f"System prompt not readable, using fallback: {e}")
        return FALLBACK_SYSTEM_PROMPT
    return text or FALLBACK_SYSTEM_PROMPT


def campaign_hint(source: Optional[str]) -> Optional[str]:
    if not source or source == ORGANIC_SOURCE:
        return None
    return (
        f'CONTEXTO DA CAMPANHA: Cliente veio da campanha "{source}". '
        "Adapte a abordagem conforme necessário."
    )


def build_turn_prompt(user_input: str, context: ConversationContext) -> str:
    """Compile the per-turn message: stage, customer input and any auxiliary hints."""
    lines = [
        "**CONTEXTO ATUAL:**",
        f"- Estágio da conversa: {context.stage}",
        f'- Mensagem do cliente: "{user_input}"',
    ]

    hint = campaign_hint(context.campaign_source)
    if hint:
        lines.append(f"- {hint}")
    if context.dossier:
        lines.append(f"- Conhecimento relevante: {context.dossier}")
    if context.proposal:
        lines.append(f"- Proposta calculada: {json.dumps(context.proposal, ensure_ascii=False)}")
    if context.known_fields:
        known = {_CONTRACT_KEYS.get(name, name): value for name, value in context.known_fields.items()}
        lines.append(f"- Dados já coletados: {json.dumps(known, ensure_ascii=False, default=str)}")

    lines.extend(
        [
            "",
            "**INSTRUÇÕES:**",
            "Responda como Gabriel, de forma humana e natural. Divida sua resposta em mensagens menores. "
            "Retorne sempre no formato JSON especificado.",
        ]
    )
    return "\n".join(lines)


def build_history(records: Iterable) -> list[dict]:
    """Message records as model turns, oldest first.

    Consecutive records from the same side are merged into one turn and the
    history always opens with a user turn.
    """
    history: list[dict] = []
    for record in records:
        role = HISTORY_ROLES.get(record.direction)
        if role is None or not record.text:
            continue
        if not history and role != "user":
            continue
        if history and history[-1]["role"] == role:
            history[-1]["parts"].append({"text": record.text})
        else:
            history.append({"role": role, "parts": [{"text": record.text}]})
    return history
