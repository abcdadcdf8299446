"""Decode the language model's reply into a ResponseContract.

The model is asked to answer with one JSON object. In practice the object
comes wrapped in prose or code fences, with a single ``response_message``
string split by ``|||`` instead of a list, or not at all. Whatever arrives,
``parse_contract`` returns a contract with at least one segment and never
raises; replies that could not be decoded are marked ``degraded``.
"""

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from energia_agent.logging_config import get_logger
from energia_agent.services.notification_rules import InterestLevel
from energia_agent.services.stage_machine import coerce_stage

logger = get_logger("contract_parser")

SEGMENT_DELIMITER = "|||"
RETRY_MESSAGE = "Desculpe, tive um problema para processar sua mensagem. Pode tentar novamente? 😅"
APOLOGY_MESSAGE = (
    "Desculpe, tive uma instabilidade. Um de nossos especialistas já foi notificado e entrará em contato. 😅"
)

_DELAY_TOKEN = re.compile(r"^delay\s*:\s*\d+\s*(ms)?$", re.IGNORECASE)

# Contract key -> Lead attribute. Anything else the model sends is dropped.
CAPTURE_FIELD_MAP = {
    "name": "name",
    "cpf": "tax_id",
    "email": "email",
    "address": "address",
    "address_logradouro": "address_street",
    "address_numero": "address_number",
    "address_bairro": "address_district",
    "address_cidade": "address_city",
    "address_uf": "address_state",
    "consumo_medio": "average_consumption",
    "taxa_iluminacao": "lighting_fee",
    "tipo_conexao": "connection_type",
}
NUMERIC_FIELDS = {"average_consumption", "lighting_fee"}


class RawContract(BaseModel):
    """Shape of the JSON object the system prompt asks for."""

    model_config = ConfigDict(extra="allow")

    response_messages: Optional[list[Any]] = None
    response_message: Optional[Union[str, list[Any]]] = None
    next_stage: Any = None
    summary: Optional[Any] = None
    interest_level: Optional[Any] = None


@dataclass
class ResponseContract:
    segments: list[str]
    next_stage: Optional[int]
    captured_fields: dict[str, Any] = field(default_factory=dict)
    interest_level: Optional[InterestLevel] = None
    summary: Optional[str] = None
    degraded: bool = False
    degraded_reason: Optional[str] = None

    def __post_init__(self):
        if not self.segments:
            raise ValueError("ResponseContract requires at least one segment")

    def lead_updates(self) -> dict[str, Any]:
        """Allow-listed Lead attributes this contract changes."""
        updates = dict(self.captured_fields)
        if self.summary:
            updates["summary"] = self.summary
        if self.interest_level is not None:
            updates["interest_level"] = self.interest_level.value
        return updates


def find_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` span, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        start = text.find("{", start + 1)
    return None


def split_segments(value: Any) -> list[str]:
    """Flatten a string or list of strings into trimmed, non-empty segments."""
    if value is None:
        return []
    items = value if isinstance(value, list) else [value]
    segments: list[str] = []
    for item in items:
        if not isinstance(item, str):
            continue
        for part in item.split(SEGMENT_DELIMITER):
            part = part.strip()
            if not part or _DELAY_TOKEN.match(part):
                continue
            segments.append(part)
    return segments


def _clean_value(attribute: str, value: Any) -> Any:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    if attribute in NUMERIC_FIELDS:
        raw = value if isinstance(value, (int, float)) else str(value).strip().replace(",", ".")
        try:
            number = float(raw)
        except (ValueError, OverflowError):
            return None
        # NaN and infinity count as missing.
        return number if math.isfinite(number) else None
    text = str(value).strip()
    if not text or text.lower() in {"null", "none", "n/a"}:
        return None
    if attribute == "connection_type":
        return text.upper()
    if attribute == "address_state":
        return text.upper()
    return text


def extract_captured_fields(data: dict[str, Any]) -> dict[str, Any]:
    captured: dict[str, Any] = {}
    for key, attribute in CAPTURE_FIELD_MAP.items():
        value = _clean_value(attribute, data.get(key))
        if value is not None:
            captured[attribute] = value
    return captured


def degraded_contract(raw_text: str, current_stage: Optional[int], reason: str) -> ResponseContract:
    text = (raw_text or "").strip()
    return ResponseContract(
        segments=[text or RETRY_MESSAGE],
        next_stage=current_stage,
        degraded=True,
        degraded_reason=reason,
    )


def apology_contract(current_stage: Optional[int], reason: str) -> ResponseContract:
    return ResponseContract(
        segments=[APOLOGY_MESSAGE],
        next_stage=current_stage,
        degraded=True,
        degraded_reason=reason,
    )


def parse_contract(raw_text: Optional[str], current_stage: Optional[int]) -> ResponseContract:
    """Decode raw model output. Never raises."""
    raw_text = raw_text or ""
    span = find_json_object(raw_text)
    if span is None:
        logger.warning("No JSON object in model reply", extra={"context": {"preview": raw_text[:120]}})
        return degraded_contract(raw_text, current_stage, "no_json")

    try:
        data = json.loads(span)
        if not isinstance(data, dict):
            return degraded_contract(raw_text, current_stage, "not_an_object")
        raw = RawContract.model_validate(data)
    except (ValueError, RecursionError, ValidationError) as e:
        logger.warning(f"Model reply is not a valid contract: {e}")
        return degraded_contract(raw_text, current_stage, "invalid_json")

    segments = split_segments(raw.response_messages) or split_segments(raw.response_message)
    if not segments:
        return degraded_contract(raw_text, current_stage, "no_segments")

    proposed_stage = coerce_stage(raw.next_stage)
    summary = raw.summary.strip() if isinstance(raw.summary, str) and raw.summary.strip() else None

    return ResponseContract(
        segments=segments,
        next_stage=proposed_stage if proposed_stage is not None else current_stage,
        captured_fields=extract_captured_fields(data),
        interest_level=InterestLevel.parse(raw.interest_level),
        summary=summary,
    )
