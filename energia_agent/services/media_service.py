"""Turn inbound audio, images and documents into text the conversation can use.

Audio is transcribed. Images and documents are treated as electricity bills
and read field by field; the cleaned fields feed the savings calculation.
"""

import json
from dataclasses import dataclass
from typing import Any, Optional

from energia_agent.logging_config import get_logger
from energia_agent.services.contract_parser import find_json_object
from energia_agent.services.llm.base import InlineData, LLMProvider
from energia_agent.services.proposal_calculator import to_decimal
from energia_agent.services.result import Result

logger = get_logger("media_service")

TRANSCRIPTION_PROMPT = "Transcreva este áudio na íntegra. Retorne apenas o texto."
BILL_OCR_PROMPT = (
    "Você é um OCR especialista em faturas de energia. Extraia os dados em um objeto JSON com as chaves: "
    "'nomeTitular', 'documentoTitular', 'enderecoCompleto', 'consumoKwh', 'valorTotal', 'valorCip', "
    "'tarifaEnergiaKwh' e 'tipoConexao' ('MONOFASICO', 'BIFASICO' ou 'TRIFASICO'). "
    'Se não for uma fatura, retorne {"error": "Arquivo não é uma fatura de energia."}.'
)

TRANSCRIPTION_FAILED_TEXT = "Falha ao transcrever o áudio."
BILL_OK_TEXT = "Análise da Fatura Concluída."
BILL_FAILED_TEXT = "Análise da Fatura Falhou: {error}"
MEDIA_FAILED_ERROR = "Falha ao processar o arquivo de mídia."

CONNECTION_TYPES = ("MONOFASICO", "BIFASICO", "TRIFASICO")

# (field, accepted OCR keys, exclusive lower bound, exclusive upper bound)
_NUMERIC_RULES = (
    ("consumption_kwh", ("consumoKwh",), 0, 10000),
    ("total_value", ("valorTotal",), 0, 50000),
    ("cip_fee", ("valorCip",), None, 1000),
    ("tariff", ("tarifaEnergiaKwh", "tarifa"), 0, 5),
)


@dataclass
class MediaExtraction:
    text_input: str
    bill_fields: Optional[dict[str, Any]] = None


def _first(data: dict, *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def clean_bill_fields(data: dict[str, Any]) -> dict[str, Any]:
    """Keep only plausible values from raw OCR output."""
    cleaned: dict[str, Any] = {}

    holder = _first(data, "nomeTitular", "nomeCliente")
    if isinstance(holder, str) and holder.strip():
        cleaned["holder_name"] = holder.strip().upper()

    document = _first(data, "documentoTitular", "cpfCnpj")
    if document is not None:
        digits = "".join(char for char in str(document) if char.isdigit())
        if len(digits) in (11, 14):
            cleaned["holder_document"] = digits

    for name, keys, lower, upper in _NUMERIC_RULES:
        value = to_decimal(_first(data, *keys))
        if value is None:
            continue
        if lower is None and value < 0:
            continue
        if lower is not None and value <= lower:
            continue
        if value >= upper:
            continue
        cleaned[name] = float(value)

    connection = _first(data, "tipoConexao")
    if isinstance(connection, str) and connection.strip().upper() in CONNECTION_TYPES:
        cleaned["connection_type"] = connection.strip().upper()

    address = _first(data, "enderecoCompleto", "endereco")
    if isinstance(address, str) and address.strip():
        cleaned["address"] = address.strip()

    return cleaned


class MediaExtractor:
    def __init__(self, transport, llm: LLMProvider):
        self.transport = transport
        self.llm = llm

    async def transcribe(self, attachment: InlineData) -> Result[str]:
        try:
            response = await self.llm.generate(None, [], TRANSCRIPTION_PROMPT, attachments=[attachment])
        except Exception as e:
            logger.error(f"Audio transcription failed: {e}")
            return Result.failure(str(e), "transcription_error")
        text = (response.content or "").strip()
        if not text:
            return Result.failure("Empty transcription", "empty_transcription")
        return Result.success(text)

    async def read_bill(self, attachment: InlineData) -> Result[dict]:
        try:
            response = await self.llm.generate(None, [], BILL_OCR_PROMPT, attachments=[attachment])
        except Exception as e:
            logger.error(f"Bill OCR failed: {e}")
            return Result.failure(MEDIA_FAILED_ERROR, "ocr_error")

        span = find_json_object((response.content or "").replace("```json", "").replace("```", ""))
        try:
            data = json.loads(span) if span else None
        except (ValueError, RecursionError):
            data = None
        if not isinstance(data, dict):
            return Result.failure("Falha ao extrair dados da fatura.", "ocr_unparsable")
        if data.get("error"):
            return Result.failure(str(data["error"]), "not_a_bill")

        fields = clean_bill_fields(data)
        if "total_value" not in fields:
            return Result.failure("Valor total da fatura não identificado.", "missing_total", fields=fields)
        return Result.success(fields)

    async def extract(self, kind: str, raw_message: dict) -> MediaExtraction:
        """Never raises: failures become the fixed fallback texts."""
        try:
            media = await self.transport.fetch_media_base64(raw_message)
        except Exception as e:
            logger.error(f"Media download failed: {e}", extra={"context": {"kind": kind}})
            if kind == "audio":
                return MediaExtraction(text_input=TRANSCRIPTION_FAILED_TEXT)
            return MediaExtraction(
                text_input=BILL_FAILED_TEXT.format(error=MEDIA_FAILED_ERROR),
                bill_fields={"error": MEDIA_FAILED_ERROR},
            )

        attachment = InlineData(data=media.base64, mime_type=media.mime_type)
        if media.is_audio:
            result = await self.transcribe(attachment)
            return MediaExtraction(text_input=result.unwrap_or(TRANSCRIPTION_FAILED_TEXT))

        result = await self.read_bill(attachment)
        if result.ok:
            logger.info("Bill extracted", extra={"context": {"fields": sorted(result.value)}})
            return MediaExtraction(text_input=BILL_OK_TEXT, bill_fields=result.value)
        return MediaExtraction(
            text_input=BILL_FAILED_TEXT.format(error=result.error),
            bill_fields={"error": result.error},
        )
