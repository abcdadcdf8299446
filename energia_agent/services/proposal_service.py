"""Submit a lead's data to the proposal API, which renders and sends the proposal."""

import re
from typing import Any, Optional

import httpx

from energia_agent.config import settings
from energia_agent.logging_config import get_logger
from energia_agent.services.result import Result

logger = get_logger("proposal_service")

CONNECTION_TYPES = ("MONOFASICO", "BIFASICO", "TRIFASICO")
DEFAULT_CONNECTION_TYPE = "MONOFASICO"
REQUIRED_LEAD_FIELDS = ("name", "tax_id", "average_consumption", "lighting_fee", "address_street")

SUCCESS_INSTRUCTION = (
    "INSTRUÇÃO INTERNA: A proposta foi gerada e enviada com sucesso. Informe o cliente e pergunte o que ele achou."
)
FAILURE_INSTRUCTION = (
    "INSTRUÇÃO INTERNA: Ocorreu um erro ao gerar a proposta: {error}. "
    "Informe o cliente sobre o erro e diga que um especialista irá verificar."
)
MISSING_DATA_INSTRUCTION = (
    "INSTRUÇÃO INTERNA: Dados insuficientes para gerar a proposta. "
    "Peça ao cliente para confirmar as informações que faltam."
)


def _digits(value: Any) -> str:
    return re.sub(r"\D", "", str(value or ""))


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _number(value: Any) -> float:
    try:
        return float(str(value).replace(",", "."))
    except (TypeError, ValueError):
        return 0.0


def is_valid_cpf(cpf: Optional[str]) -> bool:
    digits = _digits(cpf)
    if len(digits) != 11 or len(set(digits)) == 1:
        return False
    for position in (9, 10):
        total = sum(int(digits[i]) * (position + 1 - i) for i in range(position))
        check = 11 - total % 11
        if check >= 10:
            check = 0
        if check != int(digits[position]):
            return False
    return True


def missing_fields(lead) -> list[str]:
    return [name for name in REQUIRED_LEAD_FIELDS if getattr(lead, name, None) in (None, "")]


def build_payload(lead) -> dict:
    return {
        "nome": _text(lead.name),
        "cpf": _digits(lead.tax_id),
        "whatsapp": _digits(lead.contact_id),
        "sessionId": lead.protocol or lead.contact_id,
        "endereco": {
            "logradouro": _text(lead.address_street),
            "numero": _text(lead.address_number),
            "bairro": _text(lead.address_district),
            "cidade": _text(lead.address_city),
            "uf": _text(lead.address_state).upper(),
        },
        "consumo_medio": _number(lead.average_consumption),
        "taxa_iluminacao": _number(lead.lighting_fee),
        "tipo_conexao": _text(lead.connection_type).upper() or DEFAULT_CONNECTION_TYPE,
    }


def validate_payload(payload: dict) -> list[str]:
    errors = []
    address = payload.get("endereco") or {}

    if len(payload.get("nome", "")) < 2:
        errors.append("Nome deve ter pelo menos 2 caracteres")
    if not is_valid_cpf(payload.get("cpf")):
        errors.append("CPF inválido")
    if len(payload.get("whatsapp", "")) < 10:
        errors.append("WhatsApp deve ter pelo menos 10 dígitos")
    if len(address.get("logradouro", "")) < 3:
        errors.append("Logradouro deve ter pelo menos 3 caracteres")
    if len(address.get("cidade", "")) < 2:
        errors.append("Cidade deve ter pelo menos 2 caracteres")
    if len(address.get("uf", "")) != 2:
        errors.append("UF deve ter exatamente 2 caracteres")
    if payload.get("consumo_medio", 0) <= 0:
        errors.append("Consumo médio deve ser maior que zero")
    if payload.get("taxa_iluminacao", 0) < 0:
        errors.append("Taxa de iluminação deve ser informada (pode ser 0)")
    if payload.get("tipo_conexao") not in CONNECTION_TYPES:
        errors.append("Tipo de conexão deve ser MONOFASICO, BIFASICO ou TRIFASICO")

    return errors


class ProposalClient:
    def __init__(self, api_url: Optional[str] = None, timeout_seconds: Optional[float] = None):
        self.api_url = api_url or settings.proposal_api_url
        self.timeout_seconds = timeout_seconds or settings.proposal_timeout_seconds

    async def submit(self, lead) -> Result[dict]:
        """Validate and post the lead. Expected failures come back as Result.failure."""
        missing = missing_fields(lead)
        if missing:
            return Result.failure("Dados insuficientes", "missing_data", missing=missing)

        payload = build_payload(lead)
        errors = validate_payload(payload)
        if errors:
            logger.warning("Proposal data rejected", extra={"context": {"contact_id": lead.contact_id, "errors": errors}})
            return Result.failure(f"Dados inválidos: {', '.join(errors)}", "invalid_data", errors=errors)

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    self.api_url,
                    json=payload,
                    headers={"User-Agent": "EnergiaAgent/1.0"},
                )
        except httpx.TimeoutException:
            logger.error("Proposal API timeout", extra={"context": {"contact_id": lead.contact_id}})
            return Result.failure("Timeout na conexão com o servidor de propostas", "timeout")
        except httpx.HTTPError as e:
            logger.error(f"Proposal API unreachable: {e}", extra={"context": {"contact_id": lead.contact_id}})
            return Result.failure("Erro de conexão com o servidor de propostas", "network_error")

        if not 200 <= response.status_code < 300:
            logger.error(
                f"Proposal API error: status={response.status_code}, body={response.text[:200]}",
                extra={"context": {"contact_id": lead.contact_id}},
            )
            return Result.failure(f"Erro do servidor: {response.status_code}", "http_error", status=response.status_code)

        logger.info("Proposal submitted", extra={"context": {"contact_id": lead.contact_id}})
        return Result.success({"session_id": payload["sessionId"], "status": response.status_code})


def instruction_for(result: Result) -> str:
    """Internal instruction handed to the model after a proposal attempt."""
    if result.ok:
        return SUCCESS_INSTRUCTION
    if result.error_code == "missing_data":
        return MISSING_DATA_INSTRUCTION
    return FAILURE_INSTRUCTION.format(error=result.error)
