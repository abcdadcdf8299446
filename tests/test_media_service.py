from unittest.mock import AsyncMock, Mock

import pytest

from energia_agent.services.media_service import (
    BILL_FAILED_TEXT,
    BILL_OK_TEXT,
    MEDIA_FAILED_ERROR,
    TRANSCRIPTION_FAILED_TEXT,
    MediaExtractor,
    clean_bill_fields,
)
from energia_agent.services.whatsapp_service import MediaPayload


def _transport(mime_type="image/jpeg", error=None):
    transport = Mock()
    transport.fetch_media_base64 = AsyncMock(
        return_value=MediaPayload(base64="AAAA", mime_type=mime_type), side_effect=error
    )
    return transport


BILL_JSON = """```json
{"nomeTitular": " maria souza ", "documentoTitular": "529.982.247-25", "consumoKwh": "480",
 "valorTotal": "R$ 500,00", "valorCip": 20, "tarifaEnergiaKwh": "0,9", "tipoConexao": "monofasico",
 "enderecoCompleto": "Rua das Flores, 100 - Centro"}
```"""


class TestCleanBillFields:
    def test_plausible_values(self):
        fields = clean_bill_fields(
            {
                "nomeTitular": "maria souza",
                "documentoTitular": "12.345.678/0001-95",
                "consumoKwh": 480,
                "valorTotal": "1.234,56",
                "valorCip": 0,
                "tarifaEnergiaKwh": 0.85,
                "tipoConexao": "TRIFASICO",
            }
        )

        assert fields == {
            "holder_name": "MARIA SOUZA",
            "holder_document": "12345678000195",
            "consumption_kwh": 480.0,
            "total_value": 1234.56,
            "cip_fee": 0.0,
            "tariff": 0.85,
            "connection_type": "TRIFASICO",
        }

    def test_implausible_values_dropped(self):
        fields = clean_bill_fields(
            {
                "documentoTitular": "123",
                "consumoKwh": 0,
                "valorTotal": 80000,
                "valorCip": -5,
                "tarifaEnergiaKwh": 7,
                "tipoConexao": "QUADRIFASICO",
            }
        )

        assert fields == {}

    def test_alias_keys(self):
        fields = clean_bill_fields({"nomeCliente": "joão", "cpfCnpj": "52998224725", "tarifa": "0,8"})

        assert fields == {"holder_name": "JOÃO", "holder_document": "52998224725", "tariff": 0.8}

    def test_non_finite_values_dropped(self):
        assert clean_bill_fields({"valorTotal": float("nan"), "consumoKwh": float("inf"), "valorCip": "NaN"}) == {}


class TestMediaExtractor:
    @pytest.mark.asyncio
    async def test_audio_transcribed(self, make_llm):
        llm = make_llm("  Quero saber do desconto  ")
        extractor = MediaExtractor(_transport("audio/ogg"), llm)

        extraction = await extractor.extract("audio", {"key": {"id": "1"}})

        assert extraction.text_input == "Quero saber do desconto"
        assert extraction.bill_fields is None
        [attachment] = llm.calls[0]["attachments"]
        assert attachment.mime_type == "audio/ogg"

    @pytest.mark.asyncio
    async def test_transcription_failure(self, make_llm):
        extractor = MediaExtractor(_transport("audio/ogg"), make_llm(RuntimeError("quota")))

        extraction = await extractor.extract("audio", {})

        assert extraction.text_input == TRANSCRIPTION_FAILED_TEXT

    @pytest.mark.asyncio
    async def test_bill_read(self, make_llm):
        extractor = MediaExtractor(_transport(), make_llm(BILL_JSON))

        extraction = await extractor.extract("image", {})

        assert extraction.text_input == BILL_OK_TEXT
        assert extraction.bill_fields["holder_name"] == "MARIA SOUZA"
        assert extraction.bill_fields["total_value"] == 500.0
        assert extraction.bill_fields["tariff"] == 0.9
        assert extraction.bill_fields["connection_type"] == "MONOFASICO"

    @pytest.mark.asyncio
    async def test_not_a_bill(self, make_llm):
        extractor = MediaExtractor(_transport(), make_llm({"error": "Arquivo não é uma fatura de energia."}))

        extraction = await extractor.extract("document", {})

        assert extraction.text_input == BILL_FAILED_TEXT.format(error="Arquivo não é uma fatura de energia.")
        assert extraction.bill_fields == {"error": "Arquivo não é uma fatura de energia."}

    @pytest.mark.asyncio
    async def test_bill_without_total(self, make_llm):
        extractor = MediaExtractor(_transport(), make_llm({"nomeTitular": "Maria"}))

        result = await extractor.read_bill(Mock())

        assert result.error_code == "missing_total"
        assert result.details["fields"] == {"holder_name": "MARIA"}

    @pytest.mark.asyncio
    async def test_unparsable_ocr(self, make_llm):
        extractor = MediaExtractor(_transport(), make_llm("não consegui ler"))

        result = await extractor.read_bill(Mock())

        assert result.error_code == "ocr_unparsable"

    @pytest.mark.asyncio
    async def test_download_failure(self, make_llm):
        llm = make_llm()
        extractor = MediaExtractor(_transport(error=RuntimeError("404")), llm)

        extraction = await extractor.extract("image", {})

        assert extraction.bill_fields == {"error": MEDIA_FAILED_ERROR}
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_deeply_nested_ocr_reply(self, make_llm):
        extractor = MediaExtractor(_transport(), make_llm('{"valorTotal": ' + "[" * 5000 + "]" * 5000 + "}"))

        result = await extractor.read_bill(Mock())

        assert result.error_code == "ocr_unparsable"

    @pytest.mark.asyncio
    async def test_non_finite_total_is_missing(self, make_llm):
        extractor = MediaExtractor(_transport(), make_llm('{"valorTotal": NaN, "nomeTitular": "Maria"}'))

        result = await extractor.read_bill(Mock())

        assert result.error_code == "missing_total"
        assert result.details["fields"] == {"holder_name": "MARIA"}
