from unittest.mock import AsyncMock, Mock, patch

import pytest
from fastapi.testclient import TestClient

from energia_agent.config import settings
from energia_agent.dependencies import get_orchestrator, get_store, get_transport
from energia_agent.main import app
from energia_agent.routers.webhook import build_event
from energia_agent.schemas.webhook import EvolutionWebhook
from energia_agent.services.contact_gate import ContactGate
from energia_agent.services.lead_service import LeadSnapshot


def _upsert(text="Oi, tudo bem?", from_me=False, jid="5567999990000@s.whatsapp.net", **message):
    return {
        "event": "messages.upsert",
        "instance": "energia",
        "data": {
            "key": {"remoteJid": jid, "fromMe": from_me, "id": "ABC123"},
            "pushName": "Maria",
            "message": message or {"conversation": text},
        },
    }


@pytest.fixture
def orchestrator():
    return Mock(gate=ContactGate())


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class TestBuildEvent:
    def test_text_message(self):
        body = _upsert("quero saber do desconto")

        event, reason = build_event(EvolutionWebhook.model_validate(body), body, source=" Campanha_X ")

        assert reason == ""
        assert event.contact_id == "5567999990000"
        assert event.kind == "text"
        assert event.text == "quero saber do desconto"
        assert event.raw_message is None
        assert event.source == "Campanha_X"

    def test_extended_text_message(self):
        body = _upsert(extendedTextMessage={"text": "link aqui"})

        event, _ = build_event(EvolutionWebhook.model_validate(body), body)

        assert event.text == "link aqui"

    def test_audio_keeps_raw_message(self):
        body = _upsert(audioMessage={"mimetype": "audio/ogg; codecs=opus"})

        event, _ = build_event(EvolutionWebhook.model_validate(body), body)

        assert event.kind == "audio"
        assert event.raw_message == body["data"]

    @pytest.mark.parametrize(
        "body, reason",
        [
            ({"event": "connection.update", "data": {}}, "unhandled_event"),
            ({"event": "messages.upsert", "data": {"key": {"remoteJid": "556799@s.whatsapp.net"}}}, "no_message"),
            (_upsert(from_me=True), "from_me"),
            (_upsert(jid="@s.whatsapp.net"), "no_contact"),
            (_upsert(stickerMessage={"url": "x"}), "unsupported_message"),
        ],
    )
    def test_skipped(self, body, reason):
        event, skipped = build_event(EvolutionWebhook.model_validate(body), body)

        assert event is None
        assert skipped == reason


class TestWebhookEndpoint:
    @patch("energia_agent.routers.webhook.schedule_turn")
    def test_accepted(self, mock_schedule, client, orchestrator):
        response = client.post("/webhook?source=Instagram", json=_upsert("oi"))

        assert response.status_code == 200
        assert response.json()["status"] == "accepted"
        mock_schedule.assert_called_once()
        scheduled_orchestrator, event = mock_schedule.call_args[0]
        assert scheduled_orchestrator is orchestrator
        assert event.contact_id == "5567999990000"
        assert event.source == "Instagram"

    @patch("energia_agent.routers.webhook.schedule_turn")
    def test_own_message_ignored(self, mock_schedule, client):
        response = client.post("/webhook", json=_upsert(from_me=True))

        assert response.json() == {"status": "ignored", "reason": "from_me"}
        mock_schedule.assert_not_called()

    @patch("energia_agent.routers.webhook.schedule_turn")
    def test_other_event_ignored(self, mock_schedule, client):
        response = client.post("/webhook", json={"event": "qrcode.updated", "data": {}})

        assert response.json() == {"status": "ignored", "reason": "unhandled_event"}
        mock_schedule.assert_not_called()

    @patch("energia_agent.routers.webhook.schedule_turn")
    def test_invalid_json(self, mock_schedule, client):
        response = client.post("/webhook", content=b"not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 200
        assert response.json() == {"status": "ignored", "reason": "invalid_payload"}
        mock_schedule.assert_not_called()

    @patch("energia_agent.routers.webhook.schedule_turn")
    def test_busy_contact_dropped(self, mock_schedule, client, orchestrator):
        orchestrator.gate.try_enter("5567999990000")

        response = client.post("/webhook", json=_upsert("mais uma"))

        assert response.json()["status"] == "busy"
        mock_schedule.assert_not_called()


class TestWebhookSecret:
    @patch("energia_agent.routers.webhook.schedule_turn")
    def test_missing_secret_returns_401(self, mock_schedule, client):
        with patch.object(settings, "webhook_secret", "secret"):
            response = client.post("/webhook", json=_upsert())

        assert response.status_code == 401
        mock_schedule.assert_not_called()

    @patch("energia_agent.routers.webhook.schedule_turn")
    def test_invalid_secret_returns_401(self, mock_schedule, client):
        with patch.object(settings, "webhook_secret", "secret"):
            response = client.post("/webhook", json=_upsert(), headers={"X-Webhook-Secret": "wrong"})

        assert response.status_code == 401

    @patch("energia_agent.routers.webhook.schedule_turn")
    def test_valid_header_secret(self, mock_schedule, client):
        with patch.object(settings, "webhook_secret", "secret"):
            response = client.post("/webhook", json=_upsert(), headers={"X-Webhook-Secret": "secret"})

        assert response.status_code == 200
        mock_schedule.assert_called_once()

    @patch("energia_agent.routers.webhook.schedule_turn")
    def test_query_secret_fallback(self, mock_schedule, client):
        with patch.object(settings, "webhook_secret", "secret"):
            response = client.post("/webhook?webhook_secret=secret", json=_upsert())

        assert response.status_code == 200


class TestAdminEndpoints:
    def test_reset_user(self):
        store = Mock()
        store.reset_stage.return_value = LeadSnapshot(contact_id="5567999990000", stage=0)
        app.dependency_overrides[get_store] = lambda: store
        try:
            response = TestClient(app).post("/reset-user", json={"number": "5567999990000@s.whatsapp.net"})
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        assert response.json() == {"success": "Estágio do usuário 5567999990000 resetado para 0.", "stage": 0}
        store.reset_stage.assert_called_once_with("5567999990000")

    def test_reset_unknown_user(self):
        store = Mock()
        store.reset_stage.return_value = None
        app.dependency_overrides[get_store] = lambda: store
        try:
            response = TestClient(app).post("/reset-user", json={"number": "5500000000000"})
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 404
        assert response.json()["detail"] == "Usuário não encontrado."

    def test_reset_requires_admin_token_when_configured(self):
        store = Mock()
        app.dependency_overrides[get_store] = lambda: store
        try:
            with patch.object(settings, "admin_token", "token"):
                response = TestClient(app).post("/reset-user", json={"number": "5567999990000"})
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 401
        store.reset_stage.assert_not_called()

    def test_health(self, client, orchestrator):
        transport = Mock()
        transport.instance_status = AsyncMock(
            return_value={"instance": "energia", "status": "open", "connected": True}
        )
        orchestrator.gate.try_enter("5567999990000")
        app.dependency_overrides[get_transport] = lambda: transport

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "whatsapp": {"instance": "energia", "status": "open", "connected": True},
            "in_flight": 1,
        }

    def test_root(self):
        response = TestClient(app).get("/")

        assert response.json()["status"] == "ok"
