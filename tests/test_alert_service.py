from unittest.mock import AsyncMock, Mock

import pytest

from energia_agent.services.alert_service import AdminNotifier, render
from energia_agent.services.notification_rules import Notification, NotificationKind


class TestRender:
    def test_new_lead(self):
        assert render(NotificationKind.NEW_LEAD, {"contact_id": "5567999"}) == "👋 Novo Lead!\n*Contato:* 5567999"

    def test_qualified_lead_defaults(self):
        text = render(NotificationKind.QUALIFIED_LEAD, {"contact_id": "5567999", "name": "Maria", "summary": None})

        assert "*Cliente:* Maria" in text
        assert "_Cliente aceitou a proposta._" in text
        assert "*Nível de Interesse:* *Alto*" in text

    def test_high_interest_without_name(self):
        text = render(NotificationKind.HIGH_INTEREST, {"contact_id": "5567999", "interest_level": "Quente"})

        assert "*Nome:* N/A" in text
        assert "*Nível:* *Quente*" in text

    def test_system_error(self):
        text = render(NotificationKind.SYSTEM_ERROR, {"contact_id": "5567999", "error": "Timeout na chamada da IA"})

        assert "Falha em msg de 5567999." in text
        assert "*Erro:* Timeout na chamada da IA" in text


class TestRecipients:
    def test_primary_only_kinds(self):
        notifier = AdminNotifier(Mock(), primary_number="111", secondary_number="222")

        assert notifier.recipients(NotificationKind.NEW_LEAD) == ["111"]
        assert notifier.recipients(NotificationKind.SYSTEM_ERROR) == ["111"]

    def test_sales_kinds_go_to_both(self):
        notifier = AdminNotifier(Mock(), primary_number="111", secondary_number="222")

        assert notifier.recipients(NotificationKind.QUALIFIED_LEAD) == ["111", "222"]
        assert notifier.recipients(NotificationKind.HUMAN_INTERVENTION_REQUESTED) == ["111", "222"]

    def test_same_number_not_duplicated(self):
        notifier = AdminNotifier(Mock(), primary_number="111", secondary_number="111")

        assert notifier.recipients(NotificationKind.HIGH_INTEREST) == ["111"]

    def test_unconfigured(self):
        notifier = AdminNotifier(Mock(), primary_number="", secondary_number="")

        assert notifier.recipients(NotificationKind.HIGH_INTEREST) == []


class TestNotify:
    @pytest.mark.asyncio
    async def test_sends_to_every_recipient(self, transport):
        notifier = AdminNotifier(transport, primary_number="111", secondary_number="222")

        ok = await notifier.notify(NotificationKind.HUMAN_INTERVENTION_REQUESTED, {"contact_id": "5567999"})

        assert ok
        assert [number for number, _ in transport.sent] == ["111", "222"]
        assert "AJUDA SOLICITADA" in transport.sent[0][1]

    @pytest.mark.asyncio
    async def test_send_failure_returns_false(self, make_transport):
        transport = make_transport(fail_on={"222"})
        notifier = AdminNotifier(transport, primary_number="111", secondary_number="222")

        ok = await notifier.notify(NotificationKind.QUALIFIED_LEAD, {"contact_id": "5567999"})

        assert not ok
        assert transport.texts_to("111")

    @pytest.mark.asyncio
    async def test_transport_exception_is_swallowed(self):
        transport = Mock()
        transport.send_text = AsyncMock(side_effect=RuntimeError("connection reset"))
        notifier = AdminNotifier(transport, primary_number="111", secondary_number="222")

        assert await notifier.notify(NotificationKind.NEW_LEAD, {"contact_id": "5567999"}) is False

    @pytest.mark.asyncio
    async def test_unconfigured_sends_nothing(self, transport):
        notifier = AdminNotifier(transport, primary_number="", secondary_number="")

        assert await notifier.notify(NotificationKind.NEW_LEAD, {"contact_id": "5567999"}) is False
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_dispatch_counts_successes(self, make_transport):
        transport = make_transport(fail_on={"222"})
        notifier = AdminNotifier(transport, primary_number="111", secondary_number="222")

        sent = await notifier.dispatch(
            [
                Notification(NotificationKind.NEW_LEAD, {"contact_id": "5567999"}),
                Notification(NotificationKind.QUALIFIED_LEAD, {"contact_id": "5567999"}),
            ]
        )

        assert sent == 1
        assert len(transport.texts_to("111")) == 2
