import asyncio

import pytest

from energia_agent.services.contact_gate import ContactGate


class TestContactGate:
    def test_second_enter_is_rejected(self):
        gate = ContactGate()
        assert gate.try_enter("5567") is True
        assert gate.try_enter("5567") is False

    def test_exit_releases(self):
        gate = ContactGate()
        gate.try_enter("5567")
        gate.exit("5567")
        assert gate.try_enter("5567") is True

    def test_contacts_are_independent(self):
        gate = ContactGate()
        assert gate.try_enter("a")
        assert gate.try_enter("b")
        assert gate.in_flight == frozenset({"a", "b"})

    def test_acquire_releases_on_exception(self):
        gate = ContactGate()
        with pytest.raises(RuntimeError):
            with gate.acquire("5567") as admitted:
                assert admitted
                raise RuntimeError("boom")
        assert not gate.is_busy("5567")

    def test_rejected_acquire_does_not_release_owner(self):
        gate = ContactGate()
        with gate.acquire("5567") as first:
            with gate.acquire("5567") as second:
                assert first and not second
            assert gate.is_busy("5567")
        assert not gate.is_busy("5567")

    @pytest.mark.asyncio
    async def test_concurrent_turns_never_both_enter(self):
        gate = ContactGate()
        admitted = []

        async def turn():
            with gate.acquire("5567") as ok:
                admitted.append(ok)
                await asyncio.sleep(0.01)

        await asyncio.gather(*(turn() for _ in range(5)))

        assert admitted.count(True) == 1
        assert not gate.is_busy("5567")
