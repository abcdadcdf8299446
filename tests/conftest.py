import json
import os
from unittest.mock import AsyncMock

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import energia_agent.models  # noqa: F401
from energia_agent.database import Base
from energia_agent.services.lead_service import LeadStore
from energia_agent.services.llm.base import LLMResponse


class FakeTransport:
    """Records outbound messages; numbers or texts listed in ``fail_on`` are rejected."""

    def __init__(self, fail_on=()):
        self.sent: list[tuple[str, str]] = []
        self.fail_on = set(fail_on)

    async def send_text(self, number: str, text: str) -> bool:
        if number in self.fail_on or text in self.fail_on:
            return False
        self.sent.append((number, text))
        return True

    def texts_to(self, number: str) -> list[str]:
        return [text for to, text in self.sent if to == number]


class FakeLLM:
    """Returns queued replies in order; an Exception in the queue is raised instead."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls: list[dict] = []

    async def generate(self, system_prompt, history, prompt, **kwargs):
        self.calls.append({"system_prompt": system_prompt, "history": history, "prompt": prompt, **kwargs})
        reply = self.replies.pop(0) if self.replies else "{}"
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, dict):
            reply = json.dumps(reply, ensure_ascii=False)
        return LLMResponse(content=reply, model="fake")


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def lead_store(session_factory):
    return LeadStore(session_factory)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def make_llm():
    return FakeLLM


@pytest.fixture
def make_transport():
    return FakeTransport
