"""Process-wide collaborators, exposed as FastAPI dependencies."""

import asyncio
from functools import lru_cache

from energia_agent.config import settings
from energia_agent.database import SessionLocal
from energia_agent.logging_config import get_logger
from energia_agent.services.alert_service import AdminNotifier
from energia_agent.services.contact_gate import ContactGate
from energia_agent.services.dispatch_service import DispatchScheduler
from energia_agent.services.lead_service import LeadStore
from energia_agent.services.llm import GeminiProvider
from energia_agent.services.media_service import MediaExtractor
from energia_agent.services.orchestrator import ConversationOrchestrator, InboundEvent
from energia_agent.services.proposal_service import ProposalClient
from energia_agent.services.whatsapp_service import EvolutionClient

logger = get_logger("dependencies")

_background_tasks: set[asyncio.Task] = set()


@lru_cache(maxsize=1)
def get_transport() -> EvolutionClient:
    return EvolutionClient()


@lru_cache(maxsize=1)
def get_store() -> LeadStore:
    return LeadStore(SessionLocal)


@lru_cache(maxsize=1)
def get_llm() -> GeminiProvider:
    return GeminiProvider(
        api_key=settings.gemini_api_key or "",
        default_model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_output_tokens,
        timeout_seconds=settings.llm_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_orchestrator() -> ConversationOrchestrator:
    transport = get_transport()
    store = get_store()
    llm = get_llm()
    return ConversationOrchestrator(
        store=store,
        llm=llm,
        notifier=AdminNotifier(transport),
        dispatcher=DispatchScheduler(transport, store),
        gate=ContactGate(),
        media=MediaExtractor(transport, llm),
        proposals=ProposalClient(),
    )


def schedule_turn(orchestrator: ConversationOrchestrator, event: InboundEvent) -> asyncio.Task:
    """Run the turn in the background; the task is referenced until it finishes."""
    task = asyncio.create_task(orchestrator.handle_event(event))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def drain_turns(timeout_seconds: float = 10.0) -> None:
    """Wait for in-flight turns on shutdown, cancelling what is left after the timeout."""
    if not _background_tasks:
        return
    tasks = list(_background_tasks)
    _, pending = await asyncio.wait(tasks, timeout=timeout_seconds)
    for task in pending:
        task.cancel()
    if pending:
        logger.warning(f"Cancelled {len(pending)} unfinished turns on shutdown")
