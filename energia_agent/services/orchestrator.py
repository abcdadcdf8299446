"""One conversation turn per inbound event.

A turn runs under the contact gate: load the lead, apply the stage pre-check,
optionally calculate savings or submit the proposal, ask the model, decode its
contract, deliver the segments, persist the lead and raise admin alerts.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from energia_agent.config import settings
from energia_agent.logging_config import ContactLoggerAdapter, get_logger
from energia_agent.services import proposal_calculator
from energia_agent.services.contact_gate import ContactGate
from energia_agent.services.contract_parser import ResponseContract, apology_contract, parse_contract
from energia_agent.services.dispatch_service import DispatchReport, DispatchScheduler
from energia_agent.services.knowledge_service import search_dossier
from energia_agent.services.lead_service import DEFAULT_SOURCE, LeadSnapshot, LeadStore
from energia_agent.services.notification_rules import Notification, TurnOutcome, derive_notifications
from energia_agent.services.prompt_service import (
    ConversationContext,
    build_history,
    build_turn_prompt,
    load_system_prompt,
)
from energia_agent.services.proposal_service import instruction_for
from energia_agent.services.stage_machine import StageGate, gate_for, next_stage

logger = get_logger("orchestrator")

MEDIA_KINDS = ("audio", "image", "document")
MEDIA_PLACEHOLDER = "[{kind} recebido]"
PROPOSAL_CALCULATED_SUFFIX = " Proposta calculada."


class TurnStatus(str, Enum):
    COMPLETED = "completed"
    BUSY = "busy"
    CLOSED = "closed"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass
class InboundEvent:
    contact_id: str
    kind: str  # text, audio, image, document
    text: Optional[str] = None
    raw_message: Optional[dict] = None
    source: Optional[str] = None


@dataclass
class TurnResult:
    status: TurnStatus
    contact_id: str
    stage_before: Optional[int] = None
    stage_after: Optional[int] = None
    contract: Optional[ResponseContract] = None
    dispatch: Optional[DispatchReport] = None
    notifications: list[Notification] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class _TurnInput:
    user_text: str
    dossier: Optional[str] = None
    bill_fields: Optional[dict] = None


def _bill_updates(bill_fields: Optional[dict]) -> dict[str, Any]:
    if not bill_fields or bill_fields.get("error"):
        return {}
    return {
        "bill_holder_name": bill_fields.get("holder_name"),
        "bill_holder_document": bill_fields.get("holder_document"),
        "average_consumption": bill_fields.get("consumption_kwh"),
        "lighting_fee": bill_fields.get("cip_fee"),
        "connection_type": bill_fields.get("connection_type"),
    }


class ConversationOrchestrator:
    def __init__(
        self,
        store: LeadStore,
        llm,
        notifier,
        dispatcher: DispatchScheduler,
        *,
        gate: Optional[ContactGate] = None,
        media=None,
        proposals=None,
        dossier_lookup: Callable = search_dossier,
        system_prompt: Optional[str] = None,
        llm_timeout_seconds: Optional[float] = None,
        history_limit: Optional[int] = None,
    ):
        self.store = store
        self.llm = llm
        self.notifier = notifier
        self.dispatcher = dispatcher
        self.gate = gate or ContactGate()
        self.media = media
        self.proposals = proposals
        self.dossier_lookup = dossier_lookup
        self.system_prompt = system_prompt
        self.llm_timeout_seconds = llm_timeout_seconds or settings.llm_timeout_seconds
        self.history_limit = history_limit if history_limit is not None else settings.history_limit

    async def handle_event(self, event: InboundEvent) -> TurnResult:
        """Run one turn. Never raises; the gate is released on every path."""
        log = ContactLoggerAdapter(logger, {"contact_id": event.contact_id, "kind": event.kind})

        with self.gate.acquire(event.contact_id) as admitted:
            if not admitted:
                return TurnResult(status=TurnStatus.BUSY, contact_id=event.contact_id)

            try:
                return await self._run_turn(event, log)
            except Exception as e:
                log.exception(f"Turn failed: {e}")
                notifications = derive_notifications(
                    None, None, None, TurnOutcome(contact_id=event.contact_id, error=str(e) or type(e).__name__)
                )
                await self.notifier.dispatch(notifications)
                return TurnResult(
                    status=TurnStatus.FAILED,
                    contact_id=event.contact_id,
                    notifications=notifications,
                    error=str(e),
                )

    def _logged_text(self, event: InboundEvent) -> Optional[str]:
        """Inbound text as logged before any extraction; None when the event carries nothing usable."""
        if event.kind == "text":
            return (event.text or "").strip() or None
        if event.kind in MEDIA_KINDS and event.raw_message:
            return MEDIA_PLACEHOLDER.format(kind=event.kind)
        return None

    async def _read_input(self, event: InboundEvent) -> Optional[_TurnInput]:
        if event.kind == "text":
            text = (event.text or "").strip()
            if not text:
                return None
            hit = self.dossier_lookup(text)
            return _TurnInput(user_text=text, dossier=hit.answer if hit else None)

        if event.kind in MEDIA_KINDS and self.media is not None and event.raw_message:
            extraction = await self.media.extract(event.kind, event.raw_message)
            return _TurnInput(user_text=extraction.text_input, bill_fields=extraction.bill_fields)

        return None

    async def _run_turn(self, event: InboundEvent, log: ContactLoggerAdapter) -> TurnResult:
        contact_id = event.contact_id

        logged_text = self._logged_text(event)
        if logged_text is None:
            log.info("Event ignored")
            return TurnResult(status=TurnStatus.IGNORED, contact_id=contact_id)

        previous = self.store.get(contact_id)
        stage = previous.stage if previous else 0
        stage_gate = gate_for(stage)

        if stage_gate is StageGate.CLOSED:
            self.store.append_message(contact_id, "user", logged_text)
            log.info("Lead closed to automation", context={"stage": stage})
            return TurnResult(status=TurnStatus.CLOSED, contact_id=contact_id, stage_before=stage, stage_after=stage)

        turn_input = await self._read_input(event)
        if turn_input is None:
            log.info("Event ignored")
            return TurnResult(status=TurnStatus.IGNORED, contact_id=contact_id, stage_before=stage)

        history = build_history(self.store.list_messages(contact_id, limit=self.history_limit))
        self.store.append_message(contact_id, "user", turn_input.user_text)

        prompt_input = turn_input.user_text
        proposal_data = None
        extra_updates: dict[str, Any] = {}

        if stage_gate is StageGate.CALCULATE_SAVINGS:
            savings = self._calculate_savings(event, turn_input)
            if savings is not None:
                proposal_data = savings.as_prompt_dict()
                prompt_input += PROPOSAL_CALCULATED_SUFFIX
                log.info("Savings calculated", context={"monthly": str(savings.monthly_saving)})

        elif stage_gate is StageGate.GENERATE_PROPOSAL and previous and not previous.proposal_sent:
            instruction, extra_updates = await self._submit_proposal(previous, log)
            if instruction:
                prompt_input = f"{prompt_input}\n{instruction}"

        context = ConversationContext(
            stage=stage,
            known_fields=previous.known_fields() if previous else {},
            dossier=turn_input.dossier,
            proposal=proposal_data,
            campaign_source=previous.source if previous else event.source,
        )

        contract, llm_error = await self._ask_model(history, build_turn_prompt(prompt_input, context), stage, log)
        new_stage = stage if llm_error else next_stage(stage, contract.next_stage)

        report = await self.dispatcher.deliver(contact_id, contract.segments)

        updates: dict[str, Any] = {
            key: value for key, value in _bill_updates(turn_input.bill_fields).items() if value is not None
        }
        updates.update(contract.lead_updates())
        updates.update(extra_updates)
        updates["stage"] = new_stage
        updates["last_interaction_at"] = datetime.now(timezone.utc)
        if previous is None:
            updates["source"] = event.source or DEFAULT_SOURCE

        updated = self.store.upsert(contact_id, updates)
        log.info(
            "Turn completed",
            context={"stage_before": stage, "stage_after": updated.stage, "degraded": contract.degraded},
        )

        notifications = derive_notifications(
            previous, updated, contract, TurnOutcome(contact_id=contact_id, error=llm_error)
        )
        await self.notifier.dispatch(notifications)

        return TurnResult(
            status=TurnStatus.COMPLETED,
            contact_id=contact_id,
            stage_before=stage,
            stage_after=updated.stage,
            contract=contract,
            dispatch=report,
            notifications=notifications,
            error=llm_error,
        )

    def _calculate_savings(self, event: InboundEvent, turn_input: _TurnInput):
        bill = proposal_calculator.bill_from_extraction(turn_input.bill_fields)
        if bill is not None:
            return proposal_calculator.calculate(bill)
        if event.kind == "text":
            return proposal_calculator.estimate_from_amount(turn_input.user_text)
        return None

    async def _submit_proposal(self, lead: LeadSnapshot, log: ContactLoggerAdapter) -> tuple[Optional[str], dict]:
        if self.proposals is None:
            return None, {}
        result = await self.proposals.submit(lead)
        if not result.ok:
            log.warning(f"Proposal not generated: {result.error}", context={"code": result.error_code})
            return instruction_for(result), {}
        return instruction_for(result), {
            "proposal_sent": True,
            "proposal_sent_at": datetime.now(timezone.utc),
            "proposal_session_id": result.value.get("session_id"),
        }

    async def _ask_model(
        self, history: list[dict], prompt: str, stage: int, log: ContactLoggerAdapter
    ) -> tuple[ResponseContract, Optional[str]]:
        system_prompt = self.system_prompt or load_system_prompt()
        try:
            response = await asyncio.wait_for(
                self.llm.generate(system_prompt, history, prompt),
                timeout=self.llm_timeout_seconds,
            )
        except asyncio.TimeoutError:
            log.error("Language model call timed out", context={"timeout": self.llm_timeout_seconds})
            return apology_contract(stage, "llm_timeout"), "Timeout na chamada da IA"
        except Exception as e:
            log.error(f"Language model call failed: {e}")
            return apology_contract(stage, "llm_error"), f"Falha na chamada da IA: {e}"

        contract = parse_contract(response.content, stage)
        if contract.degraded:
            log.warning("Model reply degraded", context={"reason": contract.degraded_reason})
        return contract, None
