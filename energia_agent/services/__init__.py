from energia_agent.services.contact_gate import ContactGate
from energia_agent.services.contract_parser import ResponseContract, apology_contract, parse_contract
from energia_agent.services.notification_rules import (
    InterestLevel,
    Notification,
    NotificationKind,
    TurnOutcome,
    derive_notifications,
)
from energia_agent.services.result import Result
from energia_agent.services.stage_machine import (
    InvalidStageError,
    LeadStage,
    StageGate,
    gate_for,
    next_stage,
    reset_stage,
)
