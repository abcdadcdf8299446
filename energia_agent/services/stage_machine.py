from enum import Enum, IntEnum
from typing import Any, Optional


class LeadStage(IntEnum):
    NEW = 0
    OPENING = 1
    EXPLORATION = 2
    BILL_ANALYSIS = 3
    SAVINGS_PRESENTATION = 4
    DATA_COLLECTION = 5
    DATA_COLLECTION_CONTINUED = 6
    MISSING_DATA = 7
    PROPOSAL_GENERATION = 8
    POST_PROPOSAL = 9
    CLOSING = 10
    ENGINEERING = 99


class StageGate(str, Enum):
    OPEN = "open"
    CALCULATE_SAVINGS = "calculate_savings"
    GENERATE_PROPOSAL = "generate_proposal"
    CLOSED = "closed"


# Reaching this stage means the lead showed intention to close.
QUALIFIED_THRESHOLD = LeadStage.DATA_COLLECTION
TERMINAL_STAGE = LeadStage.PROPOSAL_GENERATION
PROPOSAL_CALCULATION_STAGE = LeadStage.BILL_ANALYSIS

STAGE_GATES = {
    LeadStage.NEW: StageGate.OPEN,
    LeadStage.OPENING: StageGate.OPEN,
    LeadStage.EXPLORATION: StageGate.OPEN,
    LeadStage.BILL_ANALYSIS: StageGate.CALCULATE_SAVINGS,
    LeadStage.SAVINGS_PRESENTATION: StageGate.OPEN,
    LeadStage.DATA_COLLECTION: StageGate.OPEN,
    LeadStage.DATA_COLLECTION_CONTINUED: StageGate.OPEN,
    LeadStage.MISSING_DATA: StageGate.OPEN,
    LeadStage.PROPOSAL_GENERATION: StageGate.GENERATE_PROPOSAL,
    LeadStage.POST_PROPOSAL: StageGate.CLOSED,
    LeadStage.CLOSING: StageGate.CLOSED,
    LeadStage.ENGINEERING: StageGate.CLOSED,
}

class InvalidStageError(Exception):
    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Invalid stage: {value!r}")


def coerce_stage(value: Any) -> Optional[int]:
    """Return value as a non-negative int stage, or None when it is not one."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        return int(value) if value.is_integer() and value >= 0 else None
    if isinstance(value, str):
        text = value.strip()
        if text.isascii() and text.isdigit():
            try:
                return int(text)
            except ValueError:
                return None
    return None


def gate_for(stage: int) -> StageGate:
    """Pre-check applied before any model call for the lead's current stage."""
    if coerce_stage(stage) is None:
        raise InvalidStageError(stage)
    if stage > TERMINAL_STAGE:
        return StageGate.CLOSED
    try:
        return STAGE_GATES[LeadStage(stage)]
    except ValueError:
        return StageGate.OPEN


def is_closed(stage: int) -> bool:
    return gate_for(stage) is StageGate.CLOSED


def next_stage(current_stage: int, contract_next_stage: Any) -> int:
    """Stage after a turn: the model's proposal when valid, otherwise unchanged."""
    if is_closed(current_stage):
        return current_stage
    proposed = coerce_stage(contract_next_stage)
    if proposed is None:
        return current_stage
    return proposed


def crossed_qualified_threshold(previous_stage: Optional[int], updated_stage: Optional[int]) -> bool:
    """Edge trigger: true only on the turn the stage rises past QUALIFIED_THRESHOLD."""
    before = previous_stage or 0
    after = updated_stage or 0
    return before < QUALIFIED_THRESHOLD <= after


def reset_stage() -> LeadStage:
    """Explicit external reset, the only way a stage goes down."""
    return LeadStage.NEW
