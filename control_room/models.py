"""
Control Room Data Contracts
===========================

Pydantic schemas for everything that crosses the control-room boundary:
episode ledgers, detector signals, receipt cards and reveal plans.

Enumerations are ``str`` enums so a model dumps to its wire values with
``model_dump(mode="json")``.

Ownership:
- Engines never mutate these objects; they return new ones.
- ``EpisodeState`` is the only long-lived object and is advanced through
  ``control_room.ledger``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enumerations
# =============================================================================

class PatternKind(str, Enum):
    """Closed set of linguistic/behavioural signals."""
    MINIMIZATION_LANGUAGE = "minimization_language"    # "just", "only"
    ABSOLUTIST_LANGUAGE = "absolutist_language"        # "always", "never"
    PASSIVE_VOICE_SHIFT = "passive_voice_shift"        # "mistakes were made"
    ACTOR_OMISSION = "actor_omission"                  # "got hurt"
    HUMOR_DEFLECTION = "humor_deflection"              # "haha, anyway"
    FUTURE_TENSE_EVASION = "future_tense_evasion"      # "I will change"
    SOMATIC_LEAKAGE = "somatic_leakage"                # "I'm shaking"
    INEVITABILITY_LANGUAGE = "inevitability_language"  # "had no choice"
    SHAME_CUE = "shame_cue"                            # "my fault"
    FREEZE_CUE = "freeze_cue"                          # "I froze"
    BREVITY_SPIKE = "brevity_spike"                    # "fine."


class EchoCategory(str, Enum):
    MINIMIZER = "minimizer"
    INEVITABILITY = "inevitability"
    SHAME = "shame"
    AGENCY = "agency"


class SafetySignalType(str, Enum):
    """Crisis types, listed in priority order."""
    IMMINENT_SELF_HARM = "imminent_self_harm"
    IMMINENT_HARM_TO_OTHERS = "imminent_harm_to_others"
    CHILD_EXPLOITATION_DISCLOSURE = "child_exploitation_disclosure"
    ACUTE_CRISIS = "acute_crisis"


class HostStrategy(str, Enum):
    """What the host does to the conversation flow."""
    PRESS = "PRESS"                  # Apply pressure / drill down
    YIELD = "YIELD"                  # Back off / create space
    HOLD = "HOLD"                    # Maintain state / silence
    BRIDGE = "BRIDGE"                # Connect to previous topic
    PIVOT = "PIVOT"                  # Change topic
    WRAP = "WRAP"                    # End session
    SAFETY_GROUND = "SAFETY_GROUND"  # Emergency intervention


class RhetoricalDevice(str, Enum):
    """How the strategy is delivered."""
    MIRRORING = "MIRRORING"
    SILENCE_GAP = "SILENCE_GAP"
    NAME_THE_SHIFT = "NAME_THE_SHIFT"
    OFFER_FORK = "OFFER_FORK"
    RETURN_TO_OPEN_LOOP = "RETURN_TO_OPEN_LOOP"
    DEFINITION_CHALLENGE = "DEFINITION_CHALLENGE"
    AGENCY_BINARY = "AGENCY_BINARY"
    TIMELINE_SNAP = "TIMELINE_SNAP"
    UTILITARIAN_CHECK = "UTILITARIAN_CHECK"
    SOMATIC_BRIDGE = "SOMATIC_BRIDGE"
    SPIRITUAL_REFRAME = "SPIRITUAL_REFRAME"
    LOGIC_TRAP = "LOGIC_TRAP"
    FUTURE_LOCK = "FUTURE_LOCK"
    BINARY_FORCING = "BINARY_FORCING"


class RiskLevel(str, Enum):
    LOW = "low"
    ELEVATED = "elevated"
    CRITICAL = "critical"


class ReceiptType(str, Enum):
    QUOTE = "quote"
    PHOTO = "photo"
    TIMELINE_SNAP = "timeline_snap"
    MISSING_TAPE = "missing_tape"


class RevealTrigger(str, Enum):
    USER_PERMISSION = "user_permission"
    INEVITABILITY_THRESHOLD = "inevitability_threshold"
    DIRECTOR_OVERRIDE = "director_override"
    SAFETY_MANDATE = "safety_mandate"


class VetoPolicy(str, Enum):
    ALWAYS_VETOABLE = "always_vetoable"
    VETOABLE_UNTIL_THRESHOLD = "vetoable_until_threshold"
    NEVER_VETOABLE = "never_vetoable"


class RevealStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    VETOED = "vetoed"
    DELIVERED = "delivered"


# Legal RevealPlan status transitions. Terminal states map to nothing.
REVEAL_TRANSITIONS = {
    RevealStatus.PENDING: {RevealStatus.APPROVED, RevealStatus.VETOED},
    RevealStatus.APPROVED: {RevealStatus.DELIVERED, RevealStatus.VETOED},
    RevealStatus.VETOED: set(),
    RevealStatus.DELIVERED: set(),
}


class _Schema(BaseModel):
    model_config = ConfigDict(extra="forbid")


# =============================================================================
# Signals
# =============================================================================

class PatternSignal(_Schema):
    """One pattern kind as seen in one or more turns."""

    kind: PatternKind
    evidence_turn_indices: List[int]
    confidence: float = Field(ge=0.0, le=1.0)
    interpretation_note: str
    first_seen_turn: int = Field(ge=0)
    last_seen_turn: int = Field(ge=0)
    occurrence_count: int = Field(ge=0)
    evidence: str = ""  # matched text, audit only


class EchoPhrase(_Schema):
    """A subject's own words, held back until a later act or turn."""

    id: str
    phrase: str
    turn_id: str
    turn_index: int = Field(ge=0)
    category: EchoCategory
    eligible_after_act: int
    eligible_after_turn: int = Field(ge=0)
    used: bool = False


class SafetySignal(_Schema):
    type: SafetySignalType
    confidence: float = Field(ge=0.0, le=1.0)
    evidence_turn_id: str
    triggered_at: str


# =============================================================================
# Receipt cards (tagged union on ``type``)
# =============================================================================

class HighlightSpan(_Schema):
    start: int
    end: int


class QuoteCard(_Schema):
    type: Literal["quote"] = "quote"
    doc_ref: str
    excerpt: str
    highlight_spans: Optional[List[HighlightSpan]] = None


class PhotoCard(_Schema):
    type: Literal["photo"] = "photo"
    url: str
    caption: str
    tag: Optional[str] = None


class TimelineSnapCard(_Schema):
    type: Literal["timeline_snap"] = "timeline_snap"
    date_start: str
    date_end: Optional[str] = None
    event_description: str
    is_gap: bool = False


class MissingTapeCard(_Schema):
    type: Literal["missing_tape"] = "missing_tape"
    date_start: str
    date_end: str
    gap_description: str


ReceiptCard = Annotated[
    Union[QuoteCard, PhotoCard, TimelineSnapCard, MissingTapeCard],
    Field(discriminator="type"),
]


# =============================================================================
# Reveal plans
# =============================================================================

class PermissionGate(_Schema):
    required: bool
    ask_copy: Optional[str] = None


class RevealPlan(_Schema):
    """A candidate disclosure of held evidence. Starts ``pending``."""

    id: str
    tease_line: str
    permission_gate: PermissionGate
    trigger: RevealTrigger
    payload: ReceiptCard
    integration_prompt: str
    veto_policy: VetoPolicy
    status: RevealStatus = RevealStatus.PENDING

    @property
    def receipt_type(self) -> ReceiptType:
        return ReceiptType(self.payload.type)


# =============================================================================
# Episode ledgers
# =============================================================================

class Claim(_Schema):
    id: str
    statement: str
    turn_index: int = Field(0, ge=0)
    support_level: Literal["supported", "unverified", "contradicted"] = "unverified"
    evidence_refs: List[str] = Field(default_factory=list)


class Contradiction(_Schema):
    id: str
    claim_a_id: str
    claim_b_id: str
    type: Literal["user_vs_user", "user_vs_docs"] = "user_vs_docs"
    severity: Literal["minor", "significant", "major"] = "significant"
    resolution_status: Literal["unaddressed", "addressed"] = "unaddressed"


class OpenLoop(_Schema):
    id: str
    topic: str
    opened_at_turn: int = Field(0, ge=0)
    priority: int = Field(ge=0, le=10)
    status: Literal["open", "closed"] = "open"


class TimelineEvent(_Schema):
    id: str = ""
    date: str
    description: str = ""
    evidence_refs: List[str] = Field(default_factory=list)


class EpisodeState(_Schema):
    """Everything the control room knows about one interview."""

    session_id: str
    turn_index: int = Field(0, ge=0)
    current_act: int = 1
    pressure: int = Field(3, ge=1, le=10)

    pattern_ledger: List[PatternSignal] = Field(default_factory=list)
    contradiction_ledger: List[Contradiction] = Field(default_factory=list)
    open_loops: List[OpenLoop] = Field(default_factory=list)
    claims_ledger: List[Claim] = Field(default_factory=list)
    echo_phrases: List[EchoPhrase] = Field(default_factory=list)
    safety_signals: List[SafetySignal] = Field(default_factory=list)
    timeline: List[TimelineEvent] = Field(default_factory=list)
    reveal_ledger: List[RevealPlan] = Field(default_factory=list)


@dataclass(frozen=True)
class TimelineGap:
    """A silence in the record. Computed on demand, never stored."""
    start_date: str
    end_date: str
    gap_days: int
    description: str
