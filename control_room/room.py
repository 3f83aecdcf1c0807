"""
Control Room
============

Per-turn orchestrator wiring every engine together.

    text ──► SafetyEngine ──(signal)──► safety feed, nothing else runs
               │
               ▼
         PatternEngine + EchoPhraseEngine ──► ledger merge
               │
               ▼
         MissingTapesEngine ──► RevealEngine (one missing-tape plan per episode)
               │
               ▼
         InevitabilityEngine ──► reveal decision ──► strategy selection
               │
               ▼
         SPGovernor review ──► HostFeed + next EpisodeState

Every decision is written to a per-session AuditLog.

Usage:
    from control_room.room import ControlRoom
    from control_room.models import EpisodeState

    room = ControlRoom()
    state = EpisodeState(session_id="ep-1")
    result = room.process_turn("It just happened, I guess.", state)
    print(result.feed.strategy, result.feed.instruction)
    state = result.state
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from control_room.audit import AuditLog
from control_room.config import DEFAULT_CONFIG, ControlRoomConfig
from control_room.echo import EchoPhraseEngine
from control_room.governor import ProposalContext, SPGovernor
from control_room.inevitability import InevitabilityEngine, InevitabilityScore
from control_room.ledger import (
    advance_reveal,
    advance_turn,
    append_echoes,
    merge_patterns,
    record_safety_signal,
    upsert_reveal,
)
from control_room.missing_tapes import MissingTapesEngine
from control_room.models import (
    EchoPhrase,
    EpisodeState,
    HostStrategy,
    PatternKind,
    PatternSignal,
    ReceiptType,
    RevealPlan,
    RevealStatus,
    RevealTrigger,
    RhetoricalDevice,
    RiskLevel,
    SafetySignal,
)
from control_room.patterns import PatternEngine
from control_room.reveal import RevealEngine
from control_room.safety import SafetyEngine

logger = logging.getLogger(__name__)

DISCLOSURE_MIN_CONFIDENCE = 0.8
DEFAULT_INSTRUCTION = "Maintain current trajectory."


# =============================================================================
# Feed
# =============================================================================

class PressureGovernance(BaseModel):
    """Limits the host must respect while following the feed."""

    model_config = ConfigDict(extra="forbid")

    max_allowed_score: int = Field(10, ge=1, le=10)
    max_followups_on_topic: int = Field(3, ge=0)
    recursion_limit: int = Field(2, ge=0, le=3)


NORMAL_GOVERNANCE = PressureGovernance()
SAFETY_GOVERNANCE = PressureGovernance(max_allowed_score=1, max_followups_on_topic=0, recursion_limit=0)

FORBIDDEN_INITIATIONS = ("medical_advice", "legal_advice")


class HostFeed(BaseModel):
    """Guidance for the host for the next turn."""

    model_config = ConfigDict(extra="forbid")

    session_id: str
    target_turn_index: int
    status: Literal["live", "paused_for_safety"] = "live"
    act: str
    strategy: HostStrategy
    device: Optional[RhetoricalDevice] = None
    instruction: str
    posture: Literal["lean_in", "lean_back"]
    tone: Literal["skeptical_precision", "warm_authority"]
    pressure_governance: PressureGovernance = NORMAL_GOVERNANCE
    risk_level: RiskLevel
    safety_mode: Literal["normal", "stop_and_ground"] = "normal"
    forbidden_initiations: List[str] = []
    permission_required_topics: List[str] = []
    active_patterns: List[PatternSignal] = []
    disclosable_patterns: List[PatternSignal] = []
    eligible_echoes: List[EchoPhrase] = []
    approved_reveals: List[RevealPlan] = []
    available_reveals: List[RevealPlan] = []  # still pending
    inevitability: Optional[float] = None


@dataclass
class TurnResult:
    feed: HostFeed
    state: EpisodeState
    safety_signal: Optional[SafetySignal] = None


@dataclass
class RevealDecision:
    action: Literal["none", "veto", "approve"]
    plan: Optional[RevealPlan] = None
    reason: Optional[str] = None


@dataclass
class StrategyChoice:
    strategy: HostStrategy
    device: Optional[RhetoricalDevice]
    instruction: str
    pressure: int


def is_disclosable(pattern: PatternSignal, risk: RiskLevel) -> bool:
    """A pattern may be named to the subject only at low risk and high confidence."""
    return risk == RiskLevel.LOW and pattern.confidence >= DISCLOSURE_MIN_CONFIDENCE


# =============================================================================
# Control Room
# =============================================================================

class ControlRoom:

    def __init__(self, config: ControlRoomConfig = DEFAULT_CONFIG):
        self.config = config
        self.safety = SafetyEngine(config.safety)
        self.patterns = PatternEngine(config.patterns)
        self.echoes = EchoPhraseEngine(config.echo)
        self.missing_tapes = MissingTapesEngine(config.gap_threshold_days)
        self.inevitability = InevitabilityEngine(config.inevitability)
        self.reveals = RevealEngine(config.reveal)
        self.governor = SPGovernor(config.governor)

        self._audit_logs: Dict[str, AuditLog] = {}

    def audit_log(self, session_id: str) -> AuditLog:
        if session_id not in self._audit_logs:
            self._audit_logs[session_id] = AuditLog(session_id)
        return self._audit_logs[session_id]

    def close_session(self, session_id: str) -> Optional[AuditLog]:
        """Drop and return a finished episode's audit log."""
        return self._audit_logs.pop(session_id, None)

    # =========================================================================
    # Turn processing
    # =========================================================================

    def process_turn(self, text: str, state: EpisodeState) -> TurnResult:
        """
        Run one subject utterance through the full pipeline.

        Args:
            text: Raw subject utterance
            state: Episode state before this turn

        Returns:
            TurnResult with the host feed and the advanced state
        """
        turn = state.turn_index
        audit = self.audit_log(state.session_id)
        audit.turn_received(turn, text)

        # Safety pre-empts everything for this turn
        signal = self.safety.detect(text, turn)
        if signal is not None:
            audit.safety_triggered(turn, signal)
            return self._safety_result(state, signal, audit)

        # Patterns and echoes
        new_patterns = self.patterns.detect_patterns(text, turn)
        state = merge_patterns(state, new_patterns)
        audit.patterns_detected(turn, new_patterns, len(state.pattern_ledger))

        new_echoes = self.echoes.capture(text, turn, state.current_act)
        state = append_echoes(state, new_echoes)
        if new_echoes:
            audit.echoes_captured(turn, [e.id for e in new_echoes])

        # Missing tapes
        state = self._plan_missing_tape(state, audit)

        # Inevitability and reveal decision
        score = self.inevitability.compute(state)
        decision = self.decide_reveal(state, score)
        approved: List[RevealPlan] = []

        if decision.action == "veto":
            state = advance_reveal(state, decision.plan.id, RevealStatus.VETOED)
            audit.reveal_vetoed(turn, decision.plan, decision.reason)
        elif decision.action == "approve":
            state = advance_reveal(state, decision.plan.id, RevealStatus.APPROVED)
            approved.append(decision.plan.model_copy(update={"status": RevealStatus.APPROVED}))
            audit.reveal_approved(turn, decision.plan, score.score)

        # Strategy
        kinds = {p.kind for p in new_patterns}
        risk = RiskLevel.ELEVATED if PatternKind.SOMATIC_LEAKAGE in kinds else RiskLevel.LOW
        choice = self.select_strategy(kinds, approved[0] if approved else None, state.pressure)
        audit.strategy_proposed(turn, choice.strategy, choice.device, choice.instruction, choice.pressure)

        veto = self.governor.review_proposal(
            choice.strategy,
            choice.device,
            choice.instruction,
            ProposalContext(pressure=choice.pressure, risk=risk),
        )
        if veto.vetoed:
            audit.strategy_vetoed(turn, choice.strategy, choice.device, veto.reason, veto.rule)
            choice = StrategyChoice(
                strategy=veto.alternative_strategy or HostStrategy.HOLD,
                device=veto.alternative_device,
                instruction=f"S&P VETO: {veto.reason or 'policy'}",
                pressure=max(1, choice.pressure - 1),
            )

        pressing = choice.strategy == HostStrategy.PRESS
        feed = HostFeed(
            session_id=state.session_id,
            target_turn_index=turn + 1,
            act=f"Act {state.current_act}",
            strategy=choice.strategy,
            device=choice.device,
            instruction=choice.instruction,
            posture="lean_in" if pressing else "lean_back",
            tone="skeptical_precision" if pressing else "warm_authority",
            pressure_governance=NORMAL_GOVERNANCE,
            risk_level=risk,
            forbidden_initiations=list(FORBIDDEN_INITIATIONS),
            permission_required_topics=[
                loop.topic for loop in state.open_loops
                if loop.priority >= self.config.inevitability.critical_loop_priority
            ],
            active_patterns=new_patterns,
            disclosable_patterns=[p for p in state.pattern_ledger if is_disclosable(p, risk)],
            eligible_echoes=self.echoes.get_eligible(state.echo_phrases, state.current_act, turn),
            approved_reveals=approved,
            available_reveals=[r for r in state.reveal_ledger if r.status == RevealStatus.PENDING],
            inevitability=score.score,
        )

        audit.feed_emitted(turn, feed.strategy, feed.device, risk.value)
        return TurnResult(feed=feed, state=advance_turn(state, choice.pressure))

    # =========================================================================
    # Steps
    # =========================================================================

    def _safety_result(self, state: EpisodeState, signal: SafetySignal, audit: AuditLog) -> TurnResult:
        turn = state.turn_index
        feed = HostFeed(
            session_id=state.session_id,
            target_turn_index=turn,
            status="paused_for_safety",
            act="Safety Intervention",
            strategy=HostStrategy.SAFETY_GROUND,
            device=None,
            instruction=self.safety.get_response(signal.type),
            posture="lean_back",
            tone="warm_authority",
            pressure_governance=SAFETY_GOVERNANCE,
            risk_level=RiskLevel.CRITICAL,
            safety_mode="stop_and_ground",
        )
        audit.feed_emitted(turn, feed.strategy, None, RiskLevel.CRITICAL.value)

        state = record_safety_signal(state, signal)
        return TurnResult(feed=feed, state=advance_turn(state), safety_signal=signal)

    def _plan_missing_tape(self, state: EpisodeState, audit: AuditLog) -> EpisodeState:
        """Create the episode's missing-tape reveal once the timeline shows a gap."""
        if any(r.receipt_type == ReceiptType.MISSING_TAPE for r in state.reveal_ledger):
            return state

        gaps = self.missing_tapes.find_gaps(state.timeline)
        if not gaps:
            return state

        plan = self.reveals.create_reveal_plan(
            plan_id=f"gap-{state.turn_index}",
            receipt=self.missing_tapes.create_receipt_card(gaps[0]),
            trigger=RevealTrigger.INEVITABILITY_THRESHOLD,
            require_permission=True,
        )
        audit.reveal_created(state.turn_index, plan)
        logger.info(f"Reveal {plan.id} planned: {gaps[0].description}")
        return upsert_reveal(state, plan)

    def decide_reveal(self, state: EpisodeState, score: InevitabilityScore) -> RevealDecision:
        """Governor review first, then the inevitability gate, for the first pending plan."""
        pending = next((r for r in state.reveal_ledger if r.status == RevealStatus.PENDING), None)
        if pending is None:
            return RevealDecision(action="none")

        review = self.governor.review_reveal(pending, score.score)
        if review.vetoed:
            return RevealDecision(action="veto", plan=pending, reason=review.reason or "S&P veto")

        if pending.trigger == RevealTrigger.INEVITABILITY_THRESHOLD and score.score < score.thresholds.reveal:
            return RevealDecision(action="none", plan=pending)

        return RevealDecision(action="approve", plan=pending)

    def select_strategy(
        self,
        kinds: set,
        approved: Optional[RevealPlan],
        pressure: int,
    ) -> StrategyChoice:
        if approved is not None:
            return StrategyChoice(
                HostStrategy.PIVOT, None, f"Trigger Reveal: {approved.tease_line}", pressure,
            )
        if PatternKind.FUTURE_TENSE_EVASION in kinds:
            return StrategyChoice(
                HostStrategy.PRESS, RhetoricalDevice.FUTURE_LOCK,
                "Subject pivots to future promises. Lock them into today.",
                min(10, pressure + 2),
            )
        if PatternKind.PASSIVE_VOICE_SHIFT in kinds:
            return StrategyChoice(
                HostStrategy.PRESS, RhetoricalDevice.AGENCY_BINARY,
                "Subject removed themselves as agent. Force an agency clarification.",
                min(10, pressure + 1),
            )
        if PatternKind.SOMATIC_LEAKAGE in kinds:
            return StrategyChoice(
                HostStrategy.YIELD, RhetoricalDevice.SOMATIC_BRIDGE,
                "Distress detected. Slow down and bridge to body sensations safely.",
                max(1, pressure - 2),
            )
        return StrategyChoice(HostStrategy.HOLD, None, DEFAULT_INSTRUCTION, pressure)
