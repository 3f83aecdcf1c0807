"""
Episode Ledger Reducer
======================

Pure state transitions over ``EpisodeState``. Every function returns a new
state; the input is never mutated.

Pattern merge rule:
- The first sighting of a kind is appended as emitted by the detector.
- A sighting in a later turn appends that turn to
  ``evidence_turn_indices``, moves ``last_seen_turn`` forward, sets
  ``occurrence_count`` to the number of evidence turns, and escalates
  confidence to ``min((previous + new) / 2 + 0.1, 1.0)``.
- Re-merging a turn that is already on the ledger is a no-op.
- A sighting older than the ledger's ``last_seen_turn`` is rejected:
  within an episode, turns must be merged in order.

Reveal plans follow the status machine in ``models.REVEAL_TRANSITIONS``.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

from control_room.models import (
    REVEAL_TRANSITIONS,
    EchoPhrase,
    EpisodeState,
    PatternKind,
    PatternSignal,
    RevealPlan,
    RevealStatus,
    SafetySignal,
)

logger = logging.getLogger(__name__)

CONFIDENCE_ESCALATION = 0.1


class LedgerError(ValueError):
    """Raised for an illegal transition on the episode ledgers."""


# =============================================================================
# Patterns
# =============================================================================

def merge_patterns(
    state: EpisodeState,
    signals: Iterable[PatternSignal],
    escalation: float = CONFIDENCE_ESCALATION,
) -> EpisodeState:
    ledger = list(state.pattern_ledger)
    index: Dict[PatternKind, int] = {p.kind: i for i, p in enumerate(ledger)}

    for signal in signals:
        i = index.get(signal.kind)
        if i is None:
            index[signal.kind] = len(ledger)
            ledger.append(signal)
            continue

        prev = ledger[i]
        if signal.last_seen_turn < prev.last_seen_turn:
            raise LedgerError(
                f"{signal.kind.value}: turn {signal.last_seen_turn} merged after "
                f"turn {prev.last_seen_turn}"
            )

        new_turns = [t for t in signal.evidence_turn_indices if t not in prev.evidence_turn_indices]
        if not new_turns:
            continue

        turns = prev.evidence_turn_indices + new_turns
        ledger[i] = prev.model_copy(update={
            "evidence_turn_indices": turns,
            "last_seen_turn": signal.last_seen_turn,
            "occurrence_count": len(turns),
            "confidence": round(min((prev.confidence + signal.confidence) / 2 + escalation, 1.0), 4),
            "evidence": signal.evidence,
        })

    return state.model_copy(update={"pattern_ledger": ledger})


# =============================================================================
# Echo phrases
# =============================================================================

def append_echoes(state: EpisodeState, echoes: Iterable[EchoPhrase]) -> EpisodeState:
    known = {e.id for e in state.echo_phrases}
    fresh = [e for e in echoes if e.id not in known]
    return state.model_copy(update={"echo_phrases": state.echo_phrases + fresh})


def mark_echo_used(state: EpisodeState, echo_id: str) -> EpisodeState:
    """Consume an echo. An echo can be used exactly once."""
    for i, echo in enumerate(state.echo_phrases):
        if echo.id != echo_id:
            continue
        if echo.used:
            raise LedgerError(f"Echo {echo_id} already used")
        echoes = list(state.echo_phrases)
        echoes[i] = echo.model_copy(update={"used": True})
        return state.model_copy(update={"echo_phrases": echoes})

    raise LedgerError(f"Unknown echo {echo_id}")


# =============================================================================
# Reveal plans
# =============================================================================

def find_reveal(state: EpisodeState, plan_id: str) -> Optional[RevealPlan]:
    return next((r for r in state.reveal_ledger if r.id == plan_id), None)


def upsert_reveal(state: EpisodeState, plan: RevealPlan) -> EpisodeState:
    if find_reveal(state, plan.id) is None:
        ledger = state.reveal_ledger + [plan]
    else:
        ledger = [plan if r.id == plan.id else r for r in state.reveal_ledger]
    return state.model_copy(update={"reveal_ledger": ledger})


def advance_reveal(state: EpisodeState, plan_id: str, status: RevealStatus) -> EpisodeState:
    plan = find_reveal(state, plan_id)
    if plan is None:
        raise LedgerError(f"Unknown reveal plan {plan_id}")

    status = RevealStatus(status)
    if status not in REVEAL_TRANSITIONS[plan.status]:
        raise LedgerError(f"Reveal {plan_id}: {plan.status.value} -> {status.value} not allowed")

    logger.debug(f"Reveal {plan_id}: {plan.status.value} -> {status.value}")
    return upsert_reveal(state, plan.model_copy(update={"status": status}))


# =============================================================================
# Safety and counters
# =============================================================================

def record_safety_signal(state: EpisodeState, signal: SafetySignal) -> EpisodeState:
    return state.model_copy(update={"safety_signals": state.safety_signals + [signal]})


def advance_turn(state: EpisodeState, pressure: Optional[int] = None) -> EpisodeState:
    update = {"turn_index": state.turn_index + 1}
    if pressure is not None:
        update["pressure"] = max(1, min(10, int(pressure)))
    return state.model_copy(update=update)


def advance_act(state: EpisodeState) -> EpisodeState:
    return state.model_copy(update={"current_act": state.current_act + 1})
