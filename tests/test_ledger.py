#!/usr/bin/env python3
"""
test_ledger.py - Unit tests for the episode ledger reducer

Run with: pytest tests/test_ledger.py -v
"""

import pytest

from control_room.ledger import (
    LedgerError,
    advance_act,
    advance_reveal,
    advance_turn,
    append_echoes,
    find_reveal,
    mark_echo_used,
    merge_patterns,
    upsert_reveal,
)
from control_room.models import (
    EchoCategory,
    EchoPhrase,
    EpisodeState,
    MissingTapeCard,
    PatternKind,
    PatternSignal,
    PermissionGate,
    RevealPlan,
    RevealStatus,
    RevealTrigger,
    VetoPolicy,
)


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def state():
    return EpisodeState(session_id="ep-test")


def signal(kind, turn, confidence=0.6):
    return PatternSignal(
        kind=kind,
        evidence_turn_indices=[turn],
        confidence=confidence,
        interpretation_note="note",
        first_seen_turn=turn,
        last_seen_turn=turn,
        occurrence_count=1,
    )


def echo(echo_id, used=False):
    return EchoPhrase(
        id=echo_id,
        phrase="my fault",
        turn_id="turn-0",
        turn_index=0,
        category=EchoCategory.SHAME,
        eligible_after_act=2,
        eligible_after_turn=4,
        used=used,
    )


@pytest.fixture
def plan():
    return RevealPlan(
        id="gap-0",
        tease_line="There is a significant gap in the record.",
        permission_gate=PermissionGate(required=True, ask_copy="May I show you?"),
        trigger=RevealTrigger.INEVITABILITY_THRESHOLD,
        payload=MissingTapeCard(
            date_start="2020-01-01",
            date_end="2021-01-01",
            gap_description='12 months between "2020-01-01" and "2021-01-01"',
        ),
        integration_prompt="What was happening during that silence?",
        veto_policy=VetoPolicy.ALWAYS_VETOABLE,
    )


# =============================================================================
# Pattern Merge Tests
# =============================================================================

class TestMergePatterns:

    def test_first_sighting_appended(self, state):
        merged = merge_patterns(state, [signal(PatternKind.SHAME_CUE, 0)])
        assert len(merged.pattern_ledger) == 1
        assert merged.pattern_ledger[0].occurrence_count == 1
        assert state.pattern_ledger == []  # input untouched

    def test_later_sighting_escalates(self, state):
        state = merge_patterns(state, [signal(PatternKind.MINIMIZATION_LANGUAGE, 1, 0.6)])
        state = merge_patterns(state, [signal(PatternKind.MINIMIZATION_LANGUAGE, 3, 0.6)])

        entry = state.pattern_ledger[0]
        assert entry.evidence_turn_indices == [1, 3]
        assert entry.first_seen_turn == 1
        assert entry.last_seen_turn == 3
        assert entry.occurrence_count == 2
        assert entry.confidence == pytest.approx(0.7)

    def test_confidence_capped_at_one(self, state):
        state = merge_patterns(state, [signal(PatternKind.SOMATIC_LEAKAGE, 0, 0.95)])
        state = merge_patterns(state, [signal(PatternKind.SOMATIC_LEAKAGE, 1, 0.95)])
        assert state.pattern_ledger[0].confidence == 1.0

    def test_occurrence_count_matches_evidence(self, state):
        for turn in (0, 2, 5, 9):
            state = merge_patterns(state, [
                signal(PatternKind.SHAME_CUE, turn),
                signal(PatternKind.FREEZE_CUE, turn),
            ])

        for entry in state.pattern_ledger:
            assert entry.occurrence_count == len(entry.evidence_turn_indices) == 4

    def test_same_turn_is_noop(self, state):
        state = merge_patterns(state, [signal(PatternKind.SHAME_CUE, 2)])
        again = merge_patterns(state, [signal(PatternKind.SHAME_CUE, 2)])
        assert again.pattern_ledger == state.pattern_ledger

    def test_out_of_order_rejected(self, state):
        state = merge_patterns(state, [signal(PatternKind.SHAME_CUE, 5)])
        with pytest.raises(LedgerError):
            merge_patterns(state, [signal(PatternKind.SHAME_CUE, 3)])

    def test_kinds_kept_separate(self, state):
        state = merge_patterns(state, [signal(PatternKind.SHAME_CUE, 0)])
        state = merge_patterns(state, [signal(PatternKind.FREEZE_CUE, 1)])
        assert [p.kind for p in state.pattern_ledger] == [
            PatternKind.SHAME_CUE,
            PatternKind.FREEZE_CUE,
        ]


# =============================================================================
# Echo Tests
# =============================================================================

class TestEchoLedger:

    def test_append_dedupes_by_id(self, state):
        state = append_echoes(state, [echo("echo-0-0")])
        state = append_echoes(state, [echo("echo-0-0"), echo("echo-1-0")])
        assert [e.id for e in state.echo_phrases] == ["echo-0-0", "echo-1-0"]

    def test_mark_used_once(self, state):
        state = append_echoes(state, [echo("echo-0-0")])
        state = mark_echo_used(state, "echo-0-0")
        assert state.echo_phrases[0].used is True

        with pytest.raises(LedgerError):
            mark_echo_used(state, "echo-0-0")

    def test_mark_unknown(self, state):
        with pytest.raises(LedgerError):
            mark_echo_used(state, "echo-9-9")


# =============================================================================
# Reveal Tests
# =============================================================================

class TestRevealLedger:

    def test_upsert_inserts_then_replaces(self, state, plan):
        state = upsert_reveal(state, plan)
        state = upsert_reveal(state, plan.model_copy(update={"tease_line": "changed"}))

        assert len(state.reveal_ledger) == 1
        assert find_reveal(state, "gap-0").tease_line == "changed"

    def test_pending_to_approved_to_delivered(self, state, plan):
        state = upsert_reveal(state, plan)
        state = advance_reveal(state, "gap-0", RevealStatus.APPROVED)
        state = advance_reveal(state, "gap-0", RevealStatus.DELIVERED)
        assert find_reveal(state, "gap-0").status == RevealStatus.DELIVERED

    @pytest.mark.parametrize("terminal", [RevealStatus.VETOED, RevealStatus.DELIVERED])
    def test_terminal_states_final(self, state, plan, terminal):
        state = upsert_reveal(state, plan.model_copy(update={"status": terminal}))
        with pytest.raises(LedgerError):
            advance_reveal(state, "gap-0", RevealStatus.APPROVED)

    def test_pending_cannot_skip_to_delivered(self, state, plan):
        state = upsert_reveal(state, plan)
        with pytest.raises(LedgerError):
            advance_reveal(state, "gap-0", RevealStatus.DELIVERED)

    def test_unknown_plan(self, state):
        with pytest.raises(LedgerError):
            advance_reveal(state, "nope", RevealStatus.APPROVED)


# =============================================================================
# Counter Tests
# =============================================================================

class TestCounters:

    def test_advance_turn_clamps_pressure(self, state):
        assert advance_turn(state, 14).pressure == 10
        assert advance_turn(state, -3).pressure == 1
        assert advance_turn(state).pressure == state.pressure
        assert advance_turn(state).turn_index == 1

    def test_advance_act(self, state):
        assert advance_act(state).current_act == 2
