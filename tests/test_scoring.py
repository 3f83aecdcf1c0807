#!/usr/bin/env python3
"""
test_scoring.py - Inevitability scoring, timeline gaps and reveal plans

Run with: pytest tests/test_scoring.py -v
"""

import pytest

from control_room.inevitability import InevitabilityEngine
from control_room.missing_tapes import MalformedTimelineError, MissingTapesEngine
from control_room.models import (
    Claim,
    Contradiction,
    EpisodeState,
    MissingTapeCard,
    OpenLoop,
    PatternKind,
    PatternSignal,
    PhotoCard,
    QuoteCard,
    ReceiptType,
    RevealStatus,
    RevealTrigger,
    TimelineEvent,
    VetoPolicy,
)
from control_room.reveal import RevealEngine


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def engine():
    return InevitabilityEngine()


@pytest.fixture
def tapes():
    return MissingTapesEngine()


def recurring(kind, count=2):
    turns = list(range(count))
    return PatternSignal(
        kind=kind,
        evidence_turn_indices=turns,
        confidence=0.7,
        interpretation_note="note",
        first_seen_turn=0,
        last_seen_turn=turns[-1],
        occurrence_count=count,
    )


def contradiction(n, status="unaddressed"):
    return Contradiction(id=f"c{n}", claim_a_id="a", claim_b_id="b", resolution_status=status)


# =============================================================================
# Inevitability Tests
# =============================================================================

class TestInevitabilityEngine:

    def test_empty_episode_is_baseline(self, engine):
        result = engine.compute(EpisodeState(session_id="s"))
        assert result.score == 0.0
        assert result.rationale == "baseline gathering"
        assert result.stance == "gathering"

    def test_thresholds_reported(self, engine):
        result = engine.compute(EpisodeState(session_id="s"))
        assert result.thresholds.reveal == 0.75
        assert result.thresholds.confront_soft == 0.5
        assert result.thresholds.confront_firm == 0.85

    def test_single_occurrence_does_not_count(self, engine):
        state = EpisodeState(session_id="s", pattern_ledger=[recurring(PatternKind.SHAME_CUE, 1)])
        assert engine.compute(state).score == 0.0

    def test_recurring_patterns_capped(self, engine):
        ledger = [recurring(k) for k in (
            PatternKind.SHAME_CUE,
            PatternKind.FREEZE_CUE,
            PatternKind.HUMOR_DEFLECTION,
            PatternKind.ABSOLUTIST_LANGUAGE,
        )]
        result = engine.compute(EpisodeState(session_id="s", pattern_ledger=ledger))
        assert result.score == pytest.approx(0.3)
        assert result.rationale == "4 recurring patterns"

    def test_addressed_contradictions_ignored(self, engine):
        state = EpisodeState(session_id="s", contradiction_ledger=[
            contradiction(1, "addressed"),
            contradiction(2),
        ])
        assert engine.compute(state).score == pytest.approx(0.15)

    def test_closed_loop_ignored(self, engine):
        state = EpisodeState(session_id="s", open_loops=[
            OpenLoop(id="l1", topic="the night of the fire", priority=9, status="closed"),
        ])
        assert engine.compute(state).score == 0.0

    def test_all_factors_clamped(self, engine):
        state = EpisodeState(
            session_id="s",
            pattern_ledger=[recurring(PatternKind.SHAME_CUE), recurring(PatternKind.FREEZE_CUE),
                            recurring(PatternKind.BREVITY_SPIKE)],
            contradiction_ledger=[contradiction(i) for i in range(4)],
            open_loops=[OpenLoop(id="l1", topic="money", priority=8)],
            claims_ledger=[Claim(id="k1", statement="I was home", support_level="contradicted")],
        )
        result = engine.compute(state)

        assert result.score == 1.0
        assert result.stance == "confront_firm"
        assert result.rationale == (
            "3 recurring patterns + 4 contradictions + critical open loop active"
            " + direct evidence contradiction"
        )

    def test_reveal_threshold_reachable(self, engine):
        state = EpisodeState(
            session_id="s",
            contradiction_ledger=[contradiction(1), contradiction(2)],
            open_loops=[OpenLoop(id="l1", topic="money", priority=8)],
            claims_ledger=[Claim(id="k1", statement="I was home", support_level="contradicted")],
        )
        result = engine.compute(state)
        assert result.score == pytest.approx(0.75)
        assert result.stance == "reveal"

    def test_monotone_in_every_factor(self, engine):
        """Adding evidence of any kind never lowers the score."""
        state = EpisodeState(session_id="s")
        previous = engine.compute(state).score

        steps = [
            {"contradiction_ledger": [contradiction(1)]},
            {"pattern_ledger": [recurring(PatternKind.SHAME_CUE)]},
            {"contradiction_ledger": [contradiction(1), contradiction(2), contradiction(3)]},
            {"open_loops": [OpenLoop(id="l", topic="t", priority=10)]},
            {"pattern_ledger": [recurring(PatternKind.SHAME_CUE), recurring(PatternKind.FREEZE_CUE)]},
            {"claims_ledger": [Claim(id="k", statement="s", support_level="contradicted")]},
            {"contradiction_ledger": [contradiction(i) for i in range(8)]},
        ]
        for update in steps:
            state = state.model_copy(update=update)
            score = engine.compute(state).score
            assert 0.0 <= score <= 1.0
            assert score >= previous
            previous = score


# =============================================================================
# Missing Tapes Tests
# =============================================================================

class TestMissingTapesEngine:

    def test_year_gap(self, tapes):
        gaps = tapes.find_gaps([{"date": "2020-01-01"}, {"date": "2021-01-01"}])

        assert len(gaps) == 1
        assert gaps[0].gap_days == 366
        assert "12 months" in gaps[0].description
        assert gaps[0].description == '12 months between "2020-01-01" and "2021-01-01"'

    def test_fewer_than_two_entries(self, tapes):
        assert tapes.find_gaps([]) == []
        assert tapes.find_gaps([{"date": "2020-01-01"}]) == []

    def test_threshold_inclusive(self, tapes):
        # 2021-01-01 + 180 days = 2021-06-30
        gaps = tapes.find_gaps([{"date": "2021-01-01"}, {"date": "2021-06-30"}])
        assert [g.gap_days for g in gaps] == [180]

    def test_below_threshold_excluded(self, tapes):
        assert tapes.find_gaps([{"date": "2021-01-01"}, {"date": "2021-06-29"}]) == []

    def test_unsorted_input_and_longest_first(self, tapes):
        timeline = [
            TimelineEvent(date="2023-01-01", description="Started the new job"),
            TimelineEvent(date="2015-01-01", description="Moved to Denver"),
            TimelineEvent(date="2016-01-01", description="Met Sam"),
            TimelineEvent(date="2016-02-01", description="Sam moved in"),
        ]
        gaps = tapes.find_gaps(timeline)

        assert [g.start_date for g in gaps] == ["2016-02-01", "2015-01-01"]
        assert gaps[0].description.endswith('between "Sam moved in" and "Started the new job"')
        assert gaps[0].gap_days > gaps[1].gap_days

    def test_datetime_entries(self, tapes):
        gaps = tapes.find_gaps([
            {"date": "2020-01-01T12:00:00"},
            {"date": "2020-07-01T00:00:00+00:00"},
        ])
        # 181.5 days rounds up
        assert gaps[0].gap_days == 182

    def test_equal_gaps_keep_chronological_order(self, tapes):
        gaps = tapes.find_gaps([
            {"date": "2019-01-01"},
            {"date": "2018-01-01"},
            {"date": "2020-01-01"},
        ])

        assert [g.gap_days for g in gaps] == [365, 365]
        assert [g.start_date for g in gaps] == ["2018-01-01", "2019-01-01"]

    def test_utc_z_suffix(self, tapes):
        gaps = tapes.find_gaps([
            {"date": "2020-01-01T00:00:00Z"},
            {"date": "2021-01-01T00:00:00+00:00"},
        ])
        assert gaps[0].gap_days == 366

    def test_malformed_date_fails_whole_call(self, tapes):
        with pytest.raises(MalformedTimelineError):
            tapes.find_gaps([{"date": "2020-01-01"}, {"date": "last spring"}])

    def test_malformed_entry(self, tapes):
        with pytest.raises(MalformedTimelineError):
            tapes.find_gaps([{"date": "2020-01-01"}, {"when": "2021-01-01"}])

    def test_custom_threshold(self):
        engine = MissingTapesEngine(gap_threshold_days=30)
        assert len(engine.find_gaps([{"date": "2020-01-01"}, {"date": "2020-02-15"}])) == 1

    def test_receipt_card(self, tapes):
        gap = tapes.find_gaps([{"date": "2020-01-01"}, {"date": "2021-01-01"}])[0]
        card = tapes.create_receipt_card(gap)

        assert isinstance(card, MissingTapeCard)
        assert card.type == "missing_tape"
        assert card.date_start == "2020-01-01"
        assert card.date_end == "2021-01-01"
        assert card.gap_description == gap.description


# =============================================================================
# Reveal Engine Tests
# =============================================================================

class TestRevealEngine:

    def test_permission_gated_plan(self):
        card = MissingTapeCard(date_start="2020-01-01", date_end="2021-01-01", gap_description="gap")
        plan = RevealEngine().create_reveal_plan(
            "gap-3", card, RevealTrigger.INEVITABILITY_THRESHOLD, require_permission=True,
        )

        assert plan.id == "gap-3"
        assert plan.status == RevealStatus.PENDING
        assert plan.permission_gate.required is True
        assert plan.permission_gate.ask_copy
        assert plan.veto_policy == VetoPolicy.ALWAYS_VETOABLE
        assert plan.tease_line == "There is a significant gap in the record."
        assert plan.integration_prompt == "What was happening during that silence?"
        assert plan.receipt_type == ReceiptType.MISSING_TAPE

    def test_ungated_plan(self):
        card = QuoteCard(doc_ref="deposition-2", excerpt="I was never there.")
        plan = RevealEngine().create_reveal_plan(
            "q-1", card, RevealTrigger.DIRECTOR_OVERRIDE, require_permission=False,
        )

        assert plan.permission_gate.required is False
        assert plan.permission_gate.ask_copy is None
        assert plan.veto_policy == VetoPolicy.NEVER_VETOABLE
        assert plan.integration_prompt == "How does hearing those words again land with you now?"

    def test_copy_depends_only_on_receipt_type(self):
        engine = RevealEngine()
        a = engine.create_reveal_plan(
            "p1", PhotoCard(url="a.jpg", caption="x"), RevealTrigger.USER_PERMISSION, True,
        )
        b = engine.create_reveal_plan(
            "p2", PhotoCard(url="b.jpg", caption="y", tag="party"), RevealTrigger.DIRECTOR_OVERRIDE, False,
        )
        assert a.tease_line == b.tease_line
        assert a.integration_prompt == b.integration_prompt == (
            "How does this fit into the story you're telling me?"
        )

    def test_plan_round_trips_through_json(self):
        card = QuoteCard(doc_ref="d", excerpt="e")
        plan = RevealEngine().create_reveal_plan("q", card, RevealTrigger.USER_PERMISSION, True)
        restored = type(plan).model_validate(plan.model_dump(mode="json"))
        assert restored == plan
        assert isinstance(restored.payload, QuoteCard)
