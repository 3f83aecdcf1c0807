"""
Inevitability Engine
====================

Funnels the episode ledgers into one readiness score in [0, 1].

Four independent, individually capped factors are summed and clamped:

    recurring patterns (occurrence_count >= 2)   + min(0.3, n * 0.1)
    unaddressed contradictions                   + min(0.4, n * 0.15)
    any open loop with priority >= 8             + 0.2
    any contradicted claim                       + 0.25

Every factor is non-negative, so adding evidence never lowers the score.
Thresholds are flat constants; there is no per-episode tuning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from control_room.config import DEFAULT_CONFIG, InevitabilityConfig
from control_room.models import EpisodeState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InevitabilityThresholds:
    reveal: float
    confront_soft: float
    confront_firm: float


@dataclass(frozen=True)
class InevitabilityScore:
    score: float
    rationale: str  # audit only, never fed back
    thresholds: InevitabilityThresholds

    @property
    def stance(self) -> str:
        """Coarse reading of the score against the thresholds."""
        if self.score >= self.thresholds.confront_firm:
            return "confront_firm"
        if self.score >= self.thresholds.reveal:
            return "reveal"
        if self.score >= self.thresholds.confront_soft:
            return "confront_soft"
        return "gathering"


class InevitabilityEngine:

    def __init__(self, config: InevitabilityConfig = DEFAULT_CONFIG.inevitability):
        self.config = config
        self.thresholds = InevitabilityThresholds(
            reveal=config.reveal_threshold,
            confront_soft=config.confront_soft_threshold,
            confront_firm=config.confront_firm_threshold,
        )

    def compute(self, state: EpisodeState) -> InevitabilityScore:
        cfg = self.config
        score = 0.0
        factors: List[str] = []

        recurring = [
            p for p in state.pattern_ledger
            if p.occurrence_count >= cfg.recurring_min_occurrences
        ]
        if recurring:
            score += min(cfg.recurring_cap, len(recurring) * cfg.recurring_weight)
            factors.append(f"{len(recurring)} recurring patterns")

        unresolved = [
            c for c in state.contradiction_ledger
            if c.resolution_status == "unaddressed"
        ]
        if unresolved:
            score += min(cfg.contradiction_cap, len(unresolved) * cfg.contradiction_weight)
            factors.append(f"{len(unresolved)} contradictions")

        if any(loop.priority >= cfg.critical_loop_priority and loop.status == "open" for loop in state.open_loops):
            score += cfg.critical_loop_bonus
            factors.append("critical open loop active")

        if any(c.support_level == "contradicted" for c in state.claims_ledger):
            score += cfg.contradicted_claim_bonus
            factors.append("direct evidence contradiction")

        score = max(0.0, min(score, 1.0))

        result = InevitabilityScore(
            score=round(score, 6),
            rationale=" + ".join(factors) or "baseline gathering",
            thresholds=self.thresholds,
        )
        logger.debug(f"Inevitability {result.score:.2f} ({result.rationale})")
        return result
