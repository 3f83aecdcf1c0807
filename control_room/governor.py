"""
S&P Governor
============

Final veto authority over proposed host actions.

Proposal checks run as an explicit ordered list; the first check that
returns a veto wins:

    1. critical risk          -> SAFETY_GROUND
    2. banned terminology     -> HOLD + SILENCE_GAP
    3. pressure ceiling       -> YIELD + OFFER_FORK

Reveal review is a second, independent gate on top of the inevitability
thresholds: a quote reveal without a permission gate is always vetoed, and
any reveal below the minimum score is vetoed for insufficient groundwork.

Usage:
    from control_room.governor import SPGovernor, ProposalContext

    governor = SPGovernor()
    veto = governor.review_proposal(
        HostStrategy.PRESS, RhetoricalDevice.LOGIC_TRAP,
        "You said X, but did Y",
        ProposalContext(pressure=9, risk=RiskLevel.LOW),
    )
    if veto.vetoed:
        strategy = veto.alternative_strategy
"""

from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union

from control_room.config import DEFAULT_CONFIG, GovernorConfig
from control_room.models import (
    HostStrategy,
    ReceiptType,
    RevealPlan,
    RhetoricalDevice,
    RiskLevel,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProposalContext:
    pressure: int
    risk: RiskLevel = RiskLevel.LOW

    @classmethod
    def coerce(cls, context: Union["ProposalContext", Mapping[str, Any]]) -> "ProposalContext":
        if isinstance(context, ProposalContext):
            return context
        return cls(
            pressure=int(context.get("pressure", 0)),
            risk=RiskLevel(context.get("risk", RiskLevel.LOW)),
        )


@dataclass(frozen=True)
class Proposal:
    strategy: HostStrategy
    device: Optional[RhetoricalDevice]
    instruction: str
    context: ProposalContext


@dataclass(frozen=True)
class SPVeto:
    vetoed: bool
    reason: Optional[str] = None
    alternative_strategy: Optional[HostStrategy] = None
    alternative_device: Optional[RhetoricalDevice] = None
    rule: Optional[str] = None  # name of the check that fired


@dataclass(frozen=True)
class RevealReview:
    vetoed: bool
    reason: Optional[str] = None


APPROVED = SPVeto(vetoed=False)

ProposalCheck = Callable[[Proposal], Optional[SPVeto]]


class SPGovernor:

    def __init__(self, config: GovernorConfig = DEFAULT_CONFIG.governor):
        self.config = config
        self._banned = tuple(
            (term.category, re.compile(term.pattern, re.IGNORECASE))
            for term in config.banned_terms
        )

        # Order is the precedence contract
        self.checks: Tuple[Tuple[str, ProposalCheck], ...] = (
            ("critical_risk", self.check_critical_risk),
            ("banned_terms", self.check_banned_terms),
            ("pressure_ceiling", self.check_pressure_ceiling),
        )

    # =========================================================================
    # Proposal checks
    # =========================================================================

    def check_critical_risk(self, proposal: Proposal) -> Optional[SPVeto]:
        if proposal.context.risk == RiskLevel.CRITICAL and proposal.strategy != HostStrategy.SAFETY_GROUND:
            return SPVeto(
                vetoed=True,
                reason="Critical risk detected. Safety override required.",
                alternative_strategy=HostStrategy.SAFETY_GROUND,
            )
        return None

    def check_banned_terms(self, proposal: Proposal) -> Optional[SPVeto]:
        hits = self.banned_term_hits(proposal.instruction)
        if hits:
            categories = sorted({category for category, _ in hits})
            return SPVeto(
                vetoed=True,
                reason=f"Instruction contains banned terminology ({', '.join(categories)}).",
                alternative_strategy=HostStrategy.HOLD,
                alternative_device=RhetoricalDevice.SILENCE_GAP,
            )
        return None

    def check_pressure_ceiling(self, proposal: Proposal) -> Optional[SPVeto]:
        if proposal.context.pressure >= self.config.max_pressure and proposal.strategy == HostStrategy.PRESS:
            return SPVeto(
                vetoed=True,
                reason="Max pressure exceeded. Must de-escalate.",
                alternative_strategy=HostStrategy.YIELD,
                alternative_device=RhetoricalDevice.OFFER_FORK,
            )
        return None

    def banned_term_hits(self, text: str) -> List[Tuple[str, str]]:
        """(category, matched text) for every banned term in ``text``."""
        hits = []
        for category, regex in self._banned:
            match = regex.search(text or "")
            if match:
                hits.append((category, match.group(0)))
        return hits

    # =========================================================================
    # Reviews
    # =========================================================================

    def review_proposal(
        self,
        strategy: HostStrategy,
        device: Optional[RhetoricalDevice],
        instruction_text: str,
        context: Union[ProposalContext, Mapping[str, Any]],
    ) -> SPVeto:
        proposal = Proposal(
            strategy=HostStrategy(strategy),
            device=RhetoricalDevice(device) if device is not None else None,
            instruction=instruction_text,
            context=ProposalContext.coerce(context),
        )

        for name, check in self.checks:
            veto = check(proposal)
            if veto is not None:
                logger.warning(f"S&P veto [{name}] on {proposal.strategy.value}: {veto.reason}")
                return dataclasses.replace(veto, rule=name)
        return APPROVED

    def review_reveal(self, plan: RevealPlan, inevitability_score: float) -> RevealReview:
        if plan.receipt_type == ReceiptType.QUOTE and not plan.permission_gate.required:
            logger.warning(f"S&P veto on reveal {plan.id}: quote without permission gate")
            return RevealReview(vetoed=True, reason="Quote reveals require permission gate.")

        if inevitability_score < self.config.reveal_min_score:
            logger.info(f"S&P veto on reveal {plan.id}: score {inevitability_score:.2f}")
            return RevealReview(
                vetoed=True,
                reason="Truth not yet inevitable. More groundwork needed.",
            )

        return RevealReview(vetoed=False)
