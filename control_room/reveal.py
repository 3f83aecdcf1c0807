"""
Reveal Engine
=============

Pure factory turning a receipt card plus a trigger into a reveal plan.

The tease line and integration prompt depend only on the receipt type.
Whether a plan may be delivered is decided elsewhere (InevitabilityEngine
and SPGovernor); one receipt can be wrapped into several candidate plans.
"""

from __future__ import annotations

from control_room.config import DEFAULT_CONFIG, RevealCopy
from control_room.models import (
    PermissionGate,
    ReceiptCard,
    ReceiptType,
    RevealPlan,
    RevealStatus,
    RevealTrigger,
    VetoPolicy,
)


class RevealEngine:

    def __init__(self, copy: RevealCopy = DEFAULT_CONFIG.reveal):
        self.copy = copy

    def create_reveal_plan(
        self,
        plan_id: str,
        receipt: ReceiptCard,
        trigger: RevealTrigger,
        require_permission: bool,
    ) -> RevealPlan:
        return RevealPlan(
            id=plan_id,
            tease_line=self.tease_for(receipt),
            permission_gate=PermissionGate(
                required=require_permission,
                ask_copy=self.copy.ask_copy if require_permission else None,
            ),
            trigger=RevealTrigger(trigger),
            payload=receipt,
            integration_prompt=self.integration_prompt_for(receipt),
            veto_policy=(
                VetoPolicy.ALWAYS_VETOABLE if require_permission else VetoPolicy.NEVER_VETOABLE
            ),
            status=RevealStatus.PENDING,
        )

    def tease_for(self, receipt: ReceiptCard) -> str:
        return self.copy.teases.get(ReceiptType(receipt.type), self.copy.default_tease)

    def integration_prompt_for(self, receipt: ReceiptCard) -> str:
        return self.copy.integration_prompts.get(
            ReceiptType(receipt.type), self.copy.default_integration_prompt
        )
