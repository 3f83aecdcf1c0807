"""
Audit Log
=========

Append-only, hash-chained record of every control-room decision.

Each event is chained to the previous one via SHA-256, so any edit to a
past event (or a dropped event) breaks ``verify_chain()``. The log lives in
memory for the lifetime of the episode; persisting it is the caller's job
(``to_dict()`` gives a JSON-ready form).

Events are never shown to the subject.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from control_room.models import (
    HostStrategy,
    PatternSignal,
    RevealPlan,
    RhetoricalDevice,
    SafetySignal,
)

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64


class AuditEventType(str, Enum):
    TURN_RECEIVED = "turn_received"
    SAFETY_TRIGGERED = "safety_triggered"
    PATTERNS_DETECTED = "patterns_detected"
    ECHOES_CAPTURED = "echoes_captured"
    REVEAL_CREATED = "reveal_created"
    REVEAL_APPROVED = "reveal_approved"
    REVEAL_VETOED = "reveal_vetoed"
    STRATEGY_PROPOSED = "strategy_proposed"
    STRATEGY_VETOED = "strategy_vetoed"
    FEED_EMITTED = "feed_emitted"


@dataclass
class AuditEvent:
    """
    One entry in the audit chain.

    - sequence: monotonic position in the log
    - prev_hash: hash of the previous event (GENESIS_HASH for the first)
    - event_hash: hash over every other field, including prev_hash
    """
    sequence: int
    session_id: str
    turn_index: int
    event_type: AuditEventType
    timestamp_ns: int
    data: Dict[str, Any] = field(default_factory=dict)
    prev_hash: str = GENESIS_HASH
    event_hash: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "session_id": self.session_id,
            "turn_index": self.turn_index,
            "event_type": self.event_type.value,
            "timestamp_ns": self.timestamp_ns,
            "data": self.data,
            "prev_hash": self.prev_hash,
            "event_hash": self.event_hash,
        }

    def compute_hash(self) -> str:
        payload = self.to_dict()
        payload.pop("event_hash")
        blob = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
        return hashlib.sha256(blob).hexdigest()


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class AuditLog:
    """In-memory audit chain for one episode."""

    def __init__(self, session_id: str, clock: Callable[[], int] = time.time_ns):
        self.session_id = session_id
        self.clock = clock
        self._events: List[AuditEvent] = []

    def log(self, event_type: AuditEventType, turn_index: int, **data: Any) -> AuditEvent:
        prev_hash = self._events[-1].event_hash if self._events else GENESIS_HASH
        event = AuditEvent(
            sequence=len(self._events),
            session_id=self.session_id,
            turn_index=turn_index,
            event_type=AuditEventType(event_type),
            timestamp_ns=self.clock(),
            data={k: _enum_value(v) for k, v in data.items()},
            prev_hash=prev_hash,
        )
        event.event_hash = event.compute_hash()
        self._events.append(event)

        logger.debug(f"[audit] {self.session_id} turn={turn_index} {event.event_type.value} {event.data}")
        return event

    # =========================================================================
    # Typed helpers
    # =========================================================================

    def turn_received(self, turn_index: int, text: str) -> AuditEvent:
        return self.log(AuditEventType.TURN_RECEIVED, turn_index, input_length=len(text))

    def safety_triggered(self, turn_index: int, signal: SafetySignal) -> AuditEvent:
        return self.log(
            AuditEventType.SAFETY_TRIGGERED, turn_index,
            safety_type=signal.type, confidence=signal.confidence,
        )

    def patterns_detected(self, turn_index: int, signals: List[PatternSignal], ledger_size: int) -> AuditEvent:
        return self.log(
            AuditEventType.PATTERNS_DETECTED, turn_index,
            kinds=[s.kind.value for s in signals], new_count=len(signals), total_count=ledger_size,
        )

    def echoes_captured(self, turn_index: int, echo_ids: List[str]) -> AuditEvent:
        return self.log(AuditEventType.ECHOES_CAPTURED, turn_index, echo_ids=list(echo_ids))

    def reveal_created(self, turn_index: int, plan: RevealPlan) -> AuditEvent:
        return self.log(
            AuditEventType.REVEAL_CREATED, turn_index,
            reveal_id=plan.id, receipt_type=plan.receipt_type,
        )

    def reveal_approved(self, turn_index: int, plan: RevealPlan, score: float) -> AuditEvent:
        return self.log(AuditEventType.REVEAL_APPROVED, turn_index, reveal_id=plan.id, score=score)

    def reveal_vetoed(self, turn_index: int, plan: RevealPlan, reason: str) -> AuditEvent:
        return self.log(AuditEventType.REVEAL_VETOED, turn_index, reveal_id=plan.id, reason=reason)

    def strategy_proposed(
        self,
        turn_index: int,
        strategy: HostStrategy,
        device: Optional[RhetoricalDevice],
        instruction: str,
        pressure: int,
    ) -> AuditEvent:
        return self.log(
            AuditEventType.STRATEGY_PROPOSED, turn_index,
            strategy=strategy, device=device, pressure=pressure, instruction_len=len(instruction),
        )

    def strategy_vetoed(
        self,
        turn_index: int,
        strategy: HostStrategy,
        device: Optional[RhetoricalDevice],
        reason: str,
        rule: Optional[str],
    ) -> AuditEvent:
        return self.log(
            AuditEventType.STRATEGY_VETOED, turn_index,
            strategy=strategy, device=device, reason=reason, rule=rule,
        )

    def feed_emitted(
        self,
        turn_index: int,
        strategy: HostStrategy,
        device: Optional[RhetoricalDevice],
        risk_level: str,
    ) -> AuditEvent:
        return self.log(
            AuditEventType.FEED_EMITTED, turn_index,
            strategy=strategy, device=device, risk_level=risk_level,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_events(self, event_type: Optional[AuditEventType] = None) -> List[AuditEvent]:
        """Events in log order, optionally filtered by type."""
        if event_type is None:
            return list(self._events)
        event_type = AuditEventType(event_type)
        return [e for e in self._events if e.event_type == event_type]

    def get_latest(self) -> Optional[AuditEvent]:
        return self._events[-1] if self._events else None

    @property
    def event_count(self) -> int:
        return len(self._events)

    def verify_chain(self) -> bool:
        """True if no event has been altered, dropped or reordered."""
        prev_hash = GENESIS_HASH
        for i, event in enumerate(self._events):
            if event.sequence != i or event.prev_hash != prev_hash:
                return False
            if event.event_hash != event.compute_hash():
                return False
            prev_hash = event.event_hash
        return True

    def to_dict(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._events]
