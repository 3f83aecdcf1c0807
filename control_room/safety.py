"""
Safety Engine
=============

Highest-priority crisis detector over raw turn text.

Rules are evaluated in priority order (self-harm > harm to others >
child exploitation disclosure > acute crisis) and only the first match is
returned. When a signal comes back, the caller delivers only
``get_response(signal.type)`` for that turn and suppresses every other
pending output.

This engine does not decide when normal interview flow may resume.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Callable, Optional

from control_room.config import DEFAULT_CONFIG, SafetyConfig
from control_room.models import SafetySignal, SafetySignalType
from control_room.patterns import normalize_text

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SafetyEngine:
    """Stateless crisis detector. First matching rule wins."""

    def __init__(
        self,
        config: SafetyConfig = DEFAULT_CONFIG.safety,
        clock: Callable[[], str] = _utc_now,
    ):
        self.config = config
        self.clock = clock
        self._rules = tuple(
            (rule.type, re.compile(rule.pattern, re.IGNORECASE | re.DOTALL))
            for rule in config.rules
        )

    def detect(self, text: str, turn_index: int) -> Optional[SafetySignal]:
        normalized = normalize_text(text)
        for signal_type, regex in self._rules:
            if regex.search(normalized):
                logger.warning(f"Safety signal {signal_type.value} at turn {turn_index}")
                return SafetySignal(
                    type=signal_type,
                    confidence=self.config.confidence,
                    evidence_turn_id=f"turn-{turn_index}",
                    triggered_at=self.clock(),
                )
        return None

    def get_response(self, signal_type: SafetySignalType) -> str:
        """The one fixed, non-negotiable message for a signal type."""
        try:
            signal_type = SafetySignalType(signal_type)
        except ValueError:
            return self.config.fallback_response
        return self.config.responses.get(signal_type, self.config.fallback_response)
