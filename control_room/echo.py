"""
Echo Phrase Engine
==================

Captures quotable phrases from the subject's own words and holds them back.

Each capture gets two independent gates: the next act
(``current_act + act_delay``) and a turn horizon
(``turn_index + turn_delay``). An echo becomes usable once either gate is
met, and is never handed back once it has been used.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List

from control_room.config import DEFAULT_CONFIG, EchoConfig
from control_room.models import EchoPhrase
from control_room.patterns import normalize_text

logger = logging.getLogger(__name__)


class EchoPhraseEngine:

    def __init__(self, config: EchoConfig = DEFAULT_CONFIG.echo):
        self.config = config
        self._rules = tuple(
            (re.compile(rule.pattern, re.IGNORECASE), rule.category)
            for rule in config.rules
        )

    def capture(self, text: str, turn_index: int, current_act: int) -> List[EchoPhrase]:
        """One EchoPhrase per rule match, numbered within the turn."""
        normalized = normalize_text(text)
        echoes: List[EchoPhrase] = []

        for regex, category in self._rules:
            for match in regex.finditer(normalized):
                echoes.append(EchoPhrase(
                    id=f"echo-{turn_index}-{len(echoes)}",
                    phrase=match.group(0),
                    turn_id=f"turn-{turn_index}",
                    turn_index=turn_index,
                    category=category,
                    eligible_after_act=current_act + self.config.act_delay,
                    eligible_after_turn=turn_index + self.config.turn_delay,
                    used=False,
                ))

        if echoes:
            logger.debug(f"Turn {turn_index}: captured {len(echoes)} echo phrase(s)")
        return echoes

    def get_eligible(
        self,
        echoes: Iterable[EchoPhrase],
        current_act: int,
        current_turn: int,
    ) -> List[EchoPhrase]:
        """Unused echoes whose act gate or turn gate is satisfied."""
        return [
            e for e in echoes
            if not e.used
            and (e.eligible_after_act <= current_act or e.eligible_after_turn <= current_turn)
        ]
