"""
Pattern Engine
==============

Stateless multi-detector signal extractor over one subject utterance.

Every detector in the registry is independent and non-exclusive: several can
fire on the same text and the result is their union, in registry order.
Each signal carries only the current turn's evidence. Growing
``occurrence_count`` and escalating confidence across turns is done by
``control_room.ledger.merge_patterns``.

Usage:
    from control_room.patterns import PatternEngine

    engine = PatternEngine()
    signals = engine.detect_patterns("I'm shaking, it's not a big deal", turn_index=5)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from control_room.config import DEFAULT_CONFIG, PatternConfig, PatternRule
from control_room.models import PatternKind, PatternSignal

logger = logging.getLogger(__name__)

# Typographic quotes folded to ASCII before matching.
_QUOTE_FOLD = str.maketrans({"’": "'", "‘": "'", "“": '"', "”": '"'})


def normalize_text(text: str) -> str:
    return (text or "").translate(_QUOTE_FOLD)


@dataclass(frozen=True)
class PatternDetection:
    """Raw output of one detector before it becomes a PatternSignal."""
    kind: PatternKind
    confidence: float
    evidence: str
    note: str


class PatternEngine:
    """Runs the fixed detector registry over raw turn text."""

    def __init__(self, config: PatternConfig = DEFAULT_CONFIG.patterns):
        self.config = config

        # Compile once; word-count rules carry no regex
        self._detectors: Tuple[Tuple[PatternRule, Optional[re.Pattern]], ...] = tuple(
            (rule, re.compile(rule.regex(), re.IGNORECASE) if rule.terms else None)
            for rule in config.rules
        )

    def _confidence(self, rule: PatternRule, matches: int) -> float:
        raw = rule.base_confidence + rule.per_match_bonus * matches
        return round(min(raw, self.config.confidence_cap), 4)

    def _run(self, rule: PatternRule, regex: Optional[re.Pattern], text: str) -> Optional[PatternDetection]:
        if regex is None:
            word_count = len(text.split())
            if 0 < word_count <= (rule.max_words or 0):
                return PatternDetection(
                    kind=rule.kind,
                    confidence=self._confidence(rule, 0),
                    evidence=f"Word count: {word_count}",
                    note=rule.note,
                )
            return None

        matches = [m.group(0) for m in regex.finditer(text)]
        if not matches:
            return None

        return PatternDetection(
            kind=rule.kind,
            confidence=self._confidence(rule, len(matches)),
            evidence=", ".join(matches),
            note=rule.note,
        )

    def detect(self, text: str) -> List[PatternDetection]:
        """Run every detector; returns raw detections in registry order."""
        normalized = normalize_text(text)
        detections = []
        for rule, regex in self._detectors:
            hit = self._run(rule, regex, normalized)
            if hit is not None:
                detections.append(hit)
        return detections

    def detect_patterns(self, text: str, turn_index: int) -> List[PatternSignal]:
        """
        Detect pattern signals in one utterance.

        Args:
            text: Raw subject utterance
            turn_index: Position of the utterance in the episode

        Returns:
            One PatternSignal per firing detector, registry order
        """
        signals = [
            PatternSignal(
                kind=d.kind,
                evidence_turn_indices=[turn_index],
                confidence=d.confidence,
                interpretation_note=d.note,
                first_seen_turn=turn_index,
                last_seen_turn=turn_index,
                occurrence_count=1,
                evidence=d.evidence,
            )
            for d in self.detect(text)
        ]

        if signals:
            logger.debug(
                f"Turn {turn_index}: {', '.join(s.kind.value for s in signals)}"
            )
        return signals
