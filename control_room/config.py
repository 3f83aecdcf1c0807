"""
Control Room Configuration
==========================

Every rule table and threshold the engines use, as immutable dataclasses.

``DEFAULT_CONFIG`` is built once at import. Engines receive their section
through the constructor and fall back to the default section, so a test or
a deployment can swap a rule set without touching module state.

Usage:
    from control_room.config import load_config
    from control_room.patterns import PatternEngine

    config = load_config("control_room.yaml")   # YAML overlay on defaults
    engine = PatternEngine(config.patterns)

YAML layout (every key optional):

    gap_threshold_days: 365
    inevitability:
      reveal_threshold: 0.8
    governor:
      max_pressure: 8
      banned_terms:
        - {category: diagnostic_label, pattern: "\\\\bgaslighter\\\\b"}
    echo:
      turn_delay: 6

A rule list given in YAML replaces the default table for that section.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml

from control_room.models import (
    EchoCategory,
    PatternKind,
    ReceiptType,
    SafetySignalType,
)

logger = logging.getLogger(__name__)


class RuleConfigError(ValueError):
    """Raised for an invalid configuration file or rule."""


# =============================================================================
# Rule records
# =============================================================================

@dataclass(frozen=True)
class PatternRule:
    """
    One pattern detector.

    A term rule fires on any whole-word match of ``terms``; a word-count rule
    (``max_words`` set) fires when the utterance has 1..max_words words.
    Confidence is ``min(base_confidence + per_match_bonus * matches, cap)``.
    """
    kind: PatternKind
    note: str
    terms: Tuple[str, ...] = ()
    base_confidence: float = 0.5
    per_match_bonus: float = 0.0
    max_words: Optional[int] = None

    def regex(self) -> str:
        alternation = "|".join(re.escape(t) for t in self.terms)
        return rf"\b(?:{alternation})\b"


@dataclass(frozen=True)
class EchoRule:
    pattern: str
    category: EchoCategory


@dataclass(frozen=True)
class SafetyRule:
    type: SafetySignalType
    pattern: str


@dataclass(frozen=True)
class BannedTerm:
    category: str  # diagnostic_label | ai_self_disclosure | clinical_claim
    pattern: str


# =============================================================================
# Sections
# =============================================================================

DEFAULT_PATTERN_RULES: Tuple[PatternRule, ...] = (
    PatternRule(
        kind=PatternKind.MINIMIZATION_LANGUAGE,
        terms=("just", "only", "not a big deal", "no big deal", "barely", "merely",
               "kind of", "sort of", "it's fine", "it was nothing"),
        base_confidence=0.5,
        per_match_bonus=0.1,
        note="Subject is actively reducing the weight of the event.",
    ),
    PatternRule(
        kind=PatternKind.ABSOLUTIST_LANGUAGE,
        terms=("always", "never", "everyone", "no one", "everything", "nothing",
               "totally", "completely"),
        base_confidence=0.85,
        note="Black-and-white framing to avoid nuance.",
    ),
    PatternRule(
        kind=PatternKind.PASSIVE_VOICE_SHIFT,
        terms=("it happened", "was done", "got done", "ended up", "mistakes were made",
               "things occurred", "things occured"),
        base_confidence=0.75,
        note="Subject removed themselves as the active agent.",
    ),
    PatternRule(
        kind=PatternKind.ACTOR_OMISSION,
        terms=("was hit", "got hurt", "was said", "it was decided"),
        base_confidence=0.65,
        note="Actions described without actors.",
    ),
    PatternRule(
        kind=PatternKind.HUMOR_DEFLECTION,
        terms=("haha", "lol", "jk", "just kidding", "anyway", "but yeah", "so yeah",
               "so anyway"),
        base_confidence=0.6,
        note="Humor used to exit deep waters.",
    ),
    PatternRule(
        kind=PatternKind.FUTURE_TENSE_EVASION,
        terms=("i will", "i promise", "going to", "someday", "next time",
               "starting tomorrow"),
        base_confidence=0.8,
        note="Future promises used to avoid present accountability.",
    ),
    PatternRule(
        kind=PatternKind.SOMATIC_LEAKAGE,
        terms=("shaking", "crying", "sweating", "can't breathe", "cannot breathe",
               "chest hurts", "numb", "dizzy", "panic"),
        base_confidence=0.95,
        note="Physiological distress signaled in text.",
    ),
    PatternRule(
        kind=PatternKind.INEVITABILITY_LANGUAGE,
        terms=("had no choice", "forced to", "trapped", "impossible",
               "backed into a corner", "no way out", "had to"),
        base_confidence=0.75,
        note="Agency removed; options framed as nonexistent.",
    ),
    PatternRule(
        kind=PatternKind.SHAME_CUE,
        terms=("my fault", "i deserved", "should have known", "stupid of me",
               "ashamed", "embarrassed"),
        base_confidence=0.85,
        note="Internalized blame / shame language.",
    ),
    PatternRule(
        kind=PatternKind.FREEZE_CUE,
        terms=("i froze", "couldn't move", "couldn't speak", "went blank", "shut down",
               "paralyzed", "paralysed"),
        base_confidence=0.9,
        note="Freeze response indicated.",
    ),
    PatternRule(
        kind=PatternKind.BREVITY_SPIKE,
        max_words=3,
        base_confidence=0.5,
        note="Sudden reduction in verbal output.",
    ),
)

DEFAULT_ECHO_RULES: Tuple[EchoRule, ...] = (
    EchoRule(r"not a big deal", EchoCategory.MINIMIZER),
    EchoRule(r"had no choice", EchoCategory.INEVITABILITY),
    EchoRule(r"my fault", EchoCategory.SHAME),
    EchoRule(r"\bi (?:just )?[^.!?\n]*?\blet\b", EchoCategory.AGENCY),
    EchoRule(r"it is what it is", EchoCategory.MINIMIZER),
)

DEFAULT_SAFETY_RULES: Tuple[SafetyRule, ...] = (
    SafetyRule(
        SafetySignalType.IMMINENT_SELF_HARM,
        r"\b(?:kill myself|suicide|suicidal|end it all|end my life|want to die"
        r"|better off dead|don't want to live)\b",
    ),
    SafetyRule(
        SafetySignalType.IMMINENT_HARM_TO_OTHERS,
        r"\b(?:hurt them|kill him|kill her|kill them|shoot)\b",
    ),
    SafetyRule(
        SafetySignalType.CHILD_EXPLOITATION_DISCLOSURE,
        r"\b(?:minor|child|kid)\w*\b.*\b(?:abus\w*|touch\w*|molest\w*)",
    ),
    SafetyRule(
        SafetySignalType.ACUTE_CRISIS,
        r"\b(?:can't go on|no point|give up)\b",
    ),
)

DEFAULT_SAFETY_RESPONSES: Dict[SafetySignalType, str] = {
    SafetySignalType.IMMINENT_SELF_HARM: (
        "I need to pause. If you're in immediate danger or thinking about harming "
        "yourself, call 988 (US) now, or your local emergency number."
    ),
    SafetySignalType.IMMINENT_HARM_TO_OTHERS: (
        "I need to pause. If anyone is in immediate danger, contact emergency services now."
    ),
    SafetySignalType.CHILD_EXPLOITATION_DISCLOSURE: (
        "I must stop here. If a child is in danger, contact local authorities immediately."
    ),
    SafetySignalType.ACUTE_CRISIS: (
        "I'm going to pause and focus on safety. If you're in crisis, call 988 (US) "
        "or your local emergency number."
    ),
}

DEFAULT_BANNED_TERMS: Tuple[BannedTerm, ...] = (
    BannedTerm("clinical_claim", r"\bpolygraph\w*"),
    BannedTerm("clinical_claim", r"\blie detectors?\b"),
    BannedTerm("diagnostic_label", r"\bnarcissist\w*"),
    BannedTerm("diagnostic_label", r"\btoxic (?:person|people)\b"),
    BannedTerm("diagnostic_label", r"\bdelusional\b"),
    BannedTerm("diagnostic_label", r"\b(?:sociopath|psychopath)\w*"),
    BannedTerm("ai_self_disclosure", r"\bas an ai\b"),
    BannedTerm("ai_self_disclosure", r"\bi am a language model\b"),
    BannedTerm("ai_self_disclosure", r"\bas a language model\b"),
)


@dataclass(frozen=True)
class PatternConfig:
    rules: Tuple[PatternRule, ...] = DEFAULT_PATTERN_RULES
    confidence_cap: float = 0.95


@dataclass(frozen=True)
class EchoConfig:
    rules: Tuple[EchoRule, ...] = DEFAULT_ECHO_RULES
    act_delay: int = 1
    turn_delay: int = 4


@dataclass(frozen=True)
class SafetyConfig:
    rules: Tuple[SafetyRule, ...] = DEFAULT_SAFETY_RULES
    responses: Mapping[SafetySignalType, str] = field(
        default_factory=lambda: dict(DEFAULT_SAFETY_RESPONSES)
    )
    fallback_response: str = "I need to pause for safety reasons."
    confidence: float = 0.95


@dataclass(frozen=True)
class GovernorConfig:
    banned_terms: Tuple[BannedTerm, ...] = DEFAULT_BANNED_TERMS
    max_pressure: int = 9
    reveal_min_score: float = 0.5


@dataclass(frozen=True)
class InevitabilityConfig:
    recurring_min_occurrences: int = 2
    recurring_weight: float = 0.1
    recurring_cap: float = 0.3
    contradiction_weight: float = 0.15
    contradiction_cap: float = 0.4
    critical_loop_priority: int = 8
    critical_loop_bonus: float = 0.2
    contradicted_claim_bonus: float = 0.25
    reveal_threshold: float = 0.75
    confront_soft_threshold: float = 0.5
    confront_firm_threshold: float = 0.85


@dataclass(frozen=True)
class RevealCopy:
    teases: Mapping[ReceiptType, str] = field(default_factory=lambda: {
        ReceiptType.QUOTE: "I have the transcript of what you said that day.",
        ReceiptType.PHOTO: "There is an image from that night that tells a story.",
        ReceiptType.TIMELINE_SNAP: "The timeline shows a sequence we haven't discussed.",
        ReceiptType.MISSING_TAPE: "There is a significant gap in the record.",
    })
    default_tease: str = "I have something from the record that may matter here."
    integration_prompts: Mapping[ReceiptType, str] = field(default_factory=lambda: {
        ReceiptType.QUOTE: "How does hearing those words again land with you now?",
        ReceiptType.MISSING_TAPE: "What was happening during that silence?",
    })
    default_integration_prompt: str = "How does this fit into the story you're telling me?"
    ask_copy: str = "I have something that might clarify this. May I show you?"


@dataclass(frozen=True)
class ControlRoomConfig:
    """Master configuration combining all engine sections."""
    patterns: PatternConfig = field(default_factory=PatternConfig)
    echo: EchoConfig = field(default_factory=EchoConfig)
    safety: SafetyConfig = field(default_factory=SafetyConfig)
    governor: GovernorConfig = field(default_factory=GovernorConfig)
    inevitability: InevitabilityConfig = field(default_factory=InevitabilityConfig)
    reveal: RevealCopy = field(default_factory=RevealCopy)
    gap_threshold_days: int = 180


DEFAULT_CONFIG = ControlRoomConfig()


# =============================================================================
# YAML overlay
# =============================================================================

def _parse_pattern_rule(data: Dict[str, Any]) -> PatternRule:
    return PatternRule(
        kind=PatternKind(data["kind"]),
        note=data.get("note", ""),
        terms=tuple(data.get("terms", ())),
        base_confidence=float(data.get("base_confidence", 0.5)),
        per_match_bonus=float(data.get("per_match_bonus", 0.0)),
        max_words=data.get("max_words"),
    )


def _parse_echo_rule(data: Dict[str, Any]) -> EchoRule:
    return EchoRule(pattern=data["pattern"], category=EchoCategory(data["category"]))


def _parse_safety_rule(data: Dict[str, Any]) -> SafetyRule:
    return SafetyRule(type=SafetySignalType(data["type"]), pattern=data["pattern"])


def _parse_banned_term(data: Dict[str, Any]) -> BannedTerm:
    return BannedTerm(category=data["category"], pattern=data["pattern"])


_RULE_PARSERS = {
    ("patterns", "rules"): _parse_pattern_rule,
    ("echo", "rules"): _parse_echo_rule,
    ("safety", "rules"): _parse_safety_rule,
    ("governor", "banned_terms"): _parse_banned_term,
}


def _overlay_section(section_name: str, section: Any, data: Dict[str, Any]) -> Any:
    known = {f.name for f in dataclasses.fields(section)}
    updates: Dict[str, Any] = {}

    for key, value in data.items():
        if key not in known:
            raise RuleConfigError(f"Unknown key '{section_name}.{key}'")

        parser = _RULE_PARSERS.get((section_name, key))
        if parser is not None:
            try:
                updates[key] = tuple(parser(item) for item in value)
            except (KeyError, TypeError, ValueError) as e:
                raise RuleConfigError(f"Invalid rule in '{section_name}.{key}': {e}") from e
        elif key == "responses":
            updates[key] = {SafetySignalType(k): str(v) for k, v in value.items()}
        elif key in ("teases", "integration_prompts"):
            updates[key] = {ReceiptType(k): str(v) for k, v in value.items()}
        else:
            updates[key] = value

    return dataclasses.replace(section, **updates)


def validate_config(config: ControlRoomConfig) -> None:
    """Compile every pattern once so a bad regex fails at load time."""
    patterns = [r.regex() for r in config.patterns.rules if r.terms]
    patterns += [r.pattern for r in config.echo.rules]
    patterns += [r.pattern for r in config.safety.rules]
    patterns += [t.pattern for t in config.governor.banned_terms]

    for pattern in patterns:
        try:
            re.compile(pattern)
        except re.error as e:
            raise RuleConfigError(f"Invalid pattern {pattern!r}: {e}") from e

    for rule in config.patterns.rules:
        if not rule.terms and rule.max_words is None:
            raise RuleConfigError(f"Pattern rule {rule.kind.value} has no terms or max_words")


def load_yaml_config(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a YAML mapping; a missing file is an empty overlay."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise RuleConfigError(f"{path}: top level must be a mapping")
    return data


def load_config(
    path: Optional[Union[str, Path]] = None,
    base: ControlRoomConfig = DEFAULT_CONFIG,
) -> ControlRoomConfig:
    """
    Build a configuration from defaults plus an optional YAML overlay.

    Args:
        path: YAML file to overlay (None returns ``base``)
        base: Configuration to overlay onto

    Returns:
        Validated ControlRoomConfig
    """
    if path is None:
        return base

    data = load_yaml_config(path)
    sections: Dict[str, Any] = {}

    for key, value in data.items():
        if key == "gap_threshold_days":
            sections[key] = int(value)
        elif key in ("patterns", "echo", "safety", "governor", "inevitability", "reveal"):
            if not isinstance(value, dict):
                raise RuleConfigError(f"Section '{key}' must be a mapping")
            sections[key] = _overlay_section(key, getattr(base, key), value)
        else:
            raise RuleConfigError(f"Unknown section '{key}'")

    config = dataclasses.replace(base, **sections)
    validate_config(config)
    logger.info(f"Loaded control room config from {path}")
    return config
