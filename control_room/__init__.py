"""
Control Room
============

Interview signal and disclosure control engine.

Ingests one subject utterance at a time, detects linguistic and behavioural
signals, accumulates them into a per-episode evidence record, scores how
inevitable a confrontation or reveal has become, and runs every proposed
host action through a priority-ordered veto chain.

Components:
- SafetyEngine: crisis detector, pre-empts everything else
- PatternEngine: evasion/distress signal extractor
- EchoPhraseEngine: held-back quotes from the subject's own words
- MissingTapesEngine: timeline gap finder
- InevitabilityEngine: ledgers -> readiness score
- RevealEngine: receipt card -> reveal plan
- SPGovernor: final veto authority
- ControlRoom: per-turn orchestrator with a hash-chained AuditLog

Precedence: safety > content standards > reveal readiness.
"""

__version__ = "0.3.0"

from control_room.audit import AuditEvent, AuditEventType, AuditLog
from control_room.config import (
    DEFAULT_CONFIG,
    ControlRoomConfig,
    RuleConfigError,
    load_config,
)
from control_room.echo import EchoPhraseEngine
from control_room.governor import ProposalContext, RevealReview, SPGovernor, SPVeto
from control_room.inevitability import InevitabilityEngine, InevitabilityScore
from control_room.ledger import LedgerError
from control_room.missing_tapes import MalformedTimelineError, MissingTapesEngine
from control_room.models import (
    EchoPhrase,
    EpisodeState,
    HostStrategy,
    PatternKind,
    PatternSignal,
    ReceiptCard,
    RevealPlan,
    RhetoricalDevice,
    RiskLevel,
    SafetySignal,
    SafetySignalType,
    TimelineGap,
)
from control_room.patterns import PatternEngine
from control_room.reveal import RevealEngine
from control_room.room import ControlRoom, HostFeed, PressureGovernance, TurnResult
from control_room.safety import SafetyEngine

__all__ = [
    # Engines
    'SafetyEngine',
    'PatternEngine',
    'EchoPhraseEngine',
    'MissingTapesEngine',
    'InevitabilityEngine',
    'InevitabilityScore',
    'RevealEngine',
    'SPGovernor',
    'SPVeto',
    'RevealReview',
    'ProposalContext',

    # Orchestration
    'ControlRoom',
    'HostFeed',
    'PressureGovernance',
    'TurnResult',
    'AuditLog',
    'AuditEvent',
    'AuditEventType',

    # Models
    'EpisodeState',
    'PatternKind',
    'PatternSignal',
    'EchoPhrase',
    'SafetySignal',
    'SafetySignalType',
    'ReceiptCard',
    'RevealPlan',
    'HostStrategy',
    'RhetoricalDevice',
    'RiskLevel',
    'TimelineGap',

    # Configuration and errors
    'ControlRoomConfig',
    'DEFAULT_CONFIG',
    'load_config',
    'RuleConfigError',
    'LedgerError',
    'MalformedTimelineError',
]
