#!/usr/bin/env python3
"""
control-room CLI
================

Command-line access to the control-room engines.

Usage:
    control-room scan --text "It just happened."     # Safety, patterns, echoes
    control-room scan --file utterance.txt --turn 4

    control-room replay episode.yaml                 # Run an episode turn by turn
    control-room gaps timeline.yaml                  # Timeline silences

    control-room --config rules.yaml -v replay episode.yaml

Episode files (YAML or JSON):
    session_id: ep-1
    turns:
      - "It was just a normal night."
      - "Mistakes were made."
    timeline:                   # optional
      - {date: "2020-01-01", description: "Moved out"}
    claims: []                  # optional, Claim fields
    contradictions: []          # optional, Contradiction fields
    open_loops: []              # optional, OpenLoop fields
    acts: [2]                   # optional, turn indices where a new act starts
"""

import argparse
import json
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from control_room.config import DEFAULT_CONFIG, ControlRoomConfig, load_config
from control_room.echo import EchoPhraseEngine
from control_room.ledger import advance_act
from control_room.missing_tapes import MissingTapesEngine
from control_room.models import Claim, Contradiction, EpisodeState, OpenLoop, TimelineEvent
from control_room.patterns import PatternEngine
from control_room.room import ControlRoom
from control_room.safety import SafetyEngine

logger = logging.getLogger("control_room.cli")


def read_data_file(path: str) -> Any:
    """Parse a YAML or JSON file (JSON is read as YAML)."""
    file_path = Path(path)
    if not file_path.exists():
        raise ValueError(f"File not found: {path}")
    with open(file_path) as f:
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"{path}: {e}") from e


def timeline_entries(raw: Any) -> List[Any]:
    """YAML reads unquoted dates as date objects; hand them on as ISO strings."""
    entries = []
    for entry in raw or []:
        if isinstance(entry, dict) and isinstance(entry.get("date"), (date, datetime)):
            entry = {**entry, "date": entry["date"].isoformat()}
        entries.append(entry)
    return entries


def build_state(episode: Dict[str, Any]) -> EpisodeState:
    return EpisodeState(
        session_id=str(episode.get("session_id", "cli")),
        timeline=[TimelineEvent.model_validate(e) for e in timeline_entries(episode.get("timeline"))],
        claims_ledger=[Claim.model_validate(c) for c in episode.get("claims") or []],
        contradiction_ledger=[Contradiction.model_validate(c) for c in episode.get("contradictions") or []],
        open_loops=[OpenLoop.model_validate(loop) for loop in episode.get("open_loops") or []],
    )


def _print_json(data: Any) -> None:
    print(json.dumps(data, default=str))


# =============================================================================
# Commands
# =============================================================================

def cmd_scan(args: argparse.Namespace, config: ControlRoomConfig) -> int:
    """Run the stateless detectors over one utterance."""
    if args.file:
        text = Path(args.file).read_text(encoding="utf-8")
    else:
        text = args.text

    safety = SafetyEngine(config.safety)
    signal = safety.detect(text, args.turn)
    echoes = EchoPhraseEngine(config.echo).capture(text, args.turn, args.act)

    _print_json({
        "safety": signal.model_dump(mode="json") if signal else None,
        "safety_response": safety.get_response(signal.type) if signal else None,
        "patterns": [
            p.model_dump(mode="json")
            for p in PatternEngine(config.patterns).detect_patterns(text, args.turn)
        ],
        "echoes": [e.model_dump(mode="json") for e in echoes],
    })
    return 0


def cmd_replay(args: argparse.Namespace, config: ControlRoomConfig) -> int:
    """Process every turn of an episode file through the control room."""
    episode = read_data_file(args.episode)
    if not isinstance(episode, dict) or not isinstance(episode.get("turns"), list):
        raise ValueError(f"{args.episode}: expected a mapping with a 'turns' list")

    room = ControlRoom(config)
    state = build_state(episode)
    act_starts = set(episode.get("acts") or [])

    for text in episode["turns"]:
        if state.turn_index in act_starts:
            state = advance_act(state)
        result = room.process_turn(str(text), state)
        state = result.state
        _print_json(result.feed.model_dump(mode="json"))

    audit = room.audit_log(state.session_id)
    chain_ok = audit.verify_chain()
    _print_json({
        "session_id": state.session_id,
        "turns": state.turn_index,
        "audit_events": audit.event_count,
        "chain_valid": chain_ok,
    })
    return 0 if chain_ok else 1


def cmd_gaps(args: argparse.Namespace, config: ControlRoomConfig) -> int:
    """List silences in a timeline file, longest first."""
    data = read_data_file(args.timeline)
    timeline: Optional[List[Any]] = data.get("timeline") if isinstance(data, dict) else data
    if not isinstance(timeline, list):
        raise ValueError(f"{args.timeline}: expected a list of timeline entries")

    engine = MissingTapesEngine(config.gap_threshold_days)
    for gap in engine.find_gaps(timeline_entries(timeline)):
        _print_json({
            "start_date": gap.start_date,
            "end_date": gap.end_date,
            "gap_days": gap.gap_days,
            "description": gap.description,
        })
    return 0


# =============================================================================
# Entry point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="control-room",
        description="Interview signal and disclosure control engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="YAML rule/threshold overlay")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # scan
    p = subparsers.add_parser("scan", help="Run detectors over one utterance")
    source = p.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", help="Utterance text")
    source.add_argument("--file", help="File holding the utterance")
    p.add_argument("--turn", type=int, default=0, help="Turn index (default: 0)")
    p.add_argument("--act", type=int, default=1, help="Current act (default: 1)")
    p.set_defaults(func=cmd_scan)

    # replay
    p = subparsers.add_parser("replay", help="Replay an episode file")
    p.add_argument("episode", help="Episode YAML/JSON file")
    p.set_defaults(func=cmd_replay)

    # gaps
    p = subparsers.add_parser("gaps", help="Find timeline gaps")
    p.add_argument("timeline", help="Timeline YAML/JSON file")
    p.set_defaults(func=cmd_gaps)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_config(args.config) if args.config else DEFAULT_CONFIG
        return args.func(args, config)
    except (OSError, ValueError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
