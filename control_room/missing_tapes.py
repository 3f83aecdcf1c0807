"""
Missing Tapes Engine
====================

Finds silences in a chronological timeline.

The timeline is sorted ascending by date (stable), consecutive entries are
compared in whole days (rounded up), and any gap of at least
``gap_threshold_days`` is reported. Results come back longest first; equal
gaps keep their chronological order.

An unparseable date fails the whole call with ``MalformedTimelineError``
rather than being skipped, so a gap is never reported across a hole the
engine could not see.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Union

from pydantic import ValidationError

from control_room.config import DEFAULT_CONFIG
from control_room.models import MissingTapeCard, TimelineEvent, TimelineGap

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86400


class MalformedTimelineError(ValueError):
    """Raised when a timeline entry cannot be read."""


def _parse_date(value: str) -> datetime:
    try:
        text = value.strip()
        # fromisoformat only accepts a "Z" suffix from 3.11 on
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    except (AttributeError, ValueError) as e:
        raise MalformedTimelineError(f"Unparseable timeline date: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _coerce(entry: Union[TimelineEvent, Mapping[str, Any]]) -> TimelineEvent:
    if isinstance(entry, TimelineEvent):
        return entry
    try:
        return TimelineEvent.model_validate(dict(entry))
    except (TypeError, ValidationError) as e:
        raise MalformedTimelineError(f"Invalid timeline entry: {entry!r}") from e


def _months(days: int) -> int:
    # Half-up, so 6.5 months reads as 7
    return int(math.floor(days / 30 + 0.5))


def _label(event: TimelineEvent) -> str:
    return event.description or event.date


class MissingTapesEngine:

    def __init__(self, gap_threshold_days: int = DEFAULT_CONFIG.gap_threshold_days):
        self.gap_threshold_days = gap_threshold_days

    def find_gaps(
        self,
        timeline: Iterable[Union[TimelineEvent, Mapping[str, Any]]],
    ) -> List[TimelineGap]:
        events = [_coerce(e) for e in timeline]
        if len(events) < 2:
            return []

        dated = sorted(
            ((_parse_date(e.date), e) for e in events),
            key=lambda pair: pair[0],
        )

        gaps: List[TimelineGap] = []
        for (start, a), (end, b) in zip(dated, dated[1:]):
            gap_days = math.ceil((end - start).total_seconds() / _SECONDS_PER_DAY)
            if gap_days >= self.gap_threshold_days:
                gaps.append(TimelineGap(
                    start_date=a.date,
                    end_date=b.date,
                    gap_days=gap_days,
                    description=f'{_months(gap_days)} months between "{_label(a)}" and "{_label(b)}"',
                ))

        logger.debug(f"Found {len(gaps)} timeline gap(s) over {len(events)} entries")
        return sorted(gaps, key=lambda g: g.gap_days, reverse=True)

    def create_receipt_card(self, gap: TimelineGap) -> MissingTapeCard:
        return MissingTapeCard(
            date_start=gap.start_date,
            date_end=gap.end_date,
            gap_description=gap.description,
        )
