#!/usr/bin/env python3
"""
test_audit.py - Unit tests for the hash-chained audit log

Run with: pytest tests/test_audit.py -v
"""

import json

import pytest

from control_room.audit import GENESIS_HASH, AuditEventType, AuditLog
from control_room.models import HostStrategy, RhetoricalDevice, SafetySignal


@pytest.fixture
def log():
    ticks = iter(range(1000, 2000))
    return AuditLog("ep-audit", clock=lambda: next(ticks))


class TestAuditLog:

    def test_empty_chain_verifies(self, log):
        assert log.verify_chain() is True
        assert log.get_latest() is None
        assert log.event_count == 0

    def test_events_are_chained(self, log):
        first = log.turn_received(0, "hello there")
        second = log.strategy_proposed(0, HostStrategy.PRESS, RhetoricalDevice.FUTURE_LOCK, "Lock in.", 5)

        assert first.sequence == 0
        assert first.prev_hash == GENESIS_HASH
        assert second.prev_hash == first.event_hash
        assert first.timestamp_ns == 1000
        assert log.get_latest() is second

    def test_payloads_use_wire_values(self, log):
        event = log.strategy_proposed(2, HostStrategy.PRESS, RhetoricalDevice.FUTURE_LOCK, "Lock in.", 5)
        assert event.data == {
            "strategy": "PRESS",
            "device": "FUTURE_LOCK",
            "pressure": 5,
            "instruction_len": 8,
        }

    def test_safety_event(self, log):
        signal = SafetySignal(
            type="acute_crisis", confidence=0.95, evidence_turn_id="turn-3", triggered_at="now",
        )
        event = log.safety_triggered(3, signal)
        assert event.event_type == AuditEventType.SAFETY_TRIGGERED
        assert event.data == {"safety_type": "acute_crisis", "confidence": 0.95}

    def test_filter_by_type(self, log):
        log.turn_received(0, "a")
        log.echoes_captured(0, ["echo-0-0"])
        log.turn_received(1, "b")

        received = log.get_events(AuditEventType.TURN_RECEIVED)
        assert [e.turn_index for e in received] == [0, 1]
        assert len(log.get_events("echoes_captured")) == 1

    def test_edit_detected(self, log):
        log.turn_received(0, "a")
        log.turn_received(1, "b")
        log.get_events()[0].turn_index = 7
        assert log.verify_chain() is False

    def test_dropped_event_detected(self, log):
        for i in range(3):
            log.turn_received(i, "x")
        del log._events[1]
        assert log.verify_chain() is False

    def test_export_is_json_ready(self, log):
        log.feed_emitted(0, HostStrategy.HOLD, None, "low")
        exported = json.loads(json.dumps(log.to_dict()))

        assert exported[0]["event_type"] == "feed_emitted"
        assert exported[0]["data"]["device"] is None
        assert exported[0]["session_id"] == "ep-audit"
