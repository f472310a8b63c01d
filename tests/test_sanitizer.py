"""Tests for the oracle response sanitizer."""

import json

import pytest

from historia.state.schema import EventCategory, EventUpdate, OwnerUpdate, RelationUpdate, TimeUpdate
from historia.systems.sanitizer import (
    PLACEHOLDER_MESSAGE,
    ParseError,
    extract_json,
    sanitize,
    sanitize_payload,
)


class TestExtractJson:
    """Cutting the JSON object out of oracle text."""

    def test_strips_json_fence(self):
        raw = '```json\n{"message": "hi"}\n```'
        assert extract_json(raw) == '{"message": "hi"}'

    def test_strips_bare_fence(self):
        raw = '```\n{"message": "hi"}\n```'
        assert extract_json(raw) == '{"message": "hi"}'

    def test_ignores_surrounding_prose(self):
        raw = 'Sure! Here you go: {"message": "hi", "updates": []} Hope that helps.'
        assert extract_json(raw) == '{"message": "hi", "updates": []}'

    def test_spans_first_to_last_brace(self):
        raw = 'x {"a": {"b": 1}} y'
        assert extract_json(raw) == '{"a": {"b": 1}}'

    def test_no_braces_returns_trimmed_text(self):
        assert extract_json("   nothing here  ") == "nothing here"


class TestSanitize:
    """End-to-end raw text to payload."""

    def test_invalid_json_raises(self):
        with pytest.raises(ParseError):
            sanitize("The oracle is confused today.", 1805)

    def test_truncated_json_raises(self):
        with pytest.raises(ParseError):
            sanitize('{"message": "cut off', 1805)

    def test_deeply_nested_json_raises(self):
        depth = 200_000
        raw = '{"message": "x", "updates": ' + "[" * depth + "]" * depth + "}"
        with pytest.raises(ParseError):
            sanitize(raw, 1805)

    def test_non_object_top_level_is_empty(self):
        payload = sanitize("[1, 2, 3]", 1805)
        assert payload.message == PLACEHOLDER_MESSAGE
        assert payload.updates == []

    def test_fenced_normandy_example(self):
        raw = (
            '```json\n{"message":"Forces advance.","updates":['
            '{"type":"owner","provinceName":"Normandy (France)","newOwnerId":"player"},'
            '{"type":"relation","nationA":"player","nationB":"England",'
            '"relationType":"war","reason":"invasion"}]}\n```'
        )
        payload = sanitize(raw, 1805)

        assert payload.message == "Forces advance."
        assert len(payload.updates) == 2
        owner, relation = payload.updates
        assert isinstance(owner, OwnerUpdate)
        assert owner.province_name == "Normandy (France)"
        assert owner.new_owner_id == "player"
        assert isinstance(relation, RelationUpdate)
        assert relation.relation_type == "war"
        assert relation.reason == "invasion"


class TestMessage:

    def test_message_is_trimmed(self):
        payload = sanitize_payload({"message": "  Done.  "}, 1805)
        assert payload.message == "Done."

    @pytest.mark.parametrize("message", [None, "", "   ", 42, ["a"]])
    def test_unusable_message_gets_placeholder(self, message):
        payload = sanitize_payload({"message": message}, 1805)
        assert payload.message == PLACEHOLDER_MESSAGE

    def test_story_so_far_kept_when_present(self):
        payload = sanitize_payload({"message": "m", "storySoFar": " The war drags on. "}, 1805)
        assert payload.story_so_far == "The war drags on."


class TestUpdates:
    """Per-element validation."""

    def test_updates_not_a_list(self):
        payload = sanitize_payload({"message": "m", "updates": {"type": "time"}}, 1805)
        assert payload.updates == []

    def test_bad_elements_dropped_good_kept(self):
        payload = sanitize_payload({
            "message": "m",
            "updates": [
                "not an object",
                None,
                {"type": "owner", "provinceName": "Kent"},
                {"type": "teleport", "to": "moon"},
                {"type": ["owner"]},
                {"type": "owner", "provinceName": " Kent ", "newOwnerId": " ai_red "},
            ],
        }, 1805)

        assert len(payload.updates) == 1
        assert payload.updates[0].province_name == "Kent"
        assert payload.updates[0].new_owner_id == "ai_red"

    def test_owner_requires_non_empty_strings(self):
        payload = sanitize_payload({
            "message": "m",
            "updates": [{"type": "owner", "provinceName": "  ", "newOwnerId": "player"}],
        }, 1805)
        assert payload.updates == []

    @pytest.mark.parametrize("amount,expected", [
        (1, 1),
        (2.9, 2),
        (-1.5, -1),
        ("3", 3),
        (" 4 ", 4),
        ("", 0),
        (True, 1),
        ("0x10", 16),
        (None, 0),
    ])
    def test_time_amount_coerced(self, amount, expected):
        payload = sanitize_payload({"message": "m", "updates": [{"type": "time", "amount": amount}]}, 1805)
        assert payload.updates == [TimeUpdate(amount=expected)]

    @pytest.mark.parametrize("amount", ["soon", "inf", "Infinity", "1_000", [1], {}])
    def test_time_amount_not_finite_dropped(self, amount):
        payload = sanitize_payload({"message": "m", "updates": [{"type": "time", "amount": amount}]}, 1805)
        assert payload.updates == []

    def test_time_without_amount_dropped(self):
        payload = sanitize_payload({"message": "m", "updates": [{"type": "time"}]}, 1805)
        assert payload.updates == []

    def test_event_defaults(self):
        payload = sanitize_payload({
            "message": "m",
            "updates": [{"type": "event", "description": " Treaty signed "}],
        }, 1805)

        event = payload.updates[0]
        assert isinstance(event, EventUpdate)
        assert event.description == "Treaty signed"
        assert event.event_type == EventCategory.FLAVOR
        assert event.year == 1805

    def test_event_type_normalized(self):
        payload = sanitize_payload({
            "message": "m",
            "updates": [
                {"type": "event", "description": "a", "eventType": "war", "year": "1806"},
                {"type": "event", "description": "b", "eventType": "Crisis", "year": 1807.7},
                {"type": "event", "description": "c", "eventType": "gossip", "year": "later"},
            ],
        }, 1805)

        assert [u.event_type for u in payload.updates] == [
            EventCategory.WAR, EventCategory.CRISIS, EventCategory.FLAVOR,
        ]
        assert [u.year for u in payload.updates] == [1806, 1807, 1805]

    def test_null_year_is_zero_missing_year_falls_back(self):
        payload = sanitize_payload({
            "message": "m",
            "updates": [
                {"type": "event", "description": "a", "year": None},
                {"type": "event", "description": "b"},
            ],
        }, 1805)

        assert [u.year for u in payload.updates] == [0, 1805]

    def test_event_requires_description_string(self):
        payload = sanitize_payload({"message": "m", "updates": [{"type": "event", "description": 5}]}, 1805)
        assert payload.updates == []

    def test_relation_reason_defaults_empty(self):
        payload = sanitize_payload({
            "message": "m",
            "updates": [{"type": "relation", "nationA": "player", "nationB": "Spain", "relationType": "allied"}],
        }, 1805)
        assert payload.updates[0].reason == ""

    def test_relation_requires_all_names(self):
        payload = sanitize_payload({
            "message": "m",
            "updates": [{"type": "relation", "nationA": "player", "relationType": "war"}],
        }, 1805)
        assert payload.updates == []


class TestIdempotence:

    def test_sanitizing_twice_is_stable(self):
        raw = {
            "message": "  The channel is crossed. ",
            "updates": [
                {"type": "owner", "provinceName": "Kent ", "newOwnerId": "ai_red"},
                {"type": "time", "amount": "2.5"},
                {"type": "event", "description": "Landing", "eventType": "war"},
                {"type": "relation", "nationA": "a", "nationB": "b", "relationType": "war"},
                "junk",
            ],
            "storySoFar": "So far.",
        }
        once = sanitize_payload(raw, 1805)
        twice = sanitize_payload(once.to_wire(), 1805)
        assert twice == once

    def test_round_trip_through_text(self):
        once = sanitize('{"message": "m", "updates": [{"type": "time", "amount": 1}]}', 1805)
        again = sanitize(json.dumps(once.to_wire()), 1999)
        assert again == once
