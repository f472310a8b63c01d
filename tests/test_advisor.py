"""Tests for advisor consultations."""

import json

import pytest

from historia.llm import ProviderConfig
from historia.prompts import ADVISOR_SYSTEM_PROMPT, AdvisorContext, AdvisorMessage, build_advisor_prompt
from historia.state import DiplomaticRelation, GameEvent, RelationType
from historia.systems import AdvisorCategory, consult, sanitize_advice
from historia.systems.advisor import (
    CONFOUNDED_ADVICE,
    DEFAULT_SUGGESTION,
    interrupted_counsel,
    sanitize_advisor_payload,
)


def make_context(**overrides) -> AdvisorContext:
    fields = dict(question="Should we invade?", player_nation="Prussia", year=1805, scenario="Napoleonic Wars")
    fields.update(overrides)
    return AdvisorContext(**fields)


class TestPrompt:

    def test_new_session(self):
        prompt = build_advisor_prompt(make_context())

        assert prompt.startswith("You are the Grand Advisor to Prussia's ruler.")
        assert "Context: Napoleonic Wars | Year 1805 | Realistic" in prompt
        assert "Relations: None\nEvents: None" in prompt
        assert "Prior conversation:\nNew session." in prompt
        assert 'Ruler asks: "Should we invade?"' in prompt

    def test_only_last_six_exchanges(self):
        history = [AdvisorMessage("user" if i % 2 == 0 else "assistant", f"line {i}") for i in range(8)]

        prompt = build_advisor_prompt(make_context(history=history))

        assert "line 0" not in prompt and "line 1" not in prompt
        assert "[RULER] line 2\n[ADVISOR] line 3" in prompt
        assert "[ADVISOR] line 7" in prompt

    def test_relations_and_events(self):
        prompt = build_advisor_prompt(make_context(
            relations=[DiplomaticRelation(nation_a="Prussia", nation_b="France", type=RelationType.WAR)],
            events=[GameEvent(year=1805, description="Austerlitz")],
        ))

        assert "Relations: Prussia<->France: war" in prompt
        assert "Events: [1805] Austerlitz" in prompt


class TestSanitize:

    def test_full_reply(self):
        reply = sanitize_advice(json.dumps({
            "advice": " Mobilize now. ",
            "category": "military",
            "suggestedActions": [" Raise the Landwehr ", "", 4, "Fortify Silesia"],
        }))

        assert reply.advice == "Mobilize now."
        assert reply.category == AdvisorCategory.MILITARY
        assert reply.suggested_actions == ["Raise the Landwehr", "Fortify Silesia"]

    def test_defaults(self):
        reply = sanitize_advisor_payload({"category": "Military", "suggestedActions": "march"})

        assert reply.advice == CONFOUNDED_ADVICE
        assert reply.category == AdvisorCategory.GENERAL
        assert reply.suggested_actions == [DEFAULT_SUGGESTION]

    def test_at_most_five_actions(self):
        reply = sanitize_advisor_payload({"advice": "a", "suggestedActions": [f"Do {i}" for i in range(9)]})
        assert reply.suggested_actions == [f"Do {i}" for i in range(5)]

    @pytest.mark.parametrize("actions", [[], ["  "], [None, 1]])
    def test_never_empty(self, actions):
        assert sanitize_advisor_payload({"advice": "a", "suggestedActions": actions}).suggested_actions == [
            DEFAULT_SUGGESTION,
        ]


def test_consult_round_trip(dispatcher, mock_client):
    mock_client.set_responses([json.dumps({"advice": "Wait.", "category": "diplomacy", "suggestedActions": ["Send envoy"]})])

    reply = consult(dispatcher, ProviderConfig(provider="local"), make_context())

    assert reply.to_wire() == {"advice": "Wait.", "category": "diplomacy", "suggestedActions": ["Send envoy"]}
    assert mock_client.calls[0]["system_prompt"] == ADVISOR_SYSTEM_PROMPT


def test_interrupted_counsel_body():
    body = interrupted_counsel("boom")

    assert body["category"] == "general"
    assert body["suggestedActions"] == ["Wait and try consulting the advisor again"]
    assert body["error"] == "boom"
