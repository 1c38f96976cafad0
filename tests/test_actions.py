"""Tests for structured action payload parsing."""

import pytest
from architecta.actions import ACTION_NAMES, TOOLS, parse_questions, parse_template
from architecta.errors import MalformedAgentOutput
from architecta.models import TemplateType


def test_three_actions():
    assert [t.name for t in TOOLS] == list(ACTION_NAMES)
    assert len(TOOLS) == 3


def test_parse_questions():
    questions = parse_questions({"questions": [{
        "id": "q1",
        "question": "Where should logout live?",
        "options": [
            {"value": "header", "label": "Header menu"},
            {"value": "settings", "label": "Settings page", "description": "Less visible"},
        ],
        "allowMultiple": True,
    }]})
    assert len(questions) == 1
    q = questions[0]
    assert q.id == "q1"
    assert [o.value for o in q.options] == ["header", "settings"]
    assert q.options[1].description == "Less visible"
    assert q.allow_multiple is True


def test_questions_with_one_option_dropped():
    questions = parse_questions({"questions": [
        {"id": "q1", "question": "Only one?", "options": [{"value": "a", "label": "A"}]},
        {"id": "q2", "question": "Two?", "options": [{"value": "a", "label": "A"},
                                                     {"value": "b", "label": "B"}]},
    ]})
    assert [q.id for q in questions] == ["q2"]


@pytest.mark.parametrize("payload", [
    {},
    {"questions": []},
    {"questions": "what?"},
    {"questions": [{"id": "q1", "question": "x", "options": []}]},
    "not an object",
])
def test_unusable_questions_rejected(payload):
    with pytest.raises(MalformedAgentOutput):
        parse_questions(payload)


def test_parse_template():
    t = parse_template({"type": "refactor", "name": "Refactor", "description": "d",
                        "reasoning": "r"})
    assert t.type is TemplateType.REFACTOR
    assert t.reasoning == "r"


def test_unknown_template_type_falls_back():
    t = parse_template({"type": "moonshot", "name": "Moonshot"})
    assert t.type is TemplateType.NEW_FEATURE
    assert t.name == "Moonshot"


def test_template_must_be_object():
    with pytest.raises(MalformedAgentOutput):
        parse_template(["refactor"])
