from questline.agent.decision_parser import (
    HeuristicDecision,
    StructuredDecision,
    Unparseable,
    parse_decision,
    validate_target,
)


def test_plain_json_object() -> None:
    parsed = parse_decision('{"targetId": "p3", "reasoning": "quiet all game"}')
    assert isinstance(parsed, StructuredDecision)
    assert parsed.kind == "structured"
    assert parsed.target_id == "p3"
    assert parsed.reasoning == "quiet all game"


def test_fenced_json_with_alternate_keys() -> None:
    raw = 'Here is my choice:\n```json\n{"target_id": "p5", "reason": "voted oddly"}\n```\nGood luck.'
    parsed = parse_decision(raw)
    assert isinstance(parsed, StructuredDecision)
    assert parsed.target_id == "p5"
    assert parsed.reasoning == "voted oddly"


def test_json_embedded_in_prose() -> None:
    parsed = parse_decision('I think {"target": "p2", "explanation": "suspicious"} is best')
    assert isinstance(parsed, StructuredDecision)
    assert parsed.target_id == "p2"
    assert parsed.reasoning == "suspicious"


def test_null_like_targets_become_none() -> None:
    for value in ('null', '"null"', '"None"', '""'):
        parsed = parse_decision('{"targetId": %s}' % value)
        assert isinstance(parsed, StructuredDecision)
        assert parsed.target_id is None
        assert parsed.reasoning == "No reasoning provided"


def test_keyword_heuristic_skips_filler_words() -> None:
    parsed = parse_decision("I want to target the quiet one, so kill p5 tonight")
    assert isinstance(parsed, HeuristicDecision)
    assert parsed.kind == "heuristic"
    assert parsed.target_id == "p5"

    parsed = parse_decision("I will vote for p4 today")
    assert isinstance(parsed, HeuristicDecision)
    assert parsed.target_id == "p4"


def test_unparseable_responses() -> None:
    empty = parse_decision("   ")
    assert isinstance(empty, Unparseable)
    assert empty.reason == "empty response"

    vague = parse_decision("I am not sure yet.")
    assert isinstance(vague, Unparseable)
    assert vague.kind == "unparseable"

    broken = parse_decision("```json\n{bad json}\n```")
    assert isinstance(broken, Unparseable)


def test_validate_target_against_pool() -> None:
    assert validate_target("p2", ["p1", "p2"]) == "p2"
    assert validate_target("p9", ["p1", "p2"]) is None
    assert validate_target(None, ["p1"]) is None
