# Author: Bradley R. Kinnard — models can't count braces, tests can

"""Parser is total: whatever the model says, a full Suggestion comes out."""

import json

from src.suggester.core.models import InvocationResult
from src.suggester.services.response_parser import extract_json, parse_suggestion, sanitize_json
from tests.conftest import MODEL_JSON, make_issue

ISSUE = make_issue(1, category="security")


def _inv(text="x", **kw) -> InvocationResult:
    return InvocationResult(success=True, model_id="amazon.nova-lite-v1:0", response_text=text, **kw)


def _parse(text):
    return parse_suggestion(text, ISSUE, _inv())


def test_fenced_json_is_used():
    text = f"Here you go:\n```json\n{json.dumps(MODEL_JSON)}\n```\nanything else?"
    s = _parse(text)
    assert s.immediate_fix.title == "Bind the parameter"
    assert s.best_practice.benefits == ["Safe", "Cacheable"]
    assert s.prevention.tools[0].name == "bandit"
    assert s.issue_description == MODEL_JSON["issueDescription"]


def test_extract_prefers_fence_over_braces():
    text = 'noise {"a": 1} ```json\n{"b": 2}\n``` trailing }'
    assert json.loads(extract_json(text)) == {"b": 2}
    assert extract_json("no json here") is None
    assert extract_json(None) is None


def test_missing_sections_come_from_catalog():
    s = _parse('{"immediateFix": {"title": "Only this", "replaceCode": "fixed()"}}')
    assert s.immediate_fix.title == "Only this"
    assert s.best_practice.title and s.best_practice.benefits
    assert s.testing.validation_steps
    assert s.prevention.guidelines and s.prevention.tools
    assert s.issue_description


def test_trailing_commas_are_repaired():
    s = _parse('{"immediateFix": {"title": "T", "explanation": "because",},}')
    assert s.immediate_fix.title == "T"
    assert s.immediate_fix.explanation == "because"


def test_raw_newlines_inside_strings():
    s = _parse('{"immediateFix": {"title": "T", "replaceCode": "line1\nline2\tend"}}')
    assert s.immediate_fix.replace_code == "line1\nline2\tend"


def test_sanitize_is_idempotent():
    broken = '{"a": "x\ny", "b": [1, 2,],}'
    once = sanitize_json(broken)
    assert json.loads(once) == {"a": "x\ny", "b": [1, 2]}
    assert sanitize_json(once) == once
    valid = '{"ok": true}'
    assert sanitize_json(valid) is valid


def test_sanitize_gives_up_on_non_objects():
    assert sanitize_json("[1, 2,") is None


def test_double_escaped_json():
    text = '{\\"immediateFix\\": {\\"title\\": \\"Escape hatch\\"}}'
    assert _parse(text).immediate_fix.title == "Escape hatch"


def test_truncated_json_is_reconstructed():
    text = '{"immediateFix": {"title": "Use prepared statements", "searchCode": "q = a + b", "replaceCode": "cur.execute(q, p)"'
    s = _parse(text)
    assert s.immediate_fix.title == "Use prepared statements"
    assert s.immediate_fix.search_code == "q = a + b"
    assert s.immediate_fix.replace_code == "cur.execute(q, p)"
    assert s.immediate_fix.explanation  # filled in
    assert s.testing.test_case


def test_prose_gets_generic_structure():
    s = _parse("Sorry, I think this is a SQL problem but I can't produce JSON.")
    assert s.immediate_fix.title == "SQL Injection Fix Required"
    assert s.best_practice.benefits


def test_wrong_shape_falls_back_to_generic():
    s = _parse('{"immediateFix": "just a string"}')
    assert s.immediate_fix.title == "Code Review Required"


def test_empty_output():
    assert parse_suggestion(None, ISSUE, _inv()).immediate_fix.title == "Code Review Required"
    assert _parse("").immediate_fix.search_code


def test_tool_names_as_plain_strings():
    s = _parse('{"prevention": {"tools": ["SonarQube", "Bandit"], "guidelines": "one rule"}}')
    assert [t.name for t in s.prevention.tools] == ["SonarQube", "Bandit"]
    assert s.prevention.guidelines == ["one rule"]


def test_usage_and_identity_come_from_the_invocation():
    inv = _inv(total_tokens=512, estimated_cost=0.0123, timestamp="2026-01-01T00:00:00Z")
    s = parse_suggestion(json.dumps(MODEL_JSON), ISSUE, inv)
    assert (s.tokens_used, s.cost) == (512, 0.0123)
    assert s.model_used == "amazon.nova-lite-v1:0"
    assert s.timestamp == "2026-01-01T00:00:00Z"
    assert (s.issue_id, s.issue_type, s.severity.name) == ("issue-1", "SQL_INJECTION", "HIGH")


def test_wire_form_is_camel_case():
    wire = _parse(json.dumps(MODEL_JSON)).to_wire()
    assert wire["issueId"] == "issue-1"
    assert wire["severity"] == "HIGH"
    assert wire["category"] == "security"
    assert wire["immediateFix"]["searchCode"].startswith("query =")
    assert wire["prevention"]["codeReviewChecklist"] == ["Placeholders everywhere"]
