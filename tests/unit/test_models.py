# Author: Bradley R. Kinnard — scanners never agree on field names

import pytest
from pydantic import ValidationError

from src.suggester.core.models import Category, Issue, IssueType, Severity, SuggestionRequest


def test_issue_accepts_scanner_spellings():
    i = Issue.model_validate({"id": 7, "type": "XSS", "code": "x = 1", "lineNumber": "42", "filePath": "a.js"})
    assert (i.id, i.code_snippet, i.line, i.file) == ("7", "x = 1", 42, "a.js")
    assert i.severity is Severity.MEDIUM
    assert i.category is None


def test_issue_lenient_values():
    i = Issue.model_validate({"severity": "bogus", "category": "style", "line": "n/a"})
    assert i.severity is Severity.MEDIUM
    assert i.category is Category.QUALITY
    assert i.line is None
    assert i.id == "unknown"


def test_issue_is_read_only():
    i = Issue(id="a")
    with pytest.raises(ValidationError):
        i.id = "b"


def test_type_aliases():
    assert IssueType.parse("cross-site scripting") is IssueType.XSS
    assert IssueType.parse("HARDCODED_SECRET") is IssueType.HARDCODED_CREDENTIALS
    assert IssueType.parse("NOT_A_THING") is None
    assert Issue(type="Potential Memory Leak").known_type is IssueType.MEMORY_LEAK


def test_severity_ordering():
    assert sorted([Severity.LOW, Severity.CRITICAL, Severity.HIGH], reverse=True)[0] is Severity.CRITICAL
    assert Severity.parse(3) is Severity.HIGH


def test_request_snake_or_camel():
    a = SuggestionRequest.model_validate({"sessionId": "s", "analysisId": "a", "issues": [{"id": "1"}]})
    b = SuggestionRequest.model_validate({"session_id": "s", "analysis_id": "a", "issues": [{"id": "1"}]})
    assert a.analysis_id == b.analysis_id == "a"
    assert a.strategy == "hybrid"


def test_request_rejects_blank_ids():
    with pytest.raises(ValidationError):
        SuggestionRequest.model_validate({"sessionId": "", "analysisId": "a", "issues": [{}]})


@pytest.mark.parametrize("ids", [("   ", "a"), ("s", "\t"), (" ", " ")])
def test_request_rejects_whitespace_ids(ids):
    session_id, analysis_id = ids
    with pytest.raises(ValidationError) as exc:
        SuggestionRequest.model_validate({"sessionId": session_id, "analysisId": analysis_id, "issues": [{"id": "a"}]})
    assert "must not be blank" in str(exc.value)
