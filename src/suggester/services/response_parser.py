# Author: Bradley R. Kinnard — models can't count braces

"""
Turn raw model text into a Suggestion. Total function: bad JSON gets repaired,
unrepairable JSON gets reconstructed from whatever fields can be salvaged,
and if nothing survives you get a generic suggestion. Never raises on content.
"""

import json
import logging
import re

from pydantic import ValidationError

from src.suggester.core import issue_catalog as catalog
from src.suggester.core.models import ImmediateFix, InvocationResult, Issue, Suggestion, SuggestionBody

log = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(\{.*?\})\s*```", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_ALLOWED_CONTROL = {"\n", "\r", "\t"}
_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t", "\b": "\\b", "\f": "\\f"}


def extract_json(text: str | None) -> str | None:
    """fenced ```json block first, then the outermost brace span. None if neither exists."""
    if not text:
        return None
    m = _FENCE_RE.search(text)
    if m:
        return m.group(1)
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def _escape_inside_strings(s: str) -> str:
    """walk the text, escape raw control chars inside string literals, drop the nasty ones outside"""
    out: list[str] = []
    in_string = False
    escaped = False
    for ch in s:
        if in_string:
            if escaped:
                out.append(ch)
                escaped = False
            elif ch == "\\":
                out.append(ch)
                escaped = True
            elif ch == '"':
                out.append(ch)
                in_string = False
            elif ch in _ESCAPES:
                out.append(_ESCAPES[ch])
            elif ord(ch) < 0x20 or ord(ch) == 0x7F:
                out.append(f"\\u{ord(ch):04x}")
            else:
                out.append(ch)
        else:
            if ch == '"':
                in_string = True
            if (ord(ch) < 0x20 and ch not in _ALLOWED_CONTROL) or ord(ch) == 0x7F:
                continue
            out.append(ch)
    return "".join(out)


def sanitize_json(candidate: str) -> str | None:
    """
    Best-effort repair. Anything that already parses comes back untouched, so running this twice is a no-op.
    Returns None when the result still isn't an object.
    """
    try:
        json.loads(candidate)
        return candidate
    except ValueError:
        pass

    s = candidate.strip()
    # double-escaped output, e.g. {\"title\": ...}
    if '\\"' in s and not re.search(r'(?<!\\)"', s.replace('\\"', "")):
        s = s.replace('\\"', '"').replace("\\\\", "\\")
    s = _escape_inside_strings(s)
    s = _TRAILING_COMMA_RE.sub(r"\1", s)
    s = s.strip()
    if not (s.startswith("{") and s.endswith("}")):
        return None
    return s


def _load_object(text: str | None) -> dict | None:
    candidate = extract_json(text)
    if candidate is None:
        return None
    fixed = sanitize_json(candidate)
    if fixed is None:
        return None
    try:
        data = json.loads(fixed)
    except ValueError as e:
        log.info(f"json still broken after sanitizing: {e}")
        return None
    return data if isinstance(data, dict) else None


def _grab(text: str, key: str) -> str:
    m = re.search(rf'"{key}"\s*:\s*"((?:[^"\\]|\\.)*)"', text, re.DOTALL)
    if not m:
        return ""
    raw = m.group(1)
    try:
        return json.loads(f'"{raw}"')
    except ValueError:
        return raw.replace('\\"', '"').replace("\\n", "\n")


def reconstruct(text: str, issue: Issue) -> SuggestionBody | None:
    """salvage the immediate fix fields with regexes, fill the rest from category defaults"""
    found = {k: _grab(text, k) for k in ("title", "searchCode", "replaceCode", "explanation", "issueDescription")}
    if not any(found[k] for k in ("title", "searchCode", "replaceCode", "explanation")):
        return None
    d = catalog.defaults_for(issue)
    fix = ImmediateFix(
        title=found["title"] or catalog.contextual_title(issue),
        search_code=found["searchCode"] or issue.code_snippet or "// Review the identified code section",
        replace_code=found["replaceCode"] or f"// {d.fix}",
        explanation=found["explanation"] or catalog.contextual_explanation(issue),
    )
    return SuggestionBody(issue_description=found["issueDescription"], immediate_fix=fix)


def generic_body(text: str | None) -> SuggestionBody:
    """last resort, keyed on a couple of obvious words in the raw output"""
    lowered = (text or "").lower()
    if "sql" in lowered:
        title, explanation = "SQL Injection Fix Required", "Use parameterized queries to prevent SQL injection."
    elif "xss" in lowered:
        title, explanation = "XSS Prevention Required", "Validate input and encode output to prevent XSS."
    elif "security" in lowered:
        title, explanation = "Security Issue Fix Required", "Review and apply appropriate security measures for this vulnerability."
    else:
        title, explanation = "Code Review Required", "This issue requires manual review and the relevant best practices applied."
    fix = ImmediateFix(
        title=title,
        search_code="// Review the identified code section",
        replace_code="// Apply appropriate security measures and best practices",
        explanation=explanation,
    )
    return SuggestionBody(immediate_fix=fix)


def _body_from(data: dict) -> SuggestionBody | None:
    try:
        return SuggestionBody.model_validate(data)
    except ValidationError as e:
        log.info(f"model json had the wrong shape: {e.error_count()} errors")
        return None


def parse_suggestion(raw_text: str | None, issue: Issue, invocation: InvocationResult) -> Suggestion:
    data = _load_object(raw_text)
    body = _body_from(data) if data is not None else None
    if body is None:
        body = reconstruct(raw_text or "", issue)
        if body is not None:
            log.info(f"reconstructed suggestion for issue {issue.id} from partial output")
    if body is None:
        log.warning(f"unusable model output for issue {issue.id}, using generic structure")
        body = generic_body(raw_text)

    fix = body.immediate_fix or ImmediateFix(
        title=catalog.contextual_title(issue),
        search_code=issue.code_snippet or "// Review the identified code section",
        replace_code=f"// {catalog.defaults_for(issue).fix}",
        explanation=catalog.contextual_explanation(issue),
    )
    return Suggestion(
        issue_id=issue.id,
        issue_type=issue.type,
        category=issue.category,
        severity=issue.severity,
        language=issue.language,
        issue_description=body.issue_description or catalog.describe_issue(issue),
        immediate_fix=fix,
        best_practice=body.best_practice or catalog.default_best_practice(issue),
        testing=body.testing or catalog.default_testing(issue),
        prevention=body.prevention or catalog.default_prevention(issue),
        tokens_used=invocation.total_tokens,
        cost=invocation.estimated_cost,
        timestamp=invocation.timestamp,
        model_used=invocation.model_id,
    )
