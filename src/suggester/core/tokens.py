# Author: Bradley R. Kinnard — every token is a tiny invoice

"""
Token estimation, cost math and usage parsing.
Pure functions, no I/O, safe to call from anywhere.
"""

import math
from typing import Any

from src.suggester.config import Settings
from src.suggester.core.models import Category, Severity

CHARS_PER_TOKEN = 4
MIN_ESTIMATED_INPUT = 100
MIN_ESTIMATED_OUTPUT = 50
SNIPPET_LIMIT = 500

# (high/critical, everything else)
_CATEGORY_MAX_TOKENS: dict[Category, tuple[int, int]] = {
    Category.SECURITY: (4000, 3000),
    Category.PERFORMANCE: (3500, 2500),
    Category.QUALITY: (2500, 1500),
}

_LANGUAGE_HINTS: dict[str, list[str]] = {
    "java": ["public", "private", "protected", "class", "interface", "method"],
    "python": ["def", "class", "import", "from"],
    "javascript": ["function", "class", "const", "let", "var"],
    "typescript": ["function", "class", "interface", "type", "const", "let"],
}

_CATEGORY_HINTS: dict[Category | None, list[str]] = {
    Category.SECURITY: ["input validation", "sanitization", "authentication", "authorization"],
    Category.PERFORMANCE: ["optimization", "caching", "algorithm complexity", "memory usage"],
    Category.QUALITY: ["refactoring", "code clarity", "maintainability", "design patterns"],
    None: ["best practices", "code review", "testing"],
}


def estimate_tokens(text: str | None) -> int:
    """~4 chars per token. Rough but consistent, which is what budgeting needs."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_cost(input_tokens: int, output_tokens: int, settings: Settings) -> float:
    return (input_tokens / 1_000_000) * settings.input_token_cost + (output_tokens / 1_000_000) * settings.output_token_cost


def _as_int(v: Any) -> int | None:
    # bedrock sends ints, proxies sometimes send strings
    if isinstance(v, bool) or v is None:
        return None
    if isinstance(v, (int, float)):
        return int(v)
    if isinstance(v, str):
        try:
            return int(float(v.strip()))
        except ValueError:
            return None
    return None


def _pick(usage: dict, *keys: str) -> int | None:
    for k in keys:
        if k in usage:
            n = _as_int(usage[k])
            if n is not None:
                return n
    return None


def resolve_usage(usage: dict | None, prompt: str, response_text: str) -> tuple[int, int, int]:
    """
    (input, output, total) from whatever usage block came back. Zero counts as missing.
    One side plus a total: the other side is the difference. Only a total: split it 60/40.
    Nothing usable: estimate from the text, so the result is never zero.
    """
    usage = usage if isinstance(usage, dict) else {}
    inp = _pick(usage, "inputTokens", "input_tokens") or 0
    out = _pick(usage, "outputTokens", "output_tokens") or 0
    total = _pick(usage, "totalTokens", "total_tokens") or 0

    est_in = max(MIN_ESTIMATED_INPUT, len(prompt or "") // CHARS_PER_TOKEN)
    est_out = max(MIN_ESTIMATED_OUTPUT, len(response_text or "") // CHARS_PER_TOKEN)

    if inp > 0 and out > 0:
        return inp, out, max(total, inp + out)
    if inp > 0:
        out = total - inp if total > inp else est_out
        return inp, out, inp + out
    if out > 0:
        inp = total - out if total > out else est_in
        return inp, out, inp + out
    if total > 0:
        inp = int(total * 0.6)
        return inp, total - inp, total
    return est_in, est_out, est_in + est_out


def truncate_code(code: str | None, limit: int = SNIPPET_LIMIT) -> str:
    if not code:
        return ""
    return code if len(code) <= limit else code[:limit] + "\n... (truncated)"


def per_issue_max_tokens(settings: Settings) -> int:
    """ceiling for a single call, a tenth of the run budget at most"""
    return max(1, min(settings.max_tokens, settings.token_budget // 10))


def category_max_tokens(category: Category | None, severity: Severity, settings: Settings) -> int:
    if category is None:
        return per_issue_max_tokens(settings)
    high, other = _CATEGORY_MAX_TOKENS[category]
    cap = high if severity >= Severity.HIGH else other
    return max(1, min(cap, per_issue_max_tokens(settings)))


def optimization_hints(language: str | None, category: Category | None) -> list[str]:
    """keywords nudging the model toward the right vocabulary for this language/category"""
    hints = list(_LANGUAGE_HINTS.get((language or "").lower(), []))
    hints.extend(_CATEGORY_HINTS.get(category, _CATEGORY_HINTS[None]))
    return hints
