# Author: Bradley R. Kinnard — one issue in, one suggestion out, no exceptions

"""
Per-issue flow: build prompt, route to a model tier, call the gateway, parse.
Any failure along the way turns into a fallback suggestion. Never raises.
"""

import json
import logging
from dataclasses import dataclass

from src.suggester.adapters import metrics_client as metrics
from src.suggester.config import Settings, TEMPLATE_MODE
from src.suggester.core.issue_catalog import fallback_suggestion
from src.suggester.core.models import Category, ErrorKind, InvocationResult, Issue, Suggestion
from src.suggester.core.routing import select_model
from src.suggester.core.tokens import category_max_tokens, optimization_hints, per_issue_max_tokens, truncate_code
from src.suggester.services.gateway import GatewayError, ModelGateway
from src.suggester.services.response_parser import parse_suggestion

log = logging.getLogger(__name__)

# what we ask the model to fill in
RESPONSE_SKELETON = {
    "issueDescription": "What this issue is, how it can be exploited or cause problems, and its impact (2-3 sentences)",
    "immediateFix": {
        "title": "Brief description",
        "searchCode": "Exact problematic code",
        "replaceCode": "Fixed code",
        "explanation": "Why this fixes the issue",
    },
    "bestPractice": {"title": "Best practice name", "code": "Example implementation", "benefits": ["Benefit 1", "Benefit 2"]},
    "testing": {"testCase": "Unit test code", "validationSteps": ["Step 1", "Step 2"]},
    "prevention": {
        "guidelines": ["Guideline 1", "Guideline 2"],
        "tools": [{"name": "Tool", "description": "How it helps"}],
        "codeReviewChecklist": ["Check 1", "Check 2"],
    },
}

_CATEGORY_HEADERS = {
    Category.SECURITY: ("# SECURITY FIX REQUIRED for {type} ({severity})", "Vulnerability",
                        "Generate a SECURITY-FOCUSED fix as JSON, emphasising how the vulnerability is mitigated."),
    Category.PERFORMANCE: ("# PERFORMANCE OPTIMIZATION for {type} ({severity})", "Issue",
                           "Generate a PERFORMANCE-FOCUSED optimization as JSON, with the expected impact."),
    Category.QUALITY: ("# CODE QUALITY IMPROVEMENT for {type} ({severity})", "Issue",
                       "Generate a QUALITY-FOCUSED improvement as JSON, with a maintainability focus."),
}


@dataclass(frozen=True)
class IssueOutcome:
    suggestion: Suggestion
    invocation: InvocationResult
    fallback: bool = False

    @property
    def tokens(self) -> int:
        return self.invocation.total_tokens if self.invocation.success else 0

    @property
    def cost(self) -> float:
        return self.invocation.estimated_cost if self.invocation.success else 0.0


def build_prompt(issue: Issue, category_mode: bool = False) -> str:
    lang = issue.language or "text"
    severity = issue.severity.name

    if category_mode and issue.category is not None:
        heading, label, ask = _CATEGORY_HEADERS[issue.category]
        head = heading.format(type=issue.type, severity=severity)
    else:
        head, label, ask = f"# Fix Required for {issue.type} ({severity})", "Issue", "Generate a comprehensive fix as JSON."

    parts = [
        head,
        "",
        f"Language: {lang}",
        f"{label}: {issue.description}",
        "",
        f"Code:\n```{lang.lower()}\n{truncate_code(issue.code_snippet)}\n```",
        "",
        f"Focus on: {', '.join(optimization_hints(lang, issue.category))}",
        "",
        ask,
        "Start with a detailed issueDescription, then fill in every field below.",
        f"```json\n{json.dumps(RESPONSE_SKELETON, indent=2)}\n```",
    ]
    return "\n".join(parts)


async def process_issue(
    gateway: ModelGateway,
    issue: Issue,
    settings: Settings,
    model_override: str | None = None,
    category_mode: bool = False,
    caller: str = "scheduler",
) -> IssueOutcome:
    model_id = select_model(issue, settings, model_override)
    if category_mode:
        max_tokens = category_max_tokens(issue.category, issue.severity, settings)
    else:
        max_tokens = per_issue_max_tokens(settings)

    try:
        result = await gateway.invoke(
            model_id,
            build_prompt(issue, category_mode),
            max_tokens,
            temperature=settings.temperature,
            top_p=settings.top_p,
            caller=caller,
        )
        suggestion = parse_suggestion(result.response_text, issue, result)
    except GatewayError as e:
        log.warning(f"issue {issue.id} ({issue.type}) fell back: {e.kind.value}: {e}")
        metrics.suggestions_total.labels(source="fallback").inc()
        return IssueOutcome(fallback_suggestion(issue, model_id), e.as_result(), fallback=True)
    except Exception as e:
        log.exception(f"unexpected failure on issue {issue.id}: {e}")
        metrics.suggestions_total.labels(source="fallback").inc()
        failed = InvocationResult.failed(model_id, ErrorKind.UNEXPECTED, f"{type(e).__name__}: {e}")
        return IssueOutcome(fallback_suggestion(issue, model_id), failed, fallback=True)

    metrics.suggestions_total.labels(source="template" if result.model_id == TEMPLATE_MODE else "model").inc()
    return IssueOutcome(suggestion, result)
