# Author: Bradley R. Kinnard — canned wisdom for when the model won't talk

"""
Static remediation text keyed by issue type and category.
One table per concern. The parser and the fallback path both read from here.
"""

from dataclasses import dataclass

from src.suggester.core.models import (
    BestPractice,
    Category,
    ImmediateFix,
    Issue,
    IssueType,
    Prevention,
    Severity,
    Suggestion,
    Testing,
    Tool,
)

T = IssueType

ISSUE_DESCRIPTIONS: dict[IssueType, str] = {
    T.SQL_INJECTION: (
        "SQL injection happens when untrusted input is concatenated into a query, letting an attacker change "
        "the query itself. That can mean reading data they shouldn't, changing it, or taking over the database."
    ),
    T.XSS: (
        "Cross-site scripting happens when user input is rendered into HTML without encoding, so an attacker can "
        "inject script. The script runs as the victim and can steal sessions or act on their behalf."
    ),
    T.HARDCODED_CREDENTIALS: (
        "Credentials committed to source are readable by anyone with repo access and live forever in history. "
        "A leaked repo or build artifact turns into direct access to the system they protect."
    ),
    T.PATH_TRAVERSAL: (
        "Path traversal lets a caller escape the intended directory with sequences like '../'. "
        "It exposes config files, source or system files to whoever controls the path."
    ),
    T.INSECURE_DESERIALIZATION: (
        "Deserializing untrusted data without validation can instantiate attacker-chosen objects. "
        "With the right gadget chain that becomes arbitrary code execution inside the application."
    ),
    T.AUTHENTICATION_FLAW: (
        "Authentication flaws let callers skip login or impersonate other users. Weak session handling, "
        "predictable tokens and sloppy credential checks are the usual causes."
    ),
    T.CRYPTOGRAPHIC_WEAKNESS: (
        "Outdated algorithms or poor key handling make encrypted data recoverable. "
        "Passwords, personal data and secrets protected this way should be treated as exposed."
    ),
    T.INEFFICIENT_LOOP: (
        "This loop does more work than it needs to, usually nested iteration or repeated work per pass. "
        "It burns CPU and slows responses as the input grows."
    ),
    T.BLOCKING_IO: (
        "A blocking I/O call parks the thread while it waits on an external resource. "
        "Under load this starves other requests and hurts responsiveness."
    ),
    T.MEMORY_LEAK: (
        "Objects are being held longer than they are needed, so memory use only grows. "
        "Eventually the process slows down, gets killed, or costs more to run."
    ),
    T.INEFFICIENT_DATABASE_QUERY: (
        "This query does far more work than the result needs, which gets worse as tables grow. "
        "Expect slow pages, a busy database and poor scaling."
    ),
    T.UNNECESSARY_LOOP: (
        "The loop repeats work whose result does not change between iterations. "
        "A better data structure or a single pass removes the waste."
    ),
    T.CODE_DUPLICATION: (
        "The same logic lives in several places, so every fix has to be made several times. "
        "Sooner or later one copy gets missed and behaviour drifts."
    ),
    T.HIGH_CYCLOMATIC_COMPLEXITY: (
        "This code has many branches, which makes it hard to follow and hard to test every path. "
        "Complex code attracts bugs and resists change."
    ),
    T.MISSING_ERROR_HANDLING: (
        "Failures here are not handled, so the application can crash or misbehave when something goes wrong. "
        "Handling errors explicitly gives graceful degradation and useful diagnostics."
    ),
    T.CODE_SMELL: (
        "Not a bug, but a sign the structure needs work. "
        "Left alone it makes the code harder to read and change."
    ),
    T.LACK_OF_DOCUMENTATION: (
        "Without documentation the intent of this code has to be reverse engineered. "
        "That slows down onboarding and invites wrong assumptions."
    ),
}

CATEGORY_DESCRIPTIONS: dict[Category, str] = {
    Category.SECURITY: (
        "This vulnerability can be exploited to compromise the application. "
        "Fix it before it ships to protect user data."
    ),
    Category.PERFORMANCE: (
        "This hurts efficiency and user experience. Optimising it improves response times "
        "and reduces resource use."
    ),
    Category.QUALITY: (
        "This affects maintainability and reliability. Cleaning it up reduces technical debt "
        "and makes future changes cheaper."
    ),
}

FIX_GUIDANCE: dict[IssueType, str] = {
    T.SQL_INJECTION: "parameterized queries instead of string concatenation",
    T.XSS: "input validation and output encoding",
    T.HARDCODED_CREDENTIALS: "environment variables or a secrets manager",
    T.INSECURE_DESERIALIZATION: "safe deserialization libraries and strict type allow-lists",
    T.INEFFICIENT_LOOP: "a better algorithm or data structure",
    T.MEMORY_LEAK: "proper resource disposal and bounded caches",
}
DEFAULT_FIX_GUIDANCE = "secure coding practices for this issue type"

TYPE_EXPLANATIONS: dict[IssueType, str] = {
    T.SQL_INJECTION: "Use prepared statements so input can never change the query structure.",
    T.XSS: "Validate input and encode output so user data is never interpreted as markup.",
    T.HARDCODED_CREDENTIALS: "Load secrets from configuration that is not committed to the repository.",
}
DEFAULT_TYPE_EXPLANATION = "Follow established best practices for this type of issue."

BEST_PRACTICE_EXAMPLES: dict[IssueType, str] = {
    T.SQL_INJECTION: (
        "// bind parameters, never concatenate\n"
        'String sql = "SELECT * FROM users WHERE id = ?";\n'
        "PreparedStatement stmt = connection.prepareStatement(sql);\n"
        "stmt.setInt(1, userId);"
    ),
    T.XSS: (
        "// encode on output, restrict script sources\n"
        "String safe = StringEscapeUtils.escapeHtml4(userInput);\n"
        "response.setHeader(\"Content-Security-Policy\", \"default-src 'self'\");"
    ),
}
DEFAULT_BEST_PRACTICE_EXAMPLE = "// Follow the language's secure coding guidelines\n// Validate inputs at trust boundaries"


@dataclass(frozen=True)
class CategoryDefaults:
    """Text used when the model output is missing a section or is unusable."""
    fix: str
    explanation: str  # may contain {severity}
    practice_title: str
    practice_code: str
    benefits: list[str]
    test_case: str
    validation_steps: list[str]
    guidelines: list[str]
    tools: list[tuple[str, str]]
    checklist: list[str]


CATEGORY_DEFAULTS: dict[Category, CategoryDefaults] = {
    Category.SECURITY: CategoryDefaults(
        fix="Apply appropriate security controls and input validation",
        explanation="This {severity} security issue needs attention before it can be exploited.",
        practice_title="Follow OWASP Security Guidelines",
        practice_code="// Validate all inputs\n// Use parameterized queries\n// Enforce authentication and authorization",
        benefits=["Stronger security posture", "Compliance with standards", "Lower vulnerability risk"],
        test_case="// Test with malicious inputs\n// Verify security controls\n// Check access restrictions",
        validation_steps=["Security code review", "Penetration testing", "Vulnerability scanning"],
        guidelines=["Follow secure coding practices", "Keep security training current", "Run security tooling in CI"],
        tools=[("OWASP ZAP", "Security vulnerability scanner"), ("SonarQube", "Code security analysis")],
        checklist=["Input validation", "Authentication checks", "Authorization verification"],
    ),
    Category.PERFORMANCE: CategoryDefaults(
        fix="Optimize the code for better performance and resource utilization",
        explanation="This performance issue can slow the application down and should be optimized.",
        practice_title="Apply Performance Best Practices",
        practice_code="// Use efficient algorithms\n// Cache where appropriate\n// Optimize database access",
        benefits=["Faster response times", "Better resource utilization", "Improved scalability"],
        test_case="// Benchmark before and after\n// Test under load\n// Monitor resource usage",
        validation_steps=["Performance profiling", "Load testing", "Resource monitoring"],
        guidelines=["Profile before optimizing", "Focus on bottlenecks", "Track performance metrics"],
        tools=[("JProfiler", "Performance profiling"), ("Apache JMeter", "Load testing")],
        checklist=["Algorithm efficiency", "Resource usage", "Caching opportunities"],
    ),
    Category.QUALITY: CategoryDefaults(
        fix="Refactor the code following established coding standards",
        explanation="This code quality issue should be addressed to improve maintainability and reliability.",
        practice_title="Follow Clean Code Principles",
        practice_code="// Single responsibility per function\n// Self-documenting names\n// Consistent style",
        benefits=["Better maintainability", "Improved code quality", "Less technical debt"],
        test_case="// Unit test coverage\n// Integration tests\n// Edge case validation",
        validation_steps=["Code review", "Unit testing", "Integration testing"],
        guidelines=["Follow coding standards", "Write clean code", "Refactor regularly"],
        tools=[("SonarQube", "Code quality analysis"), ("CheckStyle", "Code style checker")],
        checklist=["Code clarity", "Documentation", "Test coverage"],
    ),
}


def defaults_for(issue: Issue) -> CategoryDefaults:
    return CATEGORY_DEFAULTS[issue.category or Category.QUALITY]


def describe_issue(issue: Issue) -> str:
    """type-specific description if we have one, category text otherwise"""
    known = issue.known_type
    if known is not None and known in ISSUE_DESCRIPTIONS:
        return ISSUE_DESCRIPTIONS[known]
    return CATEGORY_DESCRIPTIONS[issue.category or Category.QUALITY]


def contextual_title(issue: Issue) -> str:
    if issue.category is Category.SECURITY:
        return "Critical Security Vulnerability" if issue.severity is Severity.CRITICAL else "Security Enhancement Required"
    if issue.category is Category.PERFORMANCE:
        return f"Performance Optimization for {issue.readable_type or 'Code'}"
    return "Code Quality Improvement Required"


def contextual_explanation(issue: Issue) -> str:
    return defaults_for(issue).explanation.format(severity=issue.severity.name)


def default_best_practice(issue: Issue) -> BestPractice:
    d = defaults_for(issue)
    return BestPractice(title=d.practice_title, code=d.practice_code, benefits=list(d.benefits))


def default_testing(issue: Issue) -> Testing:
    d = defaults_for(issue)
    return Testing(test_case=d.test_case, validation_steps=list(d.validation_steps))


def default_prevention(issue: Issue) -> Prevention:
    d = defaults_for(issue)
    return Prevention(
        guidelines=list(d.guidelines),
        tools=[Tool(name=n, description=desc) for n, desc in d.tools],
        code_review_checklist=list(d.checklist),
    )


def fallback_suggestion(issue: Issue, model_id: str, tokens_used: int = 0, cost: float = 0.0) -> Suggestion:
    """
    Deterministic suggestion for an issue the model never answered.
    Every section is populated so downstream renderers never see holes.
    """
    known = issue.known_type
    guidance = FIX_GUIDANCE.get(known, DEFAULT_FIX_GUIDANCE) if known else DEFAULT_FIX_GUIDANCE
    explanation = TYPE_EXPLANATIONS.get(known, DEFAULT_TYPE_EXPLANATION) if known else DEFAULT_TYPE_EXPLANATION
    example = BEST_PRACTICE_EXAMPLES.get(known, DEFAULT_BEST_PRACTICE_EXAMPLE) if known else DEFAULT_BEST_PRACTICE_EXAMPLE

    search = issue.code_snippet or f"// Review the code at line {issue.line if issue.line is not None else 'unknown'}"
    fix = ImmediateFix(
        title=f"Manual Review Required for {issue.type}",
        search_code=search,
        replace_code=f"// Apply {guidance}\n// See OWASP and language guidelines for {issue.type}",
        explanation=f"This issue requires manual review. {explanation}",
    )
    d = defaults_for(issue)
    practice = BestPractice(title=f"Best Practice for {issue.type}", code=example, benefits=list(d.benefits))

    return Suggestion(
        issue_id=issue.id,
        issue_type=issue.type,
        category=issue.category,
        severity=issue.severity,
        language=issue.language,
        issue_description=describe_issue(issue),
        immediate_fix=fix,
        best_practice=practice,
        testing=default_testing(issue),
        prevention=default_prevention(issue),
        tokens_used=tokens_used,
        cost=cost,
        model_used=f"{model_id}-fallback",
    )
