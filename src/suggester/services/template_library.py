# Author: Bradley R. Kinnard — zero tokens, zero latency, zero surprises

"""
Canned JSON suggestions for TEMPLATE_MODE. Keyword match on the prompt header, never raises.
Output has the same shape a model would return so it goes through the normal parser.
"""

import json

TEMPLATE_INPUT_TOKENS = 50
TEMPLATE_OUTPUT_TOKENS = 100
TEMPLATE_TOTAL_TOKENS = 150
TEMPLATE_COST = 0.0001


def _template(title, search, replace, explanation, practice_title, practice_code, benefits,
              test_case, steps, guidelines, tools, checklist) -> dict:
    return {
        "immediateFix": {"title": title, "searchCode": search, "replaceCode": replace, "explanation": explanation},
        "bestPractice": {"title": practice_title, "code": practice_code, "benefits": benefits},
        "testing": {"testCase": test_case, "validationSteps": steps},
        "prevention": {
            "guidelines": guidelines,
            "tools": [{"name": n, "description": d} for n, d in tools],
            "codeReviewChecklist": checklist,
        },
    }


SQL_INJECTION = _template(
    "Use Parameterized Queries",
    'String query = "SELECT * FROM users WHERE id = " + userId;',
    'PreparedStatement stmt = conn.prepareStatement("SELECT * FROM users WHERE id = ?");\nstmt.setString(1, userId);',
    "Bound parameters keep user input out of the SQL grammar, so it can't change the query.",
    "Always bind query parameters",
    "// every value that reaches SQL goes through a placeholder\nstmt.setString(1, input);",
    ["Prevents SQL injection", "Lets the database cache query plans", "Keeps queries readable"],
    "@Test void rejectsInjection() { assertNoRowsAffected(lookup(\"'; DROP TABLE users; --\")); }",
    ["Feed classic injection strings into the input", "Confirm queries use placeholders", "Run a SQL injection scanner"],
    ["Never build SQL with string concatenation", "Use an ORM or query builder", "Validate input types early"],
    [("SQLMap", "Automated SQL injection testing"), ("SonarQube", "Flags string-built queries")],
    ["No string concatenation in SQL", "All inputs bound as parameters", "Least-privilege database user"],
)

XSS = _template(
    "Encode Output Before Rendering",
    "element.innerHTML = userInput;",
    "element.textContent = userInput;",
    "Treating user data as text instead of markup stops injected scripts from running.",
    "Context-aware output encoding",
    "String safe = StringEscapeUtils.escapeHtml4(userInput);\nresponse.setHeader(\"Content-Security-Policy\", \"default-src 'self'\");",
    ["Prevents script injection", "Protects user sessions", "Defense in depth with CSP"],
    "@Test void escapesScriptTags() { assertFalse(render(\"<script>alert(1)</script>\").contains(\"<script>\")); }",
    ["Submit script payloads through every input", "Check rendered HTML is escaped", "Verify CSP headers"],
    ["Encode on output, validate on input", "Prefer templating engines with auto-escaping", "Set a Content Security Policy"],
    [("OWASP ZAP", "Finds reflected and stored XSS"), ("ESLint security plugins", "Flags unsafe DOM sinks")],
    ["No raw HTML from user data", "Auto-escaping enabled", "CSP configured"],
)

HARDCODED_CREDENTIALS = _template(
    "Move Credentials Out of Source",
    'String password = "hunter2";',
    'String password = System.getenv("DB_PASSWORD");',
    "Secrets read from the environment or a secrets manager never land in version control.",
    "Externalize secrets",
    "// load from a secrets manager at startup\nString apiKey = secrets.get(\"service/api-key\");",
    ["No secrets in git history", "Rotation without redeploys", "Per-environment credentials"],
    "@Test void configHasNoLiteralSecrets() { assertNull(Config.class.getDeclaredField(\"PASSWORD\")); }",
    ["Scan the repo for secrets", "Rotate any credential that was committed", "Confirm the app reads secrets at runtime"],
    ["Never commit credentials", "Use a secrets manager", "Add secret scanning to CI"],
    [("git-secrets", "Blocks commits containing secrets"), ("TruffleHog", "Finds secrets in history")],
    ["No literal passwords or keys", "Secrets loaded at runtime", "Exposed secrets rotated"],
)

MEMORY_LEAK = _template(
    "Release Resources Deterministically",
    "InputStream in = new FileInputStream(path);\nprocess(in);",
    "try (InputStream in = new FileInputStream(path)) {\n    process(in);\n}",
    "Scoped resource handling guarantees the handle is released even when processing throws.",
    "Scope resources and bound caches",
    "// try-with-resources for handles, size limits for caches\nCache<K, V> cache = Caffeine.newBuilder().maximumSize(10_000).build();",
    ["Stable memory footprint", "No file handle exhaustion", "Predictable GC behaviour"],
    "@Test void closesStream() { verify(stream).close(); }",
    ["Run a heap profile under load", "Check handle counts stay flat", "Soak test for an hour"],
    ["Close what you open", "Bound every cache", "Remove listeners you register"],
    [("Eclipse MAT", "Heap dump analysis"), ("JProfiler", "Allocation tracking")],
    ["Resources closed in finally or with-blocks", "Caches have size limits", "Listeners unregistered"],
)

N_PLUS_ONE = _template(
    "Batch the Database Access",
    "for (Order o : orders) { o.setCustomer(repo.findCustomer(o.getCustomerId())); }",
    "Map<Long, Customer> customers = repo.findCustomers(customerIds(orders));\norders.forEach(o -> o.setCustomer(customers.get(o.getCustomerId())));",
    "One batched query replaces a query per row, so cost no longer grows with the result size.",
    "Fetch related data in bulk",
    "// join or IN-query instead of per-row lookups\nSELECT * FROM customers WHERE id IN (:ids)",
    ["Fewer round trips", "Lower database load", "Latency independent of row count"],
    "@Test void loadsCustomersInOneQuery() { assertEquals(1, queryCounter.count()); }",
    ["Count queries per request", "Compare latency with large result sets", "Check the query plan uses indexes"],
    ["No queries inside loops", "Use joins or batched lookups", "Watch query counts in tests"],
    [("Hibernate statistics", "Counts queries per session"), ("pg_stat_statements", "Finds hot queries")],
    ["No per-row queries", "Indexes cover lookup columns", "Query count asserted in tests"],
)

LOOP_PERFORMANCE = _template(
    "Optimize Loop Performance",
    "for (String a : list) { for (String b : list) { if (a.equals(b)) count++; } }",
    "Set<String> seen = new HashSet<>(list);\ncount = seen.size();",
    "Replacing the nested scan with a hash lookup turns quadratic work into linear work.",
    "Pick the right data structure",
    "// hash-based lookups instead of nested scans\nMap<String, Item> byId = items.stream().collect(toMap(Item::id, i -> i));",
    ["Linear instead of quadratic time", "Lower CPU usage", "Scales with input size"],
    "@Test void handlesLargeInputQuickly() { assertTimeout(ofMillis(200), () -> process(bigList)); }",
    ["Benchmark before and after", "Profile with realistic data sizes", "Check results are unchanged"],
    ["Avoid nested loops over the same data", "Hoist invariant work out of loops", "Profile before optimizing"],
    [("JMH", "Microbenchmarks"), ("JProfiler", "CPU hotspot analysis")],
    ["No accidental quadratic loops", "Invariants hoisted", "Benchmarks cover large inputs"],
)

COMPLEXITY = _template(
    "Reduce Method Complexity",
    "public void complexMethod() { /* many nested branches */ }",
    "public void complexMethod() {\n    validateInput();\n    processData();\n    generateOutput();\n}",
    "Splitting the method into single-purpose helpers removes branches and makes each piece testable.",
    "Single responsibility per method",
    "// each method does one thing\npublic class UserService { public void createUser() { /* only user creation */ } }",
    ["Easier to read", "Easier to test", "Safer to change"],
    "@Test void validateInputRejectsEmpty() { assertThrows(IllegalArgumentException.class, () -> validateInput(\"\")); }",
    ["Measure complexity before and after", "Test each extracted method", "Review for behaviour changes"],
    ["Keep methods short", "Use early returns over deep nesting", "Extract helpers for distinct steps"],
    [("SonarQube", "Cyclomatic complexity metrics"), ("CheckStyle", "Method length and nesting rules")],
    ["Complexity under team threshold", "No deep nesting", "Helpers named for what they do"],
)

DEFAULT_SECURITY = _template(
    "Apply Security Best Practices",
    "// vulnerable code section",
    "// validated and sanitized implementation",
    "Validating input and enforcing access controls closes the most common attack paths.",
    "Defense in depth",
    "// validate input, encode output, check authorization on every request",
    ["Reduced attack surface", "Compliance with standards", "Fewer incidents"],
    "// test with malicious inputs and unauthorized users",
    ["Security code review", "Penetration testing", "Vulnerability scanning"],
    ["Follow OWASP guidelines", "Review security-sensitive changes", "Keep dependencies patched"],
    [("OWASP ZAP", "Security vulnerability scanner"), ("SonarQube", "Code security analysis")],
    ["Input validation", "Authentication checks", "Authorization verification"],
)

DEFAULT_PERFORMANCE = _template(
    "Apply Performance Best Practices",
    "// slow code section",
    "// optimized implementation",
    "Removing redundant work and choosing efficient structures improves response time and resource use.",
    "Measure then optimize",
    "// profile, fix the hotspot, re-measure",
    ["Faster responses", "Lower resource usage", "Better scalability"],
    "// benchmark before and after the change",
    ["Performance profiling", "Load testing", "Resource monitoring"],
    ["Profile before optimizing", "Focus on bottlenecks", "Track performance metrics"],
    [("JProfiler", "Performance profiling"), ("Apache JMeter", "Load testing")],
    ["Algorithm efficiency", "Resource usage", "Caching opportunities"],
)

DEFAULT_QUALITY = _template(
    "Apply Clean Code Practices",
    "// code needing refactoring",
    "// refactored implementation",
    "Clear structure and naming make the code easier to maintain and review.",
    "Clean code principles",
    "// small functions, descriptive names, consistent style",
    ["Better maintainability", "Improved readability", "Less technical debt"],
    "// unit tests around the refactored behaviour",
    ["Code review", "Unit testing", "Integration testing"],
    ["Follow coding standards", "Refactor regularly", "Document intent, not mechanics"],
    [("SonarQube", "Code quality analysis"), ("CheckStyle", "Code style checker")],
    ["Code clarity", "Documentation", "Test coverage"],
)

GENERIC = _template(
    "Review and Apply Best Practices",
    "// flagged code section",
    "// reviewed implementation",
    "This issue needs a manual review against the relevant best practices.",
    "Follow established guidelines",
    "// consult the language and framework guidelines for this issue",
    ["Improved code quality", "Reduced risk", "Better maintainability"],
    "// add tests covering the flagged behaviour",
    ["Review the flagged code", "Apply the fix", "Run the test suite"],
    ["Follow team coding standards", "Use static analysis in CI", "Review changes with a peer"],
    [("SonarQube", "Static analysis"), ("Code review", "Peer verification")],
    ["Issue understood", "Fix applied", "Tests added"],
)


def _header(text: str) -> str:
    """everything above the first code fence, lowercased, underscores as spaces"""
    head = text.split("```", 1)[0]
    return head.lower().replace("_", " ")


def match_template(text: str | None) -> dict:
    sig = _header(str(text or ""))

    if "sql injection" in sig or "sqli" in sig:
        return SQL_INJECTION
    if "xss" in sig or "cross-site scripting" in sig or "cross site scripting" in sig:
        return XSS
    if "hardcoded" in sig and "credential" in sig:
        return HARDCODED_CREDENTIALS
    if "memory leak" in sig or "resource leak" in sig:
        return MEMORY_LEAK
    if "n+1" in sig or "n plus 1" in sig:
        return N_PLUS_ONE
    if "loop" in sig or "iteration" in sig:
        return LOOP_PERFORMANCE
    if "cyclomatic" in sig or "complexity" in sig:
        return COMPLEXITY

    # category prompts name their category in the heading
    if "security" in sig:
        return DEFAULT_SECURITY
    if "performance" in sig:
        return DEFAULT_PERFORMANCE
    if "quality" in sig:
        return DEFAULT_QUALITY
    return GENERIC


def render(text: str | None) -> str:
    """JSON suggestion text for a prompt or issue signature"""
    return json.dumps(match_template(text))
