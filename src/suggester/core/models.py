# Author: Bradley R. Kinnard — where types go to be validated

"""
Pydantic models for issues, model calls, suggestions and the invocation envelope.
Loose dicts get converted once at the edge, everything past that is typed.
"""

from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Severity(IntEnum):
    """Ordered so sorting puts CRITICAL first with reverse=True."""
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        """anything we don't recognise is MEDIUM"""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and value in cls._value2member_map_:
            return cls(value)
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper(), cls.MEDIUM)
        return cls.MEDIUM


class Category(str, Enum):
    SECURITY = "security"
    PERFORMANCE = "performance"
    QUALITY = "quality"

    @classmethod
    def parse(cls, value: Any) -> "Category | None":
        if value is None or value == "":
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.QUALITY


# processing order for the category path, and each category's share of the remaining budget
CATEGORY_ORDER: tuple[Category, ...] = (Category.SECURITY, Category.PERFORMANCE, Category.QUALITY)
CATEGORY_SHARE: dict[Category, float] = {
    Category.SECURITY: 0.5,
    Category.PERFORMANCE: 0.3,
    Category.QUALITY: 0.2,
}


class IssueType(str, Enum):
    """Issue types we have canned text for. Anything else falls through to category defaults."""
    SQL_INJECTION = "SQL_INJECTION"
    XSS = "XSS"
    HARDCODED_CREDENTIALS = "HARDCODED_CREDENTIALS"
    PATH_TRAVERSAL = "PATH_TRAVERSAL"
    INSECURE_DESERIALIZATION = "INSECURE_DESERIALIZATION"
    AUTHENTICATION_FLAW = "AUTHENTICATION_FLAW"
    CRYPTOGRAPHIC_WEAKNESS = "CRYPTOGRAPHIC_WEAKNESS"
    INEFFICIENT_LOOP = "INEFFICIENT_LOOP"
    BLOCKING_IO = "BLOCKING_IO"
    MEMORY_LEAK = "MEMORY_LEAK"
    INEFFICIENT_DATABASE_QUERY = "INEFFICIENT_DATABASE_QUERY"
    UNNECESSARY_LOOP = "UNNECESSARY_LOOP"
    CODE_DUPLICATION = "CODE_DUPLICATION"
    HIGH_CYCLOMATIC_COMPLEXITY = "HIGH_CYCLOMATIC_COMPLEXITY"
    MISSING_ERROR_HANDLING = "MISSING_ERROR_HANDLING"
    CODE_SMELL = "CODE_SMELL"
    LACK_OF_DOCUMENTATION = "LACK_OF_DOCUMENTATION"

    @classmethod
    def parse(cls, value: str | None) -> "IssueType | None":
        if not value:
            return None
        key = value.strip().upper().replace(" ", "_").replace("-", "_")
        key = _TYPE_ALIASES.get(key, key)
        return cls.__members__.get(key)


# scanners disagree on spelling
_TYPE_ALIASES = {
    "CROSS_SITE_SCRIPTING": "XSS",
    "BLOCKING_IO_OPERATION": "BLOCKING_IO",
    "POTENTIAL_MEMORY_LEAK": "MEMORY_LEAK",
    "HARDCODED_CREDENTIAL": "HARDCODED_CREDENTIALS",
    "HARDCODED_SECRET": "HARDCODED_CREDENTIALS",
}


class Issue(BaseModel):
    """One static-analysis finding. Read-only after parsing."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = "unknown"
    type: str = "UNKNOWN"
    category: Category | None = None  # presence switches the scheduler to category mode
    severity: Severity = Severity.MEDIUM
    language: str = "unknown"
    description: str = ""
    code_snippet: str = Field(default="", validation_alias=AliasChoices("codeSnippet", "code_snippet", "code", "snippet"))
    line: int | None = Field(default=None, validation_alias=AliasChoices("line", "lineNumber", "line_number"))
    file: str = Field(default="", validation_alias=AliasChoices("file", "filePath", "file_path", "path"))

    @field_validator("id", "type", "language", "description", "code_snippet", "file", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        if v is None:
            return ""
        return str(v) if isinstance(v, (int, float)) else v

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v: Any) -> Category | None:
        return Category.parse(v)

    @field_validator("severity", mode="before")
    @classmethod
    def _severity(cls, v: Any) -> Severity:
        return Severity.parse(v)

    @field_validator("line", mode="before")
    @classmethod
    def _line(cls, v: Any) -> Any:
        # scanners send "", "12", 12 or nothing
        if v in (None, ""):
            return None
        try:
            return int(v)
        except (TypeError, ValueError):
            return None

    @property
    def known_type(self) -> IssueType | None:
        return IssueType.parse(self.type)

    @property
    def readable_type(self) -> str:
        return self.type.replace("_", " ")


class ErrorKind(str, Enum):
    THROTTLED = "throttled"
    TIMEOUT = "timeout"
    SERVICE = "service"
    CLIENT = "client"
    NETWORK = "network"
    CIRCUIT_OPEN = "circuit_open"
    RETRIES_EXHAUSTED = "retries_exhausted"
    UNEXPECTED = "unexpected"


class InvocationRequest(BaseModel):
    """Built fresh on every attempt, never reused across retries."""
    model_config = ConfigDict(frozen=True)

    model_id: str
    prompt: str
    max_tokens: int = Field(gt=0)
    temperature: float = 0.3
    top_p: float | None = None  # carried for logging only

    def converse_kwargs(self) -> dict:
        return {
            "modelId": self.model_id,
            "messages": [{"role": "user", "content": [{"text": self.prompt}]}],
            "inferenceConfig": {"maxTokens": self.max_tokens, "temperature": self.temperature},
        }


class InvocationResult(BaseModel):
    """Outcome of one logical model call. Success carries text and usage, failure carries the classification."""
    model_config = ConfigDict(frozen=True)

    success: bool
    model_id: str
    timestamp: str = Field(default_factory=utc_now)
    response_text: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    latency_ms: int = 0
    retries: int = 0
    error_kind: ErrorKind | None = None
    error_message: str | None = None

    @model_validator(mode="after")
    def _complete(self) -> "InvocationResult":
        if self.success:
            if self.response_text is None or self.error_kind is not None:
                raise ValueError("successful result needs response_text and no error")
        elif self.error_kind is None or not self.error_message:
            raise ValueError("failed result needs error_kind and error_message")
        return self

    @classmethod
    def failed(cls, model_id: str, kind: ErrorKind, message: str, retries: int = 0) -> "InvocationResult":
        return cls(success=False, model_id=model_id, error_kind=kind, error_message=message or kind.value, retries=retries)


# -- suggestion sections, camelCase on the wire, snake_case in python


class _Wire(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel, extra="ignore")


def _as_list(v: Any) -> Any:
    if v is None:
        return []
    if isinstance(v, str):
        return [v] if v.strip() else []
    return v


class ImmediateFix(_Wire):
    title: str = ""
    search_code: str = Field(
        default="",
        validation_alias=AliasChoices("searchCode", "search_code", "originalCode", "before"),
        serialization_alias="searchCode",
    )
    replace_code: str = Field(
        default="",
        validation_alias=AliasChoices("replaceCode", "replace_code", "fixedCode", "after"),
        serialization_alias="replaceCode",
    )
    explanation: str = ""


class BestPractice(_Wire):
    title: str = ""
    code: str = ""
    benefits: list[str] = Field(default_factory=list)

    @field_validator("benefits", mode="before")
    @classmethod
    def _benefits(cls, v: Any) -> Any:
        return _as_list(v)


class Testing(_Wire):
    test_case: str = Field(default="", validation_alias=AliasChoices("testCase", "test_case", "test"), serialization_alias="testCase")
    validation_steps: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("validationSteps", "validation_steps", "steps"),
        serialization_alias="validationSteps",
    )

    @field_validator("validation_steps", mode="before")
    @classmethod
    def _steps(cls, v: Any) -> Any:
        return _as_list(v)


class Tool(_Wire):
    name: str
    description: str = ""


class Prevention(_Wire):
    guidelines: list[str] = Field(default_factory=list)
    tools: list[Tool] = Field(default_factory=list)
    code_review_checklist: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("codeReviewChecklist", "code_review_checklist", "checklist"),
        serialization_alias="codeReviewChecklist",
    )

    @field_validator("guidelines", "code_review_checklist", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> Any:
        return _as_list(v)

    @field_validator("tools", mode="before")
    @classmethod
    def _tools(cls, v: Any) -> Any:
        # models love returning ["SonarQube", ...] instead of objects
        return [{"name": t} if isinstance(t, str) else t for t in _as_list(v)]


class SuggestionBody(_Wire):
    """The part the model writes. Sections are optional, the parser fills gaps."""
    issue_description: str = Field(
        default="",
        validation_alias=AliasChoices("issueDescription", "issue_description", "description"),
        serialization_alias="issueDescription",
    )
    immediate_fix: ImmediateFix | None = Field(
        default=None,
        validation_alias=AliasChoices("immediateFix", "immediate_fix", "fix"),
        serialization_alias="immediateFix",
    )
    best_practice: BestPractice | None = Field(
        default=None,
        validation_alias=AliasChoices("bestPractice", "best_practice"),
        serialization_alias="bestPractice",
    )
    testing: Testing | None = None
    prevention: Prevention | None = None


class Suggestion(_Wire):
    """What a developer sees for one issue. Always fully populated, even for fallbacks."""
    issue_id: str
    issue_type: str
    category: Category | None = None
    severity: Severity = Severity.MEDIUM
    language: str = "unknown"
    issue_description: str
    immediate_fix: ImmediateFix
    best_practice: BestPractice
    testing: Testing
    prevention: Prevention
    tokens_used: int = 0
    cost: float = 0.0
    timestamp: str = Field(default_factory=utc_now)
    model_used: str

    @field_serializer("severity")
    def _severity_name(self, v: Severity) -> str:
        return v.name

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# -- invocation envelope


class SuggestionRequest(_Wire):
    """Top-level event. Missing ids or an empty issue list fail validation."""
    model_config = ConfigDict(frozen=False)

    session_id: str = Field(min_length=1)
    analysis_id: str = Field(min_length=1)
    issues: list[Issue] = Field(min_length=1)
    model_id: str | None = None
    issue_severity: Severity | None = None
    strategy: str = "hybrid"
    processing_mode: str | None = None
    stage: str | None = None
    repository: str | None = None
    branch: str | None = None
    scan_number: int | str | None = None
    timestamp: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _severity_hint(cls, data: Any) -> Any:
        # issueSeverity is the default for issues that came without one
        if not isinstance(data, dict):
            return data
        hint = data.get("issueSeverity", data.get("issue_severity"))
        issues = data.get("issues")
        if hint and isinstance(issues, list):
            data = dict(data)
            data["issues"] = [
                {**i, "severity": hint} if isinstance(i, dict) and not i.get("severity") else i
                for i in issues
            ]
        return data

    @field_validator("issue_severity", mode="before")
    @classmethod
    def _hint(cls, v: Any) -> Severity | None:
        return None if v in (None, "") else Severity.parse(v)

    @field_validator("session_id", "analysis_id")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class Summary(_Wire):
    total_suggestions: int = 0
    by_severity: dict[str, int] = Field(default_factory=dict)
    by_category: dict[str, int] = Field(default_factory=dict)
    tokens_used: int = 0
    estimated_cost: float = 0.0


class ProcessingTime(_Wire):
    start_time: str
    end_time: str
    total_processing_time: int  # ms


class SuggestionResponse(_Wire):
    status: Literal["success", "error"]
    analysis_id: str | None = None
    session_id: str | None = None
    suggestions: list[Suggestion] = Field(default_factory=list)
    summary: Summary = Field(default_factory=Summary)
    metadata: dict[str, Any] = Field(default_factory=dict)
    processing_time: ProcessingTime | None = None
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
