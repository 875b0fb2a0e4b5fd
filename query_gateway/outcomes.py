"""
Request-scoped value objects exchanged between the validator, the execution
gateway and the callers of the query tester.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union


SubjectId = Union[int, str]


class ValidationReason(str, Enum):
    """Closed set of reasons a progress query is rejected"""
    NOT_A_READ_QUERY = "not-a-read-query"
    MULTIPLE_STATEMENTS = "multiple-statements"
    FORBIDDEN_KEYWORD = "forbidden-keyword"
    INJECTION_SIGNATURE = "injection-signature"


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    EXECUTION_TIMEOUT = "execution-timeout"
    EXECUTION_ERROR = "execution-error"


class RunState(str, Enum):
    """Terminal states of a single query test run"""
    REJECTED = "rejected"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed-out"
    ERRORED = "errored"


@dataclass(frozen=True)
class QueryDefinition:
    """Progress/completion queries attached to an achievement"""
    progress_query: str
    completion_query: Optional[str] = None


@dataclass(frozen=True)
class ExecutionRequest:
    query_text: str
    subject_id: SubjectId
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class ValidationVerdict:
    """
    Validator decision.

    ``keyword`` names the blocklist entry for forbidden-keyword rejections.
    ``leading_keyword`` is set on not-a-read-query rejections whose first
    token is itself a blocklisted verb (e.g. ``UPDATE ...``).
    """
    valid: bool
    reason: Optional[ValidationReason] = None
    keyword: Optional[str] = None
    leading_keyword: Optional[str] = None

    def __post_init__(self):
        if self.valid and self.reason is not None:
            raise ValueError("A valid verdict cannot carry a rejection reason")
        if not self.valid and self.reason is None:
            raise ValueError("A rejected verdict requires a reason")

    @classmethod
    def accepted(cls) -> "ValidationVerdict":
        return cls(valid=True)

    @classmethod
    def rejected(cls, reason: ValidationReason, keyword: Optional[str] = None,
                 leading_keyword: Optional[str] = None) -> "ValidationVerdict":
        return cls(valid=False, reason=reason, keyword=keyword,
                   leading_keyword=leading_keyword)

    @property
    def reason_code(self) -> Optional[str]:
        """Machine-readable reason, e.g. ``forbidden-keyword:DROP``"""
        if self.reason is None:
            return None
        if self.reason == ValidationReason.FORBIDDEN_KEYWORD and self.keyword:
            return f"{self.reason.value}:{self.keyword}"
        return self.reason.value

    @property
    def message(self) -> Optional[str]:
        if self.valid:
            return None
        if self.reason == ValidationReason.NOT_A_READ_QUERY:
            if self.leading_keyword:
                return (f"{self.reason_code}: statement begins with "
                        f"{ValidationReason.FORBIDDEN_KEYWORD.value}:{self.leading_keyword}; "
                        "only SELECT queries are allowed")
            return f"{self.reason_code}: only SELECT queries are allowed"
        if self.reason == ValidationReason.MULTIPLE_STATEMENTS:
            return f"{self.reason_code}: statement separator found outside a string literal"
        if self.reason == ValidationReason.FORBIDDEN_KEYWORD:
            return f"{self.reason_code}: dangerous keyword detected"
        return f"{self.reason_code}: potential SQL injection pattern detected"


@dataclass(frozen=True)
class OutcomeError:
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class ExecutionOutcome:
    """Structured result of one query test run"""
    success: bool
    execution_time_ms: int
    columns: Optional[List[str]] = None
    rows: Optional[List[List[str]]] = None
    row_count: Optional[int] = None
    truncated: Optional[bool] = None
    error: Optional[OutcomeError] = None

    def __post_init__(self):
        if self.success:
            if self.error is not None:
                raise ValueError("A successful outcome cannot carry an error")
            if self.columns is None or self.rows is None:
                raise ValueError("A successful outcome requires columns and rows")
        else:
            if self.error is None:
                raise ValueError("A failed outcome requires an error")
            if self.rows is not None:
                raise ValueError("A failed outcome cannot carry rows")

    @classmethod
    def succeeded(cls, columns: List[str], rows: List[List[str]], truncated: bool,
                  execution_time_ms: int) -> "ExecutionOutcome":
        return cls(
            success=True,
            execution_time_ms=execution_time_ms,
            columns=columns,
            rows=rows,
            row_count=len(rows),
            truncated=truncated,
        )

    @classmethod
    def failed(cls, kind: ErrorKind, message: str, execution_time_ms: int) -> "ExecutionOutcome":
        return cls(success=False, execution_time_ms=execution_time_ms,
                   error=OutcomeError(kind=kind, message=message))

    @classmethod
    def from_verdict(cls, verdict: ValidationVerdict) -> "ExecutionOutcome":
        """Rejected verdicts never reach the database, so no time is spent"""
        if verdict.valid:
            raise ValueError("Only rejected verdicts convert to a failed outcome")
        return cls.failed(ErrorKind.VALIDATION, verdict.message, 0)

    @property
    def state(self) -> RunState:
        if self.success:
            return RunState.SUCCEEDED
        if self.error.kind == ErrorKind.VALIDATION:
            return RunState.REJECTED
        if self.error.kind == ErrorKind.EXECUTION_TIMEOUT:
            return RunState.TIMED_OUT
        return RunState.ERRORED

    def to_dict(self) -> Dict[str, Any]:
        """Response shape with absent fields omitted"""
        data: Dict[str, Any] = {
            "success": self.success,
            "execution_time_ms": self.execution_time_ms,
        }
        if self.success:
            data.update({
                "columns": list(self.columns),
                "rows": [list(row) for row in self.rows],
                "row_count": self.row_count,
                "truncated": self.truncated,
            })
        else:
            data["error"] = {"kind": self.error.kind.value, "message": self.error.message}
        return data
