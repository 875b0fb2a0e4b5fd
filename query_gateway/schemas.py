"""
Pydantic schemas for request/response validation
"""
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator

from .config import Config
from .outcomes import ErrorKind, ExecutionOutcome, ValidationVerdict


def _subject_not_blank(value: Union[int, str]) -> Union[int, str]:
    if isinstance(value, str) and not value.strip():
        raise ValueError('Subject identifier cannot be empty')
    return value


def _query_not_blank(value: Optional[str]) -> Optional[str]:
    if value is not None and not value.strip():
        raise ValueError('Query cannot be empty')
    return value


# Request schemas
class QueryTestRequest(BaseModel):
    """Progress query text plus the subject it is tested against"""
    query_text: str = Field(..., min_length=1, max_length=Config.QUERY_MAX_LENGTH)
    subject_id: Union[StrictInt, StrictStr]

    @field_validator('query_text')
    @classmethod
    def query_not_blank(cls, value: str) -> str:
        return _query_not_blank(value)

    @field_validator('subject_id')
    @classmethod
    def subject_not_blank(cls, value: Union[int, str]) -> Union[int, str]:
        return _subject_not_blank(value)


class QueryValidationRequest(BaseModel):
    query_text: str = Field(..., max_length=Config.QUERY_MAX_LENGTH)


class DefinitionTestRequest(BaseModel):
    """An achievement's stored query pair"""
    progress_query: str = Field(..., min_length=1, max_length=Config.QUERY_MAX_LENGTH)
    completion_query: Optional[str] = Field(None, max_length=Config.QUERY_MAX_LENGTH)
    subject_id: Union[StrictInt, StrictStr]

    @field_validator('progress_query', 'completion_query')
    @classmethod
    def queries_not_blank(cls, value: Optional[str]) -> Optional[str]:
        return _query_not_blank(value)

    @field_validator('subject_id')
    @classmethod
    def subject_not_blank(cls, value: Union[int, str]) -> Union[int, str]:
        return _subject_not_blank(value)


# Response schemas
class OutcomeErrorResponse(BaseModel):
    kind: ErrorKind
    message: str

    model_config = ConfigDict(use_enum_values=True)


class QueryTestResponse(BaseModel):
    success: bool
    columns: Optional[List[str]] = None
    rows: Optional[List[List[str]]] = None
    row_count: Optional[int] = None
    truncated: Optional[bool] = None
    execution_time_ms: int
    error: Optional[OutcomeErrorResponse] = None

    @classmethod
    def from_outcome(cls, outcome: ExecutionOutcome) -> "QueryTestResponse":
        return cls(**outcome.to_dict())


class DefinitionTestResponse(BaseModel):
    progress: QueryTestResponse
    completion: Optional[QueryTestResponse] = None


class QueryValidationResponse(BaseModel):
    valid: bool
    reason: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_verdict(cls, verdict: ValidationVerdict) -> "QueryValidationResponse":
        return cls(valid=verdict.valid, reason=verdict.reason_code, message=verdict.message)


class SampleQuery(BaseModel):
    name: str
    query: str
    description: str


class SampleQueriesResponse(BaseModel):
    samples: List[SampleQuery]
