"""
Validation and sandboxed execution of achievement progress queries
"""

from .config import ExecutionLimits
from .outcomes import (ErrorKind, ExecutionOutcome, QueryDefinition, RunState,
                       ValidationReason, ValidationVerdict)
from .query_tester import ProgressQueryTester
from .query_validator import validate_query

__all__ = [
    'ErrorKind',
    'ExecutionLimits',
    'ExecutionOutcome',
    'ProgressQueryTester',
    'QueryDefinition',
    'RunState',
    'ValidationReason',
    'ValidationVerdict',
    'validate_query',
]
