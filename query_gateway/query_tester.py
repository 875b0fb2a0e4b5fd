"""
Progress Query Tester
=====================
Sequences validation, subject binding, bounded execution and result shaping
for a single operator-triggered test run. Every run ends in exactly one
terminal state (rejected, succeeded, timed out, errored) and nothing raises
past this boundary. Runs are never retried automatically.
"""

import logging
from typing import Dict, Optional, Union

from .config import ExecutionLimits
from .outcomes import (ErrorKind, ExecutionOutcome, ExecutionRequest, QueryDefinition,
                       RunState, SubjectId, ValidationVerdict)
from .parameter_binder import ParameterBindingError, bind
from .query_validator import describe_query_shape, validate_query
from .result_shaper import shape
from .secure_execution import ExecutionGateway

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("query_gateway.audit")


class ProgressQueryTester:
    """Validate -> bind -> execute -> shape, one structured result per call"""

    def __init__(self, gateway: ExecutionGateway, default_limits: Optional[ExecutionLimits] = None):
        self.gateway = gateway
        self.default_limits = default_limits or ExecutionLimits()

    async def run(self,
                  raw_text: str,
                  subject_id: SubjectId,
                  limits: Optional[ExecutionLimits] = None,
                  operator_id: Optional[str] = None) -> Union[ExecutionOutcome, ValidationVerdict]:
        """
        Run a progress query for one subject.

        Returns the validator's verdict when the query is rejected (no
        connection is acquired in that case), otherwise the execution outcome.
        """
        request = ExecutionRequest(query_text=raw_text, subject_id=subject_id)
        limits = limits or self.default_limits

        verdict = validate_query(request.query_text, limits.blocked_keywords)
        if not verdict.valid:
            logger.info(f"Progress query rejected: {verdict.reason_code}")
            self._audit(request, operator_id, RunState.REJECTED, 0)
            return verdict

        try:
            statement = bind(request.query_text, request.subject_id)
        except ParameterBindingError as e:
            outcome = ExecutionOutcome.failed(ErrorKind.EXECUTION_ERROR, str(e), 0)
            self._audit(request, operator_id, outcome.state, 0)
            return outcome

        if statement.placeholder_count == 0:
            logger.debug("Progress query does not reference the subject placeholder")

        result = await self.gateway.execute(statement, limits)
        if result.success:
            shaped = shape(result.records)
            outcome = ExecutionOutcome.succeeded(
                columns=shaped.columns,
                rows=shaped.rows,
                truncated=result.truncated,
                execution_time_ms=result.execution_time_ms)
        else:
            outcome = ExecutionOutcome.failed(result.error.kind, result.error.message,
                                              result.execution_time_ms)

        self._audit(request, operator_id, outcome.state, outcome.execution_time_ms,
                    outcome.row_count)
        return outcome

    async def run_outcome(self,
                          raw_text: str,
                          subject_id: SubjectId,
                          limits: Optional[ExecutionLimits] = None,
                          operator_id: Optional[str] = None) -> ExecutionOutcome:
        """Same as run(), with rejections folded into a failed outcome"""
        result = await self.run(raw_text, subject_id, limits=limits, operator_id=operator_id)
        if isinstance(result, ValidationVerdict):
            return ExecutionOutcome.from_verdict(result)
        return result

    async def run_definition(self,
                             definition: QueryDefinition,
                             subject_id: SubjectId,
                             limits: Optional[ExecutionLimits] = None,
                             operator_id: Optional[str] = None) -> Dict[str, Optional[ExecutionOutcome]]:
        """Test an achievement's progress query and, if any, its completion query"""
        progress = await self.run_outcome(definition.progress_query, subject_id,
                                          limits=limits, operator_id=operator_id)
        completion = None
        if definition.completion_query:
            completion = await self.run_outcome(definition.completion_query, subject_id,
                                                limits=limits, operator_id=operator_id)
        return {"progress": progress, "completion": completion}

    @staticmethod
    def _audit(request: ExecutionRequest,
               operator_id: Optional[str],
               state: RunState,
               execution_time_ms: int,
               row_count: Optional[int] = None):
        audit_logger.info(
            f"[QUERY TEST] operator={operator_id or 'unknown'} "
            f"subject={request.subject_id!r} state={state.value} "
            f"time={execution_time_ms}ms rows={row_count if row_count is not None else '-'} "
            f"requested_at={request.requested_at.isoformat()} "
            f"query={describe_query_shape(request.query_text)}")
