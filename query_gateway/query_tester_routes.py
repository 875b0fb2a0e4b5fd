"""
Progress Query Tester API Routes
================================
Admin-facing endpoints for testing achievement progress queries against live
data for one subject. Callers are authenticated and authorized upstream.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from .config import ExecutionLimits
from .outcomes import ErrorKind, ExecutionOutcome, QueryDefinition
from .query_tester import ProgressQueryTester
from .query_validator import validate_query
from .schemas import (DefinitionTestRequest, DefinitionTestResponse, QueryTestRequest,
                      QueryTestResponse, QueryValidationRequest, QueryValidationResponse,
                      SampleQueriesResponse, SampleQuery)

query_tester_router = APIRouter(prefix="/api/admin/query-tester", tags=["query-tester"])

STATUS_BY_ERROR_KIND = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.EXECUTION_TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorKind.EXECUTION_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

SAMPLE_QUERIES: List[SampleQuery] = [
    SampleQuery(
        name="Basic Card Count",
        query="SELECT COUNT(*) AS total_cards FROM user_card WHERE user_id = @subject",
        description="Count total cards owned by user"
    ),
    SampleQuery(
        name="Rookie Cards",
        query="SELECT COUNT(*) AS rookie_cards "
              "FROM user_card uc "
              "INNER JOIN card c ON uc.card = c.card_id "
              "WHERE uc.user_id = @subject AND c.is_rookie = true",
        description="Count rookie cards owned by user"
    ),
    SampleQuery(
        name="Collection Value",
        query="SELECT COALESCE(SUM(COALESCE(uc.current_value, uc.estimated_value)), 0) AS total_value "
              "FROM user_card uc "
              "WHERE uc.user_id = @subject",
        description="Calculate total collection value"
    ),
    SampleQuery(
        name="Unique Players",
        query="SELECT COUNT(DISTINCT pt.player) AS unique_players "
              "FROM user_card uc "
              "INNER JOIN card c ON uc.card = c.card_id "
              "INNER JOIN card_player_team cpt ON c.card_id = cpt.card "
              "INNER JOIN player_team pt ON cpt.player_team = pt.player_team_id "
              "WHERE uc.user_id = @subject",
        description="Count unique players in collection"
    ),
    SampleQuery(
        name="Graded Cards",
        query="SELECT COUNT(*) AS graded_cards FROM user_card "
              "WHERE user_id = @subject AND grading_agency IS NOT NULL",
        description="Count graded cards in collection"
    ),
]


def get_query_tester(request: Request) -> ProgressQueryTester:
    tester = getattr(request.app.state, "query_tester", None)
    if tester is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Query tester is not ready"
        )
    return tester


def get_execution_limits() -> ExecutionLimits:
    """Limits are resolved per request so each run carries its own policy"""
    return ExecutionLimits.from_config()


def _outcome_response(outcome: ExecutionOutcome) -> JSONResponse:
    body = QueryTestResponse.from_outcome(outcome)
    status_code = status.HTTP_200_OK if outcome.success else STATUS_BY_ERROR_KIND[outcome.error.kind]
    return JSONResponse(status_code=status_code,
                        content=body.model_dump(mode="json", exclude_none=True))


@query_tester_router.post("/test-query", response_model=QueryTestResponse,
                          response_model_exclude_none=True)
async def run_test_query(
    payload: QueryTestRequest,
    tester: ProgressQueryTester = Depends(get_query_tester),
    limits: ExecutionLimits = Depends(get_execution_limits),
    x_operator_id: Optional[str] = Header(None)
):
    """Validate and, if allowed, run a progress query for one subject"""
    outcome = await tester.run_outcome(payload.query_text, payload.subject_id,
                                       limits=limits, operator_id=x_operator_id)
    return _outcome_response(outcome)


@query_tester_router.post("/test-definition", response_model=DefinitionTestResponse,
                          response_model_exclude_none=True)
async def run_test_definition(
    payload: DefinitionTestRequest,
    tester: ProgressQueryTester = Depends(get_query_tester),
    limits: ExecutionLimits = Depends(get_execution_limits),
    x_operator_id: Optional[str] = Header(None)
):
    """Run an achievement's progress and completion queries for one subject"""
    definition = QueryDefinition(progress_query=payload.progress_query,
                                 completion_query=payload.completion_query)
    outcomes = await tester.run_definition(definition, payload.subject_id,
                                           limits=limits, operator_id=x_operator_id)
    completion = outcomes["completion"]
    return DefinitionTestResponse(
        progress=QueryTestResponse.from_outcome(outcomes["progress"]),
        completion=QueryTestResponse.from_outcome(completion) if completion is not None else None,
    )


@query_tester_router.post("/validate", response_model=QueryValidationResponse,
                          response_model_exclude_none=True)
async def validate(
    payload: QueryValidationRequest,
    limits: ExecutionLimits = Depends(get_execution_limits)
):
    """Policy check only; never touches the database"""
    verdict = validate_query(payload.query_text, limits.blocked_keywords)
    return QueryValidationResponse.from_verdict(verdict)


@query_tester_router.get("/sample-queries", response_model=SampleQueriesResponse)
async def sample_queries():
    """Reference progress queries using the @subject placeholder"""
    return SampleQueriesResponse(samples=SAMPLE_QUERIES)
