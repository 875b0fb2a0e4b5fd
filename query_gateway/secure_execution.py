"""
Secure Query Execution
======================
Runs a validated, parameter-bound progress query on a pooled connection:
- one connection per run, always handed back to the pool
- read-only transaction that is always rolled back
- wall-clock timeout that cancels the in-flight call
- fixed row ceiling independent of any LIMIT in the query
- driver errors reduced to short, generic messages
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

import asyncpg
from asyncpg import exceptions as pg_errors

from .config import ExecutionLimits
from .outcomes import ErrorKind, OutcomeError
from .parameter_binder import BoundStatement, ParameterBindingError
from .query_validator import describe_query_shape

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Query execution failed."
UNAVAILABLE_MESSAGE = "Database temporarily unavailable. Please retry."

# First matching class wins, so subclasses come before their bases
SANITIZED_MESSAGES: List[Tuple[type, str]] = [
    (pg_errors.UndefinedColumnError,
     "Invalid column name. Check that all column names exist in the referenced tables."),
    (pg_errors.UndefinedTableError,
     "Invalid table name. Check that all table names are correct and exist."),
    (pg_errors.UndefinedFunctionError,
     "Unknown function or operator. Check function names and argument types."),
    (pg_errors.PostgresSyntaxError,
     "SQL syntax error. Please check your query syntax."),
    (pg_errors.DataError,
     "Data type conversion error. Check data types in your query."),
    (pg_errors.InsufficientPrivilegeError,
     "Permission denied for this query."),
    (pg_errors.ReadOnlySQLTransactionError,
     "Query attempted to modify data in a read-only session."),
    (pg_errors.TooManyConnectionsError, UNAVAILABLE_MESSAGE),
    (pg_errors.PostgresConnectionError, UNAVAILABLE_MESSAGE),
    (pg_errors.InterfaceError, UNAVAILABLE_MESSAGE),
    (OSError, UNAVAILABLE_MESSAGE),
]


def sanitize_error(error: BaseException) -> str:
    """Caller-facing text for a driver error; never the driver's own message"""
    if isinstance(error, ParameterBindingError):
        return str(error)
    for error_class, message in SANITIZED_MESSAGES:
        if isinstance(error, error_class):
            return message
    return GENERIC_ERROR_MESSAGE


def _elapsed_ms(start_time: float) -> int:
    return int(round((time.perf_counter() - start_time) * 1000))


@dataclass(frozen=True)
class RawExecutionResult:
    """Unshaped gateway result: driver records on success, an error otherwise"""
    execution_time_ms: int
    records: Sequence[Any] = ()
    truncated: bool = False
    error: Optional[OutcomeError] = None

    @property
    def success(self) -> bool:
        return self.error is None


class ExecutionGateway:
    """Bounded execution of bound statements against a shared asyncpg pool"""

    def __init__(self, pool: Any):
        self._pool = pool

    @property
    def pool(self) -> Any:
        return self._pool

    async def execute(self, statement: BoundStatement, limits: ExecutionLimits) -> RawExecutionResult:
        # The budget covers waiting for a pooled connection as well
        start_time = time.perf_counter()
        try:
            records, truncated = await asyncio.wait_for(
                self._run_bounded(statement, limits),
                timeout=limits.timeout_seconds)
        except (asyncio.TimeoutError, asyncpg.QueryCanceledError):
            execution_time_ms = _elapsed_ms(start_time)
            logger.warning(
                f"Query timeout after {execution_time_ms}ms "
                f"(budget {limits.timeout_ms}ms): {describe_query_shape(statement.sql)}")
            return RawExecutionResult(
                execution_time_ms=execution_time_ms,
                error=OutcomeError(
                    kind=ErrorKind.EXECUTION_TIMEOUT,
                    message=f"Query execution timed out after {limits.timeout_seconds:g} seconds"))
        except ParameterBindingError as e:
            execution_time_ms = _elapsed_ms(start_time)
            logger.info(f"Subject binding failed: {e}")
            return RawExecutionResult(
                execution_time_ms=execution_time_ms,
                error=OutcomeError(kind=ErrorKind.EXECUTION_ERROR, message=sanitize_error(e)))
        except Exception as e:
            execution_time_ms = _elapsed_ms(start_time)
            logger.error(
                f"Query execution failed after {execution_time_ms}ms: "
                f"{describe_query_shape(statement.sql)}",
                exc_info=e)
            return RawExecutionResult(
                execution_time_ms=execution_time_ms,
                error=OutcomeError(kind=ErrorKind.EXECUTION_ERROR, message=sanitize_error(e)))

        execution_time_ms = _elapsed_ms(start_time)
        logger.debug(f"Query returned {len(records)} rows in {execution_time_ms}ms (truncated={truncated})")
        return RawExecutionResult(execution_time_ms=execution_time_ms, records=records,
                                  truncated=truncated)

    async def _run_bounded(self, statement: BoundStatement,
                           limits: ExecutionLimits) -> Tuple[List[Any], bool]:
        async with self._pool.acquire() as connection:
            transaction = connection.transaction(readonly=True)
            await transaction.start()
            try:
                await connection.execute(f"SET LOCAL statement_timeout = {limits.timeout_ms}")
                prepared = await connection.prepare(statement.sql)
                parameter_types = [parameter.name for parameter in prepared.get_parameters()]
                arguments = statement.arguments(parameter_types)
                cursor = await prepared.cursor(*arguments)
                # One extra row tells us whether the ceiling cut anything off
                records = await cursor.fetch(limits.max_rows + 1)
            except asyncio.CancelledError:
                # Protocol state is unknown after an interrupted call; drop the
                # connection so the pool replaces it
                connection.terminate()
                raise
            except Exception:
                await transaction.rollback()
                raise
            await transaction.rollback()

        truncated = len(records) > limits.max_rows
        return list(records[:limits.max_rows]), truncated
