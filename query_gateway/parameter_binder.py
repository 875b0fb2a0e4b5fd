"""
Subject parameter binding.

The subject identifier reaches the database exclusively through the
driver's positional parameter slot. Query text is never formatted with the
subject value; only the placeholder token is rewritten to ``$1``.
"""
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Sequence, Tuple

from .outcomes import SubjectId

# @subject is the documented spelling, @user_id is kept for older definitions
PLACEHOLDER_PATTERN = re.compile(r'@(?:subject|user_id)\b', re.IGNORECASE)
DRIVER_SLOT = '$1'

# Single-quoted literal, '' escapes included; an unterminated literal runs to the end
_LITERAL_SPLIT = re.compile(r"('(?:[^']|'')*(?:'|$))")

INTEGER_TYPES = frozenset({'int2', 'int4', 'int8', 'oid'})
FLOAT_TYPES = frozenset({'float4', 'float8'})
NUMERIC_TYPES = frozenset({'numeric'})

_INTEGER_TEXT = re.compile(r'^[+-]?\d+$')


class ParameterBindingError(ValueError):
    """The subject identifier cannot be bound to the statement"""
    pass


@dataclass(frozen=True)
class BoundStatement:
    """Statement text with its placeholder rewritten, plus the subject value"""
    sql: str
    subject_id: SubjectId
    placeholder_count: int

    def arguments(self, parameter_types: Sequence[str]) -> Tuple[Any, ...]:
        """
        Driver arguments for the parameter types the server declared
        after preparing ``sql``.
        """
        if not parameter_types:
            return ()
        if len(parameter_types) > 1:
            raise ParameterBindingError(
                "Only the subject identifier may be bound; the query declares "
                f"{len(parameter_types)} parameters")
        return (coerce_subject(self.subject_id, parameter_types[0]),)


def coerce_subject(subject_id: SubjectId, type_name: str) -> Any:
    """Convert the subject to the Python type the driver expects for ``type_name``"""
    if type_name in INTEGER_TYPES:
        if isinstance(subject_id, int):
            return subject_id
        text = subject_id.strip()
        if not _INTEGER_TEXT.match(text):
            raise ParameterBindingError("Subject identifier is not a valid integer for this query")
        return int(text)

    if type_name in FLOAT_TYPES or type_name in NUMERIC_TYPES:
        try:
            number = Decimal(str(subject_id).strip())
        except InvalidOperation:
            raise ParameterBindingError("Subject identifier is not a valid number for this query")
        if not number.is_finite():
            raise ParameterBindingError("Subject identifier is not a valid number for this query")
        return float(number) if type_name in FLOAT_TYPES else number

    return str(subject_id)


def rewrite_placeholders(text: str) -> Tuple[str, int]:
    """Replace subject placeholders outside string literals with the driver slot"""
    segments = _LITERAL_SPLIT.split(text)
    count = 0
    for index in range(0, len(segments), 2):
        segments[index], replaced = PLACEHOLDER_PATTERN.subn(DRIVER_SLOT, segments[index])
        count += replaced
    return ''.join(segments), count


def bind(validated_text: str, subject_id: SubjectId) -> BoundStatement:
    """Prepare a validated progress query for execution for one subject"""
    if isinstance(subject_id, bool) or not isinstance(subject_id, (int, str)):
        raise ParameterBindingError("Subject identifier must be a string or an integer")
    if isinstance(subject_id, str) and not subject_id.strip():
        raise ParameterBindingError("Subject identifier cannot be empty")

    sql, count = rewrite_placeholders(validated_text)
    return BoundStatement(sql=sql, subject_id=subject_id, placeholder_count=count)
