"""
Progress Query Validation
=========================
Heuristic policy gate applied to ad-hoc progress queries before they are
allowed anywhere near the database:
- Normalization (trimmed, upper-cased copy used for inspection only)
- Read-only statement enforcement
- Single statement enforcement (quote-aware separator scan)
- Blocklisted keyword detection
- Known injection signature detection

The gate is a first layer only. Execution additionally happens inside a
read-only, always rolled back transaction.
"""

import re
import logging
from functools import lru_cache
from typing import Dict, FrozenSet, List, Optional, Pattern

from sqlparse import lexer, tokens

from .config import DEFAULT_BLOCKED_KEYWORDS
from .outcomes import ValidationReason, ValidationVerdict

logger = logging.getLogger(__name__)

STATEMENT_SEPARATOR = ';'
QUOTE = "'"
MAX_SHAPE_LENGTH = 200

_READ_QUERY_PATTERN = re.compile(r'SELECT\b')
_LEADING_WORD_PATTERN = re.compile(r'[A-Z_][A-Z0-9_]*')

# Known attack shapes, matched against the raw text
INJECTION_SIGNATURES: Dict[str, List[Pattern]] = {
    # Terminator followed by a comment to silence the rest of a statement
    'comment_after_terminator': [
        re.compile(r';\s*--'),
        re.compile(r';\s*/\*'),
    ],
    'tautology': [
        re.compile(r"\bOR\s+'([^']*)'\s*=\s*'\1(?:'|\s*$)", re.IGNORECASE),
        re.compile(r'\bOR\s+(\d+)\s*=\s*\1\b', re.IGNORECASE),
    ],
    'union_select': [
        re.compile(r'\bUNION\s+(?:ALL\s+)?SELECT\b', re.IGNORECASE),
    ],
    'time_delay': [
        re.compile(r'\bWAITFOR\s+DELAY\b', re.IGNORECASE),
        re.compile(r'\bBENCHMARK\s*\(', re.IGNORECASE),
    ],
}


class QueryValidationError(Exception):
    """Raised when a progress query fails validation"""

    def __init__(self, verdict: ValidationVerdict):
        super().__init__(verdict.message)
        self.verdict = verdict


def normalize_query(raw_text: str) -> str:
    """Canonical copy for pattern inspection; the original text is what runs"""
    return (raw_text or '').strip().upper()


def has_unquoted_separator(normalized: str) -> bool:
    """
    Best-effort scan for a statement separator outside single-quoted literals.
    Escaped quotes ('') toggle twice and therefore leave the state unchanged.
    """
    in_literal = False
    for char in normalized:
        if char == QUOTE:
            in_literal = not in_literal
        elif char == STATEMENT_SEPARATOR and not in_literal:
            return True
    return False


def describe_query_shape(raw_text: str, max_length: int = MAX_SHAPE_LENGTH) -> str:
    """
    Literal-free, single-line rendition of a query for diagnostic logs.
    String and numeric literals become '?' and comments are dropped.
    """
    parts = []
    # Flat lexer stream; statement grouping has a nesting limit
    for ttype, value in lexer.tokenize(raw_text or ''):
        if ttype in tokens.Comment or ttype in tokens.Whitespace:
            parts.append(' ')
        elif ttype in tokens.Literal:
            parts.append('?')
        else:
            parts.append(value)
    shape = re.sub(r'\s+', ' ', ''.join(parts)).strip()
    if len(shape) > max_length:
        shape = shape[:max_length] + '...'
    return shape


class ProgressQueryValidator:
    """Ordered, short-circuiting policy rules for progress queries"""

    def __init__(self, blocked_keywords: Optional[FrozenSet[str]] = None):
        keywords = blocked_keywords if blocked_keywords is not None else DEFAULT_BLOCKED_KEYWORDS
        self.blocked_keywords = frozenset(k.strip().upper() for k in keywords if k.strip())
        self.blocked_prefixes = tuple(sorted(k for k in self.blocked_keywords if k.endswith('_')))
        self._keyword_pattern = self._compile_keyword_pattern()

    def _compile_keyword_pattern(self) -> Optional[Pattern]:
        if not self.blocked_keywords:
            return None
        alternatives = []
        # Longest first so EXECUTE is reported rather than EXEC
        for keyword in sorted(self.blocked_keywords, key=lambda k: (-len(k), k)):
            if keyword.endswith('_'):
                alternatives.append(re.escape(keyword) + r'\w*')
            else:
                alternatives.append(re.escape(keyword) + r'\b')
        return re.compile(r'\b(?:' + '|'.join(alternatives) + ')')

    def _blocklist_entry(self, token: str) -> Optional[str]:
        if token in self.blocked_keywords:
            return token
        for prefix in self.blocked_prefixes:
            if token.startswith(prefix):
                return prefix
        return None

    def validate(self, raw_text: str) -> ValidationVerdict:
        normalized = normalize_query(raw_text)

        # Rule 1: read queries only
        if not _READ_QUERY_PATTERN.match(normalized):
            leading = _LEADING_WORD_PATTERN.match(normalized)
            leading_keyword = self._blocklist_entry(leading.group(0)) if leading else None
            return ValidationVerdict.rejected(ValidationReason.NOT_A_READ_QUERY,
                                              leading_keyword=leading_keyword)

        # Rule 2: a single statement
        if has_unquoted_separator(normalized):
            return ValidationVerdict.rejected(ValidationReason.MULTIPLE_STATEMENTS)

        # Rule 3: blocklisted keywords as standalone tokens
        keyword = self.find_blocked_keyword(normalized)
        if keyword:
            return ValidationVerdict.rejected(ValidationReason.FORBIDDEN_KEYWORD, keyword=keyword)

        # Rule 4: injection signatures on the raw text
        signature = self.find_injection_signature(raw_text)
        if signature:
            logger.debug(f"Injection signature matched: {signature}")
            return ValidationVerdict.rejected(ValidationReason.INJECTION_SIGNATURE)

        return ValidationVerdict.accepted()

    def find_blocked_keyword(self, normalized: str) -> Optional[str]:
        """Earliest blocklisted token in the normalized text"""
        if self._keyword_pattern is None:
            return None
        match = self._keyword_pattern.search(normalized)
        if not match:
            return None
        return self._blocklist_entry(match.group(0))

    @staticmethod
    def find_injection_signature(raw_text: str) -> Optional[str]:
        for category, patterns in INJECTION_SIGNATURES.items():
            for pattern in patterns:
                if pattern.search(raw_text):
                    return category
        return None

    def ensure_valid(self, raw_text: str) -> ValidationVerdict:
        verdict = self.validate(raw_text)
        if not verdict.valid:
            raise QueryValidationError(verdict)
        return verdict


@lru_cache(maxsize=32)
def get_validator(blocked_keywords: Optional[FrozenSet[str]] = None) -> ProgressQueryValidator:
    """Validators are immutable, so one per distinct blocklist is enough"""
    return ProgressQueryValidator(blocked_keywords)


def validate_query(raw_text: str,
                   blocked_keywords: Optional[FrozenSet[str]] = None) -> ValidationVerdict:
    """Validate a progress query against the given (or default) blocklist"""
    return get_validator(blocked_keywords).validate(raw_text)
