"""Abort/outcome protocol shared by every fragment.

A generated procedure is either RUNNING or ABORTED. A fragment that detects a
violation selects its error token and switches the session to ABORTED with
``SET NOEXEC ON``; the engine then compiles but no longer executes any later
statement, so the first violation is the only token the caller receives. When
the end of the procedure is reached while RUNNING, the pipeline's success
token is selected.

On the Python side the same contract is modelled by :class:`Outcome` and
:func:`fold_outcomes`, which short-circuits a sequence of steps at the first
failure instead of relying on a shared flag.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from common.sql.quoting import string_literal

ERROR_PREFIX = "ERR_"
ABORT_STATEMENT = "SET NOEXEC ON"

_ERROR_TOKEN = re.compile(r"^ERR_[A-Za-z0-9_]+(\.[A-Za-z0-9_]+)*$")


class SuccessToken(str, Enum):
    """Happy-path tokens, one per pipeline family."""

    SUCCESS = "success"
    ALLOW = "allow"
    VALID = "valid"


class ErrorCategory(str, Enum):
    """Violation classes reported by fragments."""

    AUTHORIZATION = "authorization"
    EXISTENCE = "existence"
    MULTIPLICITY = "multiplicity"
    SHAPE = "shape"
    EXTRANEOUS = "extraneous"


_SUCCESS_VALUES = frozenset(token.value for token in SuccessToken)


def is_success_token(token: str) -> bool:
    return token in _SUCCESS_VALUES


def is_error_token(token: str) -> bool:
    return isinstance(token, str) and bool(_ERROR_TOKEN.match(token))


def is_valid_token(token: str) -> bool:
    """Return True when token matches the outcome grammar."""
    return is_success_token(token) or is_error_token(token)


def error_token(*parts: str) -> str:
    """Build ``ERR_<PART>_<PART>...`` and check it against the grammar.

    Parts may carry a dotted sub-entity, e.g. ``error_token("INVALID_COLUMN", "City.Name")``.

    Raises:
        ValueError: if the resulting token would not match the grammar.
    """
    token = ERROR_PREFIX + "_".join(parts)
    if not is_error_token(token):
        raise ValueError(f"Invalid outcome token: {token!r}")
    return token


@dataclass(frozen=True)
class Outcome:
    """Result of running (or simulating) one procedure: exactly one token."""

    token: str
    fragment: Optional[str] = None
    category: Optional[ErrorCategory] = None

    @property
    def is_success(self) -> bool:
        return is_success_token(self.token)

    @classmethod
    def success(cls, token: SuccessToken | str) -> "Outcome":
        return cls(token=SuccessToken(token).value)

    @classmethod
    def failure(
        cls,
        token: str,
        fragment: Optional[str] = None,
        category: Optional[ErrorCategory] = None,
    ) -> "Outcome":
        if is_success_token(token):
            raise ValueError(f"{token!r} is a success token")
        return cls(token=token, fragment=fragment, category=category)


Step = Callable[[], Optional[Outcome]]


def fold_outcomes(steps: Iterable[Step], success: SuccessToken | str) -> Outcome:
    """Run steps in order until one yields a failure.

    Steps after the first failure are never called. A step returning ``None``
    or a success outcome lets the fold continue.
    """
    for step in steps:
        outcome = step()
        if outcome is not None and not outcome.is_success:
            return outcome
    return Outcome.success(success)


def parse_outcome_token(raw: Optional[str]) -> Outcome:
    """Interpret the token an executor returned.

    Anything that is not a known success value is a failure. Error tokens are
    kept verbatim as opaque diagnostic codes.
    """
    token = (raw or "").strip()
    if is_success_token(token):
        return Outcome(token=token)
    return Outcome(token=token or "<empty>")


def token_literal(token: str) -> str:
    """Render a validated token as a T-SQL string literal."""
    if not is_valid_token(token):
        raise ValueError(f"Invalid outcome token: {token!r}")
    return string_literal(token)


def render_abort(condition: str, token_expression: str) -> str:
    """Render a guarded block that reports a token and aborts the procedure."""
    return (
        f"IF {condition}\n"
        "    BEGIN\n"
        f"        SELECT {token_expression}\n"
        f"        {ABORT_STATEMENT}\n"
        "    END"
    )


def render_case(condition: str, when_token: str, else_token: str) -> str:
    """Render a CASE expression choosing between two error tokens."""
    return (
        f"CASE WHEN {condition}\n"
        f"                THEN {token_literal(when_token)}\n"
        f"                ELSE {token_literal(else_token)}\n"
        "            END"
    )


def render_success(token: SuccessToken | str) -> str:
    return f"SELECT {token_literal(SuccessToken(token).value)}"
