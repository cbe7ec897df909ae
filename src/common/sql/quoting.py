"""T-SQL quoting helpers backed by sqlglot."""

from __future__ import annotations

import re

from sqlglot import exp

TSQL_DIALECT = "tsql"

_PLAIN_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_plain_identifier(name: str) -> bool:
    """Return True when name needs no quoting and is safe inside outcome tokens."""
    return isinstance(name, str) and bool(_PLAIN_IDENTIFIER.match(name))


def quote_identifier(name: str) -> str:
    """Render a bracket-quoted T-SQL identifier (e.g. ``[City]``)."""
    return exp.to_identifier(name, quoted=True).sql(dialect=TSQL_DIALECT)


def string_literal(value: str) -> str:
    """Render a T-SQL string literal with embedded quotes escaped."""
    return exp.Literal.string(value).sql(dialect=TSQL_DIALECT)


def string_list(values) -> str:
    """Render a comma-separated list of string literals for an ``IN (...)`` clause."""
    return ", ".join(string_literal(value) for value in values)
