from typing import Annotated

from pydantic import AfterValidator

from common.sql.quoting import is_plain_identifier


def check_identifier(value: str) -> str:
    """Reject names that are not plain SQL identifiers."""
    if not is_plain_identifier(value):
        raise ValueError(f"'{value}' is not a plain identifier ([A-Za-z_][A-Za-z0-9_]*)")
    return value


# Plain identifiers keep every outcome token built from them inside the token grammar.
Identifier = Annotated[str, AfterValidator(check_identifier)]
