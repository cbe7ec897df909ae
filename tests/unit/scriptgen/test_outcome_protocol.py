"""Tests for outcome tokens and the short-circuiting fold."""

import pytest

from scriptgen.outcome import (
    ABORT_STATEMENT,
    ErrorCategory,
    Outcome,
    SuccessToken,
    error_token,
    fold_outcomes,
    is_valid_token,
    parse_outcome_token,
    render_abort,
    render_success,
    token_literal,
)


def test_success_token_values_are_stable():
    """Executors compare against these literals."""
    assert SuccessToken.SUCCESS.value == "success"
    assert SuccessToken.ALLOW.value == "allow"
    assert SuccessToken.VALID.value == "valid"


def test_error_token_joins_parts():
    assert error_token("NOT_EXISTS_TABLE", "City") == "ERR_NOT_EXISTS_TABLE_City"
    assert error_token("INVALID_COLUMN", "City.Name") == "ERR_INVALID_COLUMN_City.Name"
    assert error_token("INVALID_EXTRA_COLUMNS") == "ERR_INVALID_EXTRA_COLUMNS"


@pytest.mark.parametrize("parts", [("BAD NAME",), ("X", "a-b"), ("X", "City."), ("",)])
def test_error_token_rejects_tokens_outside_grammar(parts):
    with pytest.raises(ValueError, match="Invalid outcome token"):
        error_token(*parts)


@pytest.mark.parametrize(
    "token,expected",
    [
        ("success", True),
        ("allow", True),
        ("valid", True),
        ("ERR_NO_PERMS_DELETE_TABLE_Country", True),
        ("ERR_NOT_EXISTS_OR_INVALID_FK_Country.CapitalCityID_City.ID", True),
        ("VALID", False),
        ("ERR_", False),
        ("ERR_X..Y", False),
        ("ok", False),
    ],
)
def test_token_grammar(token, expected):
    assert is_valid_token(token) is expected


def test_fold_stops_at_first_failure():
    """Steps after the first failure are never run."""
    calls = []

    def step(name, token=None):
        def _run():
            calls.append(name)
            return Outcome.failure(token, fragment=name) if token else None

        return _run

    outcome = fold_outcomes(
        [step("a"), step("b", "ERR_FIRST"), step("c", "ERR_SECOND"), step("d")],
        SuccessToken.VALID,
    )

    assert outcome.token == "ERR_FIRST"
    assert outcome.fragment == "b"
    assert calls == ["a", "b"]


def test_fold_without_failures_yields_single_success_token():
    outcome = fold_outcomes([lambda: None, lambda: Outcome.success("allow")], SuccessToken.ALLOW)
    assert outcome == Outcome(token="allow")
    assert outcome.is_success


def test_failure_cannot_carry_success_token():
    with pytest.raises(ValueError):
        Outcome.failure("valid", category=ErrorCategory.SHAPE)


@pytest.mark.parametrize(
    "raw,token,success",
    [
        ("valid\n", "valid", True),
        ("allow", "allow", True),
        ("ERR_INVALID_EXTRA_COLUMNS", "ERR_INVALID_EXTRA_COLUMNS", False),
        ("Valid", "Valid", False),
        ("", "<empty>", False),
        (None, "<empty>", False),
    ],
)
def test_parse_outcome_token_treats_unknown_values_as_failures(raw, token, success):
    outcome = parse_outcome_token(raw)
    assert outcome.token == token
    assert outcome.is_success is success


def test_render_abort_selects_token_then_stops_execution():
    block = render_abort("@x != 1", token_literal("ERR_X"))
    lines = [line.strip() for line in block.splitlines()]
    assert lines == ["IF @x != 1", "BEGIN", "SELECT 'ERR_X'", ABORT_STATEMENT, "END"]


def test_render_success():
    assert render_success(SuccessToken.VALID) == "SELECT 'valid'"
    with pytest.raises(ValueError):
        render_success("ok")
