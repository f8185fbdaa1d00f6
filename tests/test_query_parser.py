from datetime import date, datetime, timezone

import pytest
from targetprocess_gateway.core.errors import ValidationError
from targetprocess_gateway.utils.query_parser import (
    QueryCondition,
    build_query_params,
    format_include,
    format_order_by,
    format_order_by_params,
    format_where_field,
    format_where_value,
    parse_where_clause,
    split_top_level_and,
    validate_where_clause,
)


def test_simple_condition_is_preserved():
    assert (
        validate_where_clause("Priority.Name eq 'Critical'")
        == "Priority.Name eq 'Critical'"
    )


@pytest.mark.parametrize(
    "clause",
    [
        "Name eq 'Ann'",
        "Name contains 'O''Brien'",
        "Effort gt '5'",
        "EntityState.Name ne 'Done'",
        "Name not contains 'draft'",
    ],
)
def test_normalization_is_idempotent(clause):
    once = validate_where_clause(clause)
    assert validate_where_clause(once) == once


def test_null_checks():
    assert validate_where_clause("Field is null") == "Field is null"
    assert validate_where_clause("Field is not null") == "Field is not null"
    assert validate_where_clause("AssignedUser IS NOT NULL") == "AssignedUser is not null"


def test_values_are_always_quoted():
    assert validate_where_clause("Id eq 42") == "Id eq '42'"
    assert validate_where_clause('Name eq "Ann"') == "Name eq 'Ann'"


def test_operator_is_case_insensitive_and_lowercased():
    assert validate_where_clause("Name CONTAINS 'x'") == "Name contains 'x'"
    assert validate_where_clause("Name Not  Contains 'x'") == "Name not contains 'x'"


def test_and_inside_quotes_is_not_a_split_point():
    clause = "Name eq 'Tom and Jerry' and Priority.Name eq 'High'"
    assert split_top_level_and(clause) == [
        "Name eq 'Tom and Jerry'",
        "Priority.Name eq 'High'",
    ]
    assert validate_where_clause(clause) == clause


def test_and_split_is_case_insensitive():
    assert validate_where_clause("A eq '1' AND B eq '2'") == "A eq '1' and B eq '2'"


def test_or_is_not_decomposed():
    # the whole right-hand side, including "or", is one value
    assert (
        validate_where_clause("Name eq 'a' or Name eq 'b'")
        == "Name eq 'a'' or Name eq ''b'"
    )


def test_custom_field_is_rewritten():
    assert validate_where_clause("CustomField.Risk eq 'High'") == "cf_Risk eq 'High'"


@pytest.mark.parametrize(
    "bad",
    [
        "",
        "   ",
        "Name",
        "Name equals 'x'",
        "eq 'x'",
        "Name eq 'x' and",
        "Name eq 'x' AND",
    ],
)
def test_malformed_clauses_raise(bad):
    with pytest.raises(ValidationError):
        validate_where_clause(bad)


def test_invalid_segment_is_named_in_error():
    with pytest.raises(ValidationError) as exc:
        validate_where_clause("Name eq 'x' and Bogus")
    assert "Bogus" in str(exc.value)


def test_parse_where_clause_returns_conditions():
    conditions = parse_where_clause("Name eq 'x' and Owner is null")
    assert conditions == [
        QueryCondition("Name", "eq", "'x'"),
        QueryCondition("Owner", "is null"),
    ]


def test_format_where_value_types():
    assert format_where_value("O'Brien") == "'O''Brien'"
    assert format_where_value(None) == "null"
    assert format_where_value(True) == "true"
    assert format_where_value(False) == "false"
    assert format_where_value(7) == "'7'"
    assert format_where_value(date(2024, 3, 1)) == "'2024-03-01'"
    assert format_where_value([1, "a", None]) == "['1','a',null]"


def test_format_where_value_datetime_is_utc_date():
    value = datetime(2024, 3, 1, 23, 30, tzinfo=timezone.utc)
    assert format_where_value(value) == "'2024-03-01'"


def test_format_where_field_strips_whitespace():
    assert format_where_field("Entity State . Name") == "EntityState.Name"


def test_include_formatting():
    assert format_include(["Project", "Team"]) == "[Project,Team]"
    assert format_include([" Project ", "Feature.Epic"]) == "[Project,Feature.Epic]"


@pytest.mark.parametrize("bad", ["Pro;ject", "Team1", "Name,Id"])
def test_include_rejects_unsafe_entries(bad):
    with pytest.raises(ValidationError):
        format_include([bad])


def test_order_by_drops_direction():
    assert format_order_by("CreateDate desc") == "CreateDate"
    assert format_order_by("Name ASC") == "Name"
    assert format_order_by("Name") == "Name"


def test_order_by_params_single_and_multiple():
    assert format_order_by_params(["CreateDate desc"]) == [("orderBy", "CreateDate")]
    assert format_order_by_params(["Name", "Id desc"]) == [
        ("orderBy[0]", "Name"),
        ("orderBy[1]", "Id"),
    ]


def test_build_query_params_order_and_skipping():
    params = build_query_params(
        where="Name eq 'x'",
        include=["Project"],
        take=10,
        skip=0,
        order_by=["Name desc"],
    )
    assert params == [
        ("format", "json"),
        ("take", "10"),
        ("where", "Name eq 'x'"),
        ("include", "[Project]"),
        ("orderBy", "Name"),
    ]


def test_build_query_params_defaults():
    assert build_query_params() == [("format", "json")]
