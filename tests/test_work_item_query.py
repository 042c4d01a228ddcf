"""Tests for the work item query language."""

import pytest

from notifier.services.work_item_query import QuerySyntaxError, WorkItemQueryParser

parser = WorkItemQueryParser()


def _matches(query, work_item, user=None, project=None):
    return parser.parse(project, query).matches(work_item, user)


def test_empty_query_matches_everything(work_item):
    assert _matches("", work_item)
    assert _matches("   ", work_item)


def test_text_criteria_are_case_insensitive(work_item):
    assert _matches('"State" is "open"', work_item)
    assert not _matches('"State" is not "OPEN"', work_item)
    assert _matches('"Title" contains "CRASH"', work_item)
    assert not _matches('"Description" contains "crash"', work_item)


def test_number_comparisons(make_work_item):
    item = make_work_item(number=42)
    assert _matches('"Number" is "42"', item)
    assert _matches('"Number" is greater than "41"', item)
    assert not _matches('"Number" is less than "42"', item)


def test_boolean_combinators_and_parentheses(work_item):
    assert _matches('"State" is "Closed" or "Title" contains "login"', work_item)
    assert not _matches('"State" is "Open" and not "Title" contains "login"', work_item)
    assert _matches('("State" is "Closed" or "State" is "Open") and "Number" is "1"', work_item)


def test_submitted_by_me_uses_current_user(work_item, submitter, make_user):
    other = make_user("other")
    assert _matches("submitted by me", work_item, submitter)
    assert not _matches("submitted by me", work_item, other)
    assert not _matches("submitted by me", work_item, None)


def test_submitted_by_username(work_item):
    assert _matches('submitted by "SUBMITTER"', work_item)
    assert _matches('"Submitter" is not "someone"', work_item)


def test_project_criterion_in_global_scope(work_item):
    assert _matches('"Project" is "foo"', work_item)
    assert not _matches('"Project" is "bar"', work_item)


def test_project_criterion_rejected_inside_project(work_item, project):
    with pytest.raises(QuerySyntaxError):
        parser.parse(project, '"Project" is "FOO"')


def test_current_user_criteria_can_be_disabled():
    with pytest.raises(QuerySyntaxError):
        parser.parse(None, "submitted by me", with_current_user_criteria=False)


@pytest.mark.parametrize(
    "query",
    [
        '"State" is',
        '"Bogus" is "x"',
        '"State" is greater than "1"',
        '"Number" contains "1"',
        '"Number" is "abc"',
        '("State" is "Open"',
        '"State" is "Open" extra',
        '"State',
        '"State" is "Open" and',
        "State is Open",
        '"State" ~ "Open"',
    ],
)
def test_malformed_queries_raise(query):
    with pytest.raises(QuerySyntaxError):
        parser.parse(None, query)


@pytest.mark.parametrize(
    "query",
    [
        "(" * 5000 + '"State" is "Open"' + ")" * 5000,
        "not " * 5000 + '"State" is "Open"',
    ],
)
def test_deeply_nested_query_raises_syntax_error(query):
    with pytest.raises(QuerySyntaxError, match="nested deeper"):
        parser.parse(None, query)


def test_nesting_within_limit_is_accepted(work_item):
    query = "(" * 10 + "not not " + '"State" is "Open"' + ")" * 10
    assert _matches(query, work_item)
