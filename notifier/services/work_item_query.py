"""Work item query language used by saved queries.

Grammar (keywords are case-insensitive, field names and values are quoted):

    query      := or_expr | <empty>
    or_expr    := and_expr ("or" and_expr)*
    and_expr   := not_expr ("and" not_expr)*
    not_expr   := "not" not_expr | "(" or_expr ")" | criterion
    criterion  := "submitted" "by" ("me" | VALUE)
                | FIELD "is" VALUE
                | FIELD "is" "not" VALUE
                | FIELD "contains" VALUE
                | FIELD "is" ("greater" | "less") "than" VALUE

Example: "State" is "Open" and ("Title" contains "crash" or submitted by me)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Protocol

from notifier.db.models import Project, User, WorkItem


class QuerySyntaxError(Exception):
    """Query text could not be parsed for the requested scope."""

    pass


Predicate = Callable[[WorkItem, "User | None"], bool]

FIELD_NUMBER = "Number"
FIELD_STATE = "State"
FIELD_TITLE = "Title"
FIELD_DESCRIPTION = "Description"
FIELD_PROJECT = "Project"
FIELD_SUBMITTER = "Submitter"

_TEXT_FIELDS = {FIELD_STATE, FIELD_TITLE, FIELD_DESCRIPTION}
_FIELDS = {FIELD_NUMBER, FIELD_PROJECT, FIELD_SUBMITTER} | _TEXT_FIELDS

OP_IS = "is"
OP_IS_NOT = "is not"
OP_CONTAINS = "contains"
OP_GREATER = "is greater than"
OP_LESS = "is less than"

_FIELD_OPERATORS = {
    FIELD_NUMBER: {OP_IS, OP_IS_NOT, OP_GREATER, OP_LESS},
    FIELD_STATE: {OP_IS, OP_IS_NOT, OP_CONTAINS},
    FIELD_TITLE: {OP_IS, OP_IS_NOT, OP_CONTAINS},
    FIELD_DESCRIPTION: {OP_IS, OP_IS_NOT, OP_CONTAINS},
    FIELD_PROJECT: {OP_IS, OP_IS_NOT},
    FIELD_SUBMITTER: {OP_IS, OP_IS_NOT},
}

# Parentheses and "not" prefixes combined
MAX_NESTING_DEPTH = 32

_TOKEN_RE = re.compile(r'\s*(?:(?P<quoted>"(?:[^"\\]|\\.)*")|(?P<paren>[()])|(?P<word>[A-Za-z]+))')


# =============================================================================
# Tokenizer
# =============================================================================


@dataclass(frozen=True)
class _Token:
    kind: str  # "quoted" | "paren" | "word"
    value: str
    position: int


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    length = len(text)
    while pos < length:
        if text[pos:].strip() == "":
            break
        match = _TOKEN_RE.match(text, pos)
        if not match or match.end() == pos:
            raise QuerySyntaxError(f"Unexpected character at position {pos}: {text[pos:pos + 10]!r}")
        kind = match.lastgroup or ""
        raw = match.group(kind)
        if kind == "quoted":
            value = re.sub(r"\\(.)", r"\1", raw[1:-1])
        elif kind == "word":
            value = raw.lower()
        else:
            value = raw
        tokens.append(_Token(kind=kind, value=value, position=match.start(kind)))
        pos = match.end()
    return tokens


# =============================================================================
# Parsed query
# =============================================================================


@dataclass(frozen=True)
class ParsedQuery:
    """A compiled query; `matches` evaluates it against a work item."""

    text: str
    predicate: Predicate | None

    def matches(self, work_item: WorkItem, current_user: User | None = None) -> bool:
        if self.predicate is None:
            return True
        return self.predicate(work_item, current_user)


class QueryParser(Protocol):
    def parse(
        self,
        project: Project | None,
        query: str,
        *,
        with_current_user_criteria: bool = True,
    ) -> ParsedQuery:
        """Parse query text for a project scope (or globally when project is None)."""


# =============================================================================
# Criteria
# =============================================================================


def _text_criterion(field: str, operator: str, value: str) -> Predicate:
    expected = value.lower()

    def _field_value(work_item: WorkItem) -> str:
        if field == FIELD_STATE:
            return (work_item.state or "").lower()
        if field == FIELD_TITLE:
            return (work_item.title or "").lower()
        return (work_item.description or "").lower()

    if operator == OP_IS:
        return lambda work_item, _user: _field_value(work_item) == expected
    if operator == OP_IS_NOT:
        return lambda work_item, _user: _field_value(work_item) != expected
    return lambda work_item, _user: expected in _field_value(work_item)


def _number_criterion(operator: str, value: str) -> Predicate:
    try:
        expected = int(value.strip().lstrip("#"))
    except ValueError:
        raise QuerySyntaxError(f'"Number" requires an integer, got "{value}"') from None

    if operator == OP_IS:
        return lambda work_item, _user: work_item.number == expected
    if operator == OP_IS_NOT:
        return lambda work_item, _user: work_item.number != expected
    if operator == OP_GREATER:
        return lambda work_item, _user: work_item.number > expected
    return lambda work_item, _user: work_item.number < expected


def _project_criterion(operator: str, value: str) -> Predicate:
    expected = value.lower()

    def _matches(work_item: WorkItem) -> bool:
        project = work_item.project
        if project is None:
            return False
        return expected in {project.key.lower(), project.name.lower()}

    if operator == OP_IS:
        return lambda work_item, _user: _matches(work_item)
    return lambda work_item, _user: not _matches(work_item)


def _submitter_criterion(operator: str, value: str) -> Predicate:
    expected = value.lower()

    def _matches(work_item: WorkItem) -> bool:
        submitter = work_item.submitter
        return submitter is not None and submitter.username.lower() == expected

    if operator == OP_IS:
        return lambda work_item, _user: _matches(work_item)
    return lambda work_item, _user: not _matches(work_item)


def _submitted_by_me(work_item: WorkItem, current_user: User | None) -> bool:
    if current_user is None:
        return False
    return work_item.submitter_id is not None and work_item.submitter_id == current_user.id


# =============================================================================
# Parser
# =============================================================================


class _Parser:
    def __init__(self, text: str, project: Project | None, with_current_user_criteria: bool) -> None:
        self.text = text
        self.tokens = _tokenize(text)
        self.index = 0
        self.project = project
        self.with_current_user_criteria = with_current_user_criteria
        self.depth = 0

    def _peek(self) -> _Token | None:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def _next(self, expected: str) -> _Token:
        token = self._peek()
        if token is None:
            raise QuerySyntaxError(f"Unexpected end of query, expected {expected}")
        self.index += 1
        return token

    def _peek_word(self, *words: str) -> bool:
        token = self._peek()
        return token is not None and token.kind == "word" and token.value in words

    def _expect_word(self, word: str) -> None:
        token = self._next(f"'{word}'")
        if token.kind != "word" or token.value != word:
            raise QuerySyntaxError(f"Expected '{word}' at position {token.position}")

    def _expect_value(self) -> str:
        token = self._next("a quoted value")
        if token.kind != "quoted":
            raise QuerySyntaxError(f"Expected a quoted value at position {token.position}")
        return token.value

    def parse(self) -> Predicate | None:
        if not self.tokens:
            return None
        predicate = self._or_expr()
        token = self._peek()
        if token is not None:
            raise QuerySyntaxError(f"Unexpected '{token.value}' at position {token.position}")
        return predicate

    def _or_expr(self) -> Predicate:
        operands = [self._and_expr()]
        while self._peek_word("or"):
            self.index += 1
            operands.append(self._and_expr())
        if len(operands) == 1:
            return operands[0]
        return lambda work_item, user: any(op(work_item, user) for op in operands)

    def _and_expr(self) -> Predicate:
        operands = [self._not_expr()]
        while self._peek_word("and"):
            self.index += 1
            operands.append(self._not_expr())
        if len(operands) == 1:
            return operands[0]
        return lambda work_item, user: all(op(work_item, user) for op in operands)

    def _enter(self, token: _Token) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise QuerySyntaxError(
                f"Query nested deeper than {MAX_NESTING_DEPTH} levels at position {token.position}"
            )

    def _not_expr(self) -> Predicate:
        token = self._peek()
        if self._peek_word("not"):
            self.index += 1
            self._enter(token)
            inner = self._not_expr()
            self.depth -= 1
            return lambda work_item, user: not inner(work_item, user)

        if token is not None and token.kind == "paren" and token.value == "(":
            self.index += 1
            self._enter(token)
            inner = self._or_expr()
            self.depth -= 1
            closing = self._next("')'")
            if closing.kind != "paren" or closing.value != ")":
                raise QuerySyntaxError(f"Expected ')' at position {closing.position}")
            return inner

        return self._criterion()

    def _criterion(self) -> Predicate:
        token = self._next("a criterion")

        if token.kind == "word" and token.value == "submitted":
            self._expect_word("by")
            if self._peek_word("me"):
                self.index += 1
                if not self.with_current_user_criteria:
                    raise QuerySyntaxError("'submitted by me' is not supported here")
                return _submitted_by_me
            return _submitter_criterion(OP_IS, self._expect_value())

        if token.kind != "quoted":
            raise QuerySyntaxError(f"Expected a quoted field name at position {token.position}")

        field = _canonical_field(token.value)
        operator = self._operator()
        if operator not in _FIELD_OPERATORS[field]:
            raise QuerySyntaxError(f'Operator "{operator}" is not supported for field "{field}"')
        value = self._expect_value()

        if field == FIELD_NUMBER:
            return _number_criterion(operator, value)
        if field == FIELD_PROJECT:
            if self.project is not None:
                raise QuerySyntaxError('"Project" criteria are not allowed inside a project')
            return _project_criterion(operator, value)
        if field == FIELD_SUBMITTER:
            return _submitter_criterion(operator, value)
        return _text_criterion(field, operator, value)

    def _operator(self) -> str:
        token = self._next("an operator")
        if token.kind == "word" and token.value == "contains":
            return OP_CONTAINS
        if token.kind != "word" or token.value != "is":
            raise QuerySyntaxError(f"Expected an operator at position {token.position}")
        if self._peek_word("not"):
            self.index += 1
            return OP_IS_NOT
        if self._peek_word("greater", "less"):
            word = self._next("'greater' or 'less'").value
            self._expect_word("than")
            return OP_GREATER if word == "greater" else OP_LESS
        return OP_IS


def _canonical_field(name: str) -> str:
    for field in _FIELDS:
        if field.lower() == name.strip().lower():
            return field
    raise QuerySyntaxError(f'Unknown field "{name}"')


class WorkItemQueryParser:
    """Default query parser."""

    def parse(
        self,
        project: Project | None,
        query: str,
        *,
        with_current_user_criteria: bool = True,
    ) -> ParsedQuery:
        text = query or ""
        parser = _Parser(text, project, with_current_user_criteria)
        return ParsedQuery(text=text, predicate=parser.parse())
