"""Saved-query watch evaluation.

Users subscribe to saved queries (their personal ones and shared named
queries). When a work item matches a subscribed query the owner's watch is
set to the subscription flag: True watches, False excludes.

Two scopes are evaluated per event, project first, then global. Results of
the global pass are applied last, so a global rule overrides a project rule
for the same user.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from notifier.core.structured_logging import build_log_context
from notifier.db.models import NamedQuery, Project, QuerySetting, User, WorkItem
from notifier.services import watch_service
from notifier.services.user_directory import UserDirectory
from notifier.services.work_item_query import QueryParser, QuerySyntaxError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryWatchScope:
    """
    Parameters of one evaluation pass.

    project: parse context (None for the global scope).
    settings: (owner, setting) pairs to evaluate, in order.
    named_queries: shared queries by name.
    """

    name: str
    project: Project | None
    settings: list[tuple[User, QuerySetting]]
    named_queries: dict[str, str]


def _global_named_queries(db: Session) -> dict[str, str]:
    rows = db.scalars(
        select(NamedQuery)
        .where(NamedQuery.project_id.is_(None))
        .order_by(NamedQuery.position, NamedQuery.name)
    )
    return {row.name: row.query for row in rows}


def project_scope(db: Session, work_item: WorkItem) -> QueryWatchScope:
    """Per-project settings; a project without named queries inherits the global ones."""
    project = work_item.project
    settings_rows = db.scalars(
        select(QuerySetting)
        .where(QuerySetting.project_id == work_item.project_id)
        .order_by(QuerySetting.updated_at, QuerySetting.id)
    ).all()

    named_queries = {query.name: query.query for query in (project.named_queries if project else [])}
    if not named_queries:
        named_queries = _global_named_queries(db)

    return QueryWatchScope(
        name="project",
        project=project,
        settings=[(row.user, row) for row in settings_rows],
        named_queries=named_queries,
    )


def global_scope(db: Session, users: UserDirectory) -> QueryWatchScope:
    """Every directory user's global setting against the global named queries."""
    rows = db.scalars(select(QuerySetting).where(QuerySetting.project_id.is_(None))).all()
    by_user = {row.user_id: row for row in rows}

    settings_pairs = [
        (user, by_user[user.id]) for user in users.all() if user.id in by_user
    ]
    return QueryWatchScope(
        name="global",
        project=None,
        settings=settings_pairs,
        named_queries=_global_named_queries(db),
    )


def _matches(
    parser: QueryParser,
    scope: QueryWatchScope,
    work_item: WorkItem,
    owner: User,
    query_name: str,
    query: str,
) -> bool:
    try:
        parsed = parser.parse(scope.project, query, with_current_user_criteria=True)
    except QuerySyntaxError as exc:
        logger.warning(
            "Skipping malformed saved query %r (%s scope): %s",
            query_name,
            scope.name,
            exc,
            extra=build_log_context(work_item_id=str(work_item.id), user_id=str(owner.id)),
        )
        return False
    return parsed.matches(work_item, owner)


def evaluate(work_item: WorkItem, scope: QueryWatchScope, parser: QueryParser) -> dict[User, bool]:
    """
    Compute watch intents for the scope.

    Personal queries are evaluated before named queries, each in declared
    order; the last matching query decides. Owners without a match are absent.
    """
    result: dict[User, bool] = {}
    for owner, setting in scope.settings:
        for query_name, watch in (setting.user_query_watches or {}).items():
            query = setting.find_user_query(query_name)
            if query is None:
                logger.debug("Personal query %r no longer exists", query_name)
                continue
            if _matches(parser, scope, work_item, owner, query_name, query):
                result[owner] = bool(watch)

        for query_name, watch in (setting.query_watches or {}).items():
            query = scope.named_queries.get(query_name)
            if query is None:
                logger.debug("Named query %r no longer exists", query_name)
                continue
            if _matches(parser, scope, work_item, owner, query_name, query):
                result[owner] = bool(watch)
    return result


def apply_query_watches(
    db: Session, work_item: WorkItem, scope: QueryWatchScope, parser: QueryParser
) -> dict[User, bool]:
    """Evaluate a scope and write the resulting intents to the watch store."""
    intents = evaluate(work_item, scope, parser)
    for user, watching in intents.items():
        watch_service.set_watch(db, work_item, user, watching)
    return intents
