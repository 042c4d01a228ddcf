"""Structured logging helpers."""

from typing import Any


def build_log_context(
    *,
    work_item_id: str | None = None,
    project_id: str | None = None,
    actor_id: str | None = None,
    event_kind: str | None = None,
    user_id: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict for `extra=`, omitting empty fields.

    Only identifiers go in here; never email addresses or message content.
    """
    context: dict[str, Any] = {}
    if work_item_id:
        context["work_item_id"] = work_item_id
    if project_id:
        context["project_id"] = project_id
    if actor_id:
        context["actor_id"] = actor_id
    if event_kind:
        context["event_kind"] = event_kind
    if user_id:
        context["user_id"] = user_id
    return context
