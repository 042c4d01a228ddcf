"""Permalink URLs for work items and their history entries."""

from __future__ import annotations

from typing import Protocol

from notifier.core.config import settings
from notifier.db.models import WorkItem, WorkItemChange, WorkItemComment


class PermalinkBuilder(Protocol):
    def url_for(self, entity: object) -> str: ...


class UrlBuilder:
    """Builds absolute URLs under SERVER_URL."""

    def __init__(self, server_url: str | None = None) -> None:
        self.server_url = (server_url or settings.SERVER_URL or "").rstrip("/")

    def work_item_url(self, work_item: WorkItem) -> str:
        project_key = work_item.project.key if work_item.project else "-"
        return f"{self.server_url}/projects/{project_key}/work-items/{work_item.number}"

    def url_for(self, entity: object) -> str:
        if isinstance(entity, WorkItem):
            return self.work_item_url(entity)
        if isinstance(entity, WorkItemComment):
            return f"{self.work_item_url(entity.work_item)}#comment-{entity.id}"
        if isinstance(entity, WorkItemChange):
            return f"{self.work_item_url(entity.work_item)}#change-{entity.id}"
        raise TypeError(f"No permalink for {type(entity).__name__}")
