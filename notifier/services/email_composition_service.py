"""Email composition helpers.

Builds the HTML and plain text bodies of work item notifications: event
content, a "visit for details" link and, for watcher mail, an unsubscribe
footer. Both bodies are produced together so they always say the same thing.
"""

from __future__ import annotations

import html
from dataclasses import dataclass

from notifier.services.markup_service import sanitize_html


@dataclass(frozen=True)
class ComposedEmail:
    html_body: str
    text_body: str


def _build_unsubscribe_footer_html(*, unsubscribe_address: str | None) -> str:
    """Build a small, email-safe footer telling the reader how to stop watching."""
    if unsubscribe_address:
        address = html.escape(unsubscribe_address, quote=True)
        instruction = (
            "You received this because you are watching this work item. "
            f'To stop watching, send an email to <a href="mailto:{address}"'
            ' style="color: #6b7280; text-decoration: underline;">'
            f"{address}</a> with any content."
        )
    else:
        instruction = (
            "You received this because you are watching this work item. "
            "To stop watching, visit the link above and unwatch it."
        )

    # Keep the footer unobtrusive and email-client friendly (tables + inline styles).
    return (
        '<table role="presentation" cellpadding="0" cellspacing="0" border="0" width="100%"'
        ' style="margin-top: 14px;">'
        "<tr>"
        '<td style="font-family: Arial, sans-serif; font-size: 11px; line-height: 16px;'
        ' color: #6b7280; padding-top: 16px; border-top: 1px solid #e5e7eb;">'
        f"{instruction}"
        "</td>"
        "</tr>"
        "</table>"
    )


def _build_unsubscribe_footer_text(*, unsubscribe_address: str | None) -> str:
    if unsubscribe_address:
        return (
            "You received this because you are watching this work item. "
            f"To stop watching, send an email to {unsubscribe_address} with any content."
        )
    return (
        "You received this because you are watching this work item. "
        "To stop watching, visit the link above and unwatch it."
    )


def _wrap_body_html(html_body: str) -> str:
    """Apply a sane default typography baseline to the fragment."""
    return (
        '<div style="font-family: Arial, sans-serif; font-size: 14px;'
        ' line-height: 22px; color: #111827;">'
        f"{html_body}"
        "</div>"
    )


def compose_notification_email(
    *,
    rendered_html: str | None,
    markdown: str | None,
    url: str,
    unsubscribable: bool,
    unsubscribe_address: str | None = None,
) -> ComposedEmail:
    """
    Compose HTML and text bodies.

    rendered_html: markup rendering of `markdown` (sanitized here again).
    unsubscribable: append the stop-watching footer (watcher and mention mail).
    """
    safe_url = html.escape(url, quote=True)

    html_parts: list[str] = []
    text_parts: list[str] = []

    if rendered_html:
        html_parts.append(sanitize_html(rendered_html))
    if markdown:
        text_parts.append(markdown.strip())

    html_parts.append(f'<p>Visit <a href="{safe_url}">{safe_url}</a> for details</p>')
    text_parts.append(f"Visit {url} for details")

    if unsubscribable:
        html_parts.append(_build_unsubscribe_footer_html(unsubscribe_address=unsubscribe_address))
        text_parts.append("---\n" + _build_unsubscribe_footer_text(unsubscribe_address=unsubscribe_address))

    return ComposedEmail(
        html_body=_wrap_body_html("".join(html_parts)),
        text_body="\n\n".join(text_parts),
    )
