"""Markup rendering for notification bodies and mention scanning."""

from __future__ import annotations

import html
import re
from typing import Protocol

import nh3

# Allowed HTML tags in rendered notification content
ALLOWED_TAGS = {"p", "br", "strong", "em", "ul", "ol", "li", "a", "blockquote", "h1", "h2", "h3", "code", "pre"}
ALLOWED_ATTRIBUTES = {"a": {"href", "title"}}

_FENCE_RE = re.compile(r"```[^\n]*\n(.*?)```", re.DOTALL)
_INLINE_CODE_RE = re.compile(r"`([^`\n]+)`")
_BOLD_RE = re.compile(r"\*\*([^*\n]+)\*\*")
_PLACEHOLDER = "\x00{}\x00"


class MarkupRenderer(Protocol):
    def render(self, raw: str) -> str:
        """Render raw markdown-ish text to HTML."""


def sanitize_html(content: str) -> str:
    """Sanitize HTML to prevent XSS, allowing only safe rich text tags."""
    return nh3.clean(content, tags=ALLOWED_TAGS, attributes=ALLOWED_ATTRIBUTES)


class BasicMarkupRenderer:
    """
    Minimal renderer: paragraphs, line breaks, bold, inline code and fenced
    code blocks. Everything else is escaped text.

    Code is kept in <code>/<pre> so mention scanning skips it.
    """

    def render(self, raw: str) -> str:
        blocks: list[str] = []

        def _stash_fence(match: re.Match) -> str:
            blocks.append(f"<pre><code>{html.escape(match.group(1))}</code></pre>")
            return "\n\n" + _PLACEHOLDER.format(len(blocks) - 1) + "\n\n"

        text = _FENCE_RE.sub(_stash_fence, raw.replace("\r\n", "\n"))

        paragraphs: list[str] = []
        for chunk in re.split(r"\n{2,}", text):
            chunk = chunk.strip()
            if not chunk:
                continue
            placeholder = re.fullmatch(r"\x00(\d+)\x00", chunk)
            if placeholder:
                paragraphs.append(blocks[int(placeholder.group(1))])
                continue
            rendered = html.escape(chunk, quote=False)
            rendered = _INLINE_CODE_RE.sub(r"<code>\1</code>", rendered)
            rendered = _BOLD_RE.sub(r"<strong>\1</strong>", rendered)
            paragraphs.append("<p>" + rendered.replace("\n", "<br>") + "</p>")

        return sanitize_html("\n".join(paragraphs))
