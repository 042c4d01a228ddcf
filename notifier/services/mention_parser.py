"""Mention extraction from rendered markup.

Purely lexical: returns candidate usernames in order of appearance
(duplicates included). Resolving them against the user directory is the
caller's job.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup

# "@name" not glued to a preceding word char, so "bob@example.com" is not a mention
MENTION_RE = re.compile(r"(?<![\w@./\-])@([\w][\w.\-]*)")

# Text inside these elements never contains mentions
IGNORED_TAGS = ["code", "pre", "a"]


def extract_mentions(rendered: str | None) -> list[str]:
    """Return usernames mentioned in rendered HTML/text, in order."""
    if not rendered:
        return []

    soup = BeautifulSoup(rendered, "html.parser")
    mentions: list[str] = []
    for text in soup.strings:
        if text.find_parent(IGNORED_TAGS) is not None:
            continue
        for match in MENTION_RE.finditer(text):
            name = match.group(1).rstrip(".-")
            if name:
                mentions.append(name)
    return mentions
