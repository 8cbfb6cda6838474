"""Substring matching and snippet extraction shared by every source."""

import re

SNIPPET_CONTEXT = 50
ELLIPSIS = "..."


def build_snippet(content: str, query: str) -> str | None:
    """Return the text around the first case-insensitive match of ``query``.

    The snippet keeps ``SNIPPET_CONTEXT`` characters on each side of the match
    and marks a truncated side with an ellipsis. Returns None when ``content``
    does not contain ``query``.
    """
    if not query or not content:
        return None

    match = re.search(re.escape(query), content, re.IGNORECASE)
    if match is None:
        return None

    start = max(0, match.start() - SNIPPET_CONTEXT)
    end = min(len(content), match.end() + SNIPPET_CONTEXT)

    snippet = content[start:end]
    if start > 0:
        snippet = ELLIPSIS + snippet
    if end < len(content):
        snippet = snippet + ELLIPSIS
    return snippet
