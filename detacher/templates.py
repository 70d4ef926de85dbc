"""Token substitution for the URL and placeholder-message templates.

Only whitelisted ``{token}`` names are replaced.  Anything else in braces,
including unknown tokens, is copied through literally.
"""

from __future__ import annotations

import re
from collections.abc import Collection, Mapping

URL_TOKENS = frozenset({"host", "port", "hash"})
MESSAGE_TOKENS = frozenset({"url"})

_TOKEN_RE = re.compile(r"\{(\w+)\}")


def render(template: str, values: Mapping[str, object], allowed: Collection[str]) -> str:
    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in allowed and name in values:
            return str(values[name])
        return match.group(0)

    return _TOKEN_RE.sub(_replace, template)


def build_url(template: str, *, host: str, port: int | str, digest: str) -> str:
    """Fill ``{host}``, ``{port}`` and ``{hash}`` in a URL template."""
    return render(template, {"host": host, "port": port, "hash": digest}, URL_TOKENS)


def build_message(template: str, *, url: str) -> str:
    """Fill ``{url}`` in the placeholder message template."""
    return render(template, {"url": url}, MESSAGE_TOKENS)
