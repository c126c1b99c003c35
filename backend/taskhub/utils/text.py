"""Text helpers."""

import re

SLUG_MAX_LENGTH = 100

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """Lower-case ASCII alphanumerics of ``name`` joined by single hyphens.

    >>> slugify("Acme Corp.")
    'acme-corp'
    """
    slug = _NON_SLUG_CHARS.sub("-", name.lower()).strip("-")
    return slug[:SLUG_MAX_LENGTH].rstrip("-")


def escape_like(term: str, escape: str = "\\") -> str:
    """Escape LIKE wildcards so ``term`` matches literally."""
    return (
        term.replace(escape, escape * 2)
        .replace("%", f"{escape}%")
        .replace("_", f"{escape}_")
    )
