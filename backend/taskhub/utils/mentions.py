"""Mention tokenizer for comment text.

Comment text references users as ``@[username]`` or ``@[user:<uuid>]``. The
identifier between the brackets is one or more characters other than ``]``; a
bare ``@word`` is never a mention.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from uuid import UUID

MENTION_OPEN = "@["
MENTION_CLOSE = "]"
USER_ID_PREFIX = "user:"


@dataclass(frozen=True)
class MentionToken:
    """One mention found in text: either a username or a user id, never both."""

    username: str | None = None
    user_id: UUID | None = None


def iter_mentions(content: str) -> Iterator[MentionToken]:
    """Yield mention tokens from ``content`` in order of appearance.

    ``@[]`` is skipped, and scanning stops at the first ``@[`` with no closing
    bracket. A ``user:`` identifier whose remainder is not a UUID is dropped.
    """
    pos = 0
    while True:
        start = content.find(MENTION_OPEN, pos)
        if start == -1:
            return

        body_start = start + len(MENTION_OPEN)
        end = content.find(MENTION_CLOSE, body_start)
        if end == -1:
            return

        if end == body_start:
            # Empty brackets; the next mention may begin at the "[" that follows
            pos = start + 1
            continue

        identifier = content[body_start:end]
        pos = end + 1

        if identifier.startswith(USER_ID_PREFIX) and len(identifier) > len(USER_ID_PREFIX):
            try:
                yield MentionToken(user_id=UUID(identifier[len(USER_ID_PREFIX):]))
            except ValueError:
                continue
        else:
            yield MentionToken(username=identifier)


def parse_mentions(content: str) -> tuple[set[str], set[UUID]]:
    """Collect the distinct usernames and user ids mentioned in ``content``."""
    usernames: set[str] = set()
    user_ids: set[UUID] = set()
    for token in iter_mentions(content):
        if token.user_id is not None:
            user_ids.add(token.user_id)
        elif token.username is not None:
            usernames.add(token.username)
    return usernames, user_ids
