"""
Mention extraction for comment text.

``@token`` substrings are matched case-insensitively against each member's
display name (whole, with spaces removed, or any single word of it) and the
local part of their email. Common first names can match several members;
every match is notified.
"""

from __future__ import annotations

import re
import uuid
from typing import Iterable, Sequence

from app.models.user import User

MENTION_PATTERN = re.compile(r"@([\w.\-]+)")


def extract_mention_tokens(text: str) -> list[str]:
    """Distinct lower-cased ``@`` tokens in order of appearance."""
    seen: dict[str, None] = {}
    for match in MENTION_PATTERN.finditer(text):
        token = match.group(1).strip(".-").lower()
        if token:
            seen.setdefault(token, None)
    return list(seen)


def mention_keys(user: User) -> set[str]:
    """All lower-cased handles a member can be mentioned by."""
    keys: set[str] = set()
    name = (user.name or "").strip().lower()
    if name:
        keys.add(name)
        keys.add(name.replace(" ", ""))
        keys.update(part for part in name.split() if part)
    local = (user.email or "").split("@", 1)[0].lower()
    if local:
        keys.add(local)
    return keys


def resolve_mentions(
    text: str,
    members: Iterable[User],
    author_id: uuid.UUID,
) -> Sequence[User]:
    """Members mentioned in ``text``, excluding the author, each at most once."""
    tokens = set(extract_mention_tokens(text))
    if not tokens:
        return []
    return [
        user
        for user in members
        if user.id != author_id and tokens & mention_keys(user)
    ]
