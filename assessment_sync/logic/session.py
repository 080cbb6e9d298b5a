"""Explicit user session passed to every stateful component.

The session namespaces every local cache key, so it is built once per
authenticated user and handed to the AnswerStore, LocalCache and
RemoteSyncClient constructors.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

ANONYMOUS_USER_KEY = "anonymous"
_UNSAFE_CHARS = re.compile(r"[^a-z0-9]")


def sanitize_user_key(identity: Optional[str]) -> str:
    if not identity or not str(identity).strip():
        return ANONYMOUS_USER_KEY
    return _UNSAFE_CHARS.sub("_", str(identity).lower())


@dataclass(frozen=True)
class Session:
    """Identity of the single user the engine works for.

    `email` drives cache namespacing; `user_id` (employee id) is what the
    backend lists questionnaires by and falls back to the email.
    """

    email: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def user_key(self) -> str:
        return sanitize_user_key(self.email or self.user_id)

    @property
    def remote_user_id(self) -> str:
        return str(self.user_id or self.email or "")

    @property
    def is_anonymous(self) -> bool:
        return self.user_key == ANONYMOUS_USER_KEY


__all__ = ["Session", "sanitize_user_key", "ANONYMOUS_USER_KEY"]
