"""
auth/models.py -- Domain shapes for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
authenticator do the work.

Principal is deliberately a plain dict rather than a dataclass: the
authenticator works against whatever table userModel names, so the set of
columns is only known at runtime.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

Principal = dict[str, Any]


@dataclass
class User:
    """A row of the default ``users`` table.

    password holds a hash, never plaintext. remember_me_token likewise holds
    the hash of the token stored in the client's cookie; the plaintext token
    exists only in the cookie. remember_me_token_created is when that token
    was issued and drives the staleness check.
    """

    user_name: str
    email: str
    password: str | None = None
    id: int | None = None
    token: str | None = None
    uuid: str | None = None
    remember_me_token: str | None = None
    remember_me_token_created: datetime | None = None
    created: datetime | None = None
    updated: datetime | None = None
    active: bool = True
