"""
auth/session.py -- Session store collaborator.

StarletteSession adapts the dict that Starlette's SessionMiddleware exposes as
request.session. That dict is serialized to JSON into a signed cookie, so
values are passed through FastAPI's jsonable_encoder first (datetimes become
ISO strings, nested records become plain dicts).

Layer rule: no imports from api/ or core/. fastapi.encoders is allowed --
this module is the session half of the FastAPI integration.
"""

from __future__ import annotations

from typing import Any, MutableMapping, Protocol

from fastapi.encoders import jsonable_encoder


class SessionStore(Protocol):
    """What the authenticator and the logout route need from a session."""

    def write(self, key: str, value: Any) -> None: ...

    def read(self, key: str) -> Any: ...

    def delete(self, key: str) -> None: ...


class StarletteSession:
    def __init__(self, session: MutableMapping[str, Any]) -> None:
        self._session = session

    def write(self, key: str, value: Any) -> None:
        self._session[key] = jsonable_encoder(value)

    def read(self, key: str) -> Any:
        return self._session.get(key)

    def delete(self, key: str) -> None:
        self._session.pop(key, None)
