"""
auth/base.py -- Authenticator capability interface.

Every authentication adapter implements this interface directly; there is no
shared base implementation and no mutable state inherited between adapters.
The framework glue (auth/dependencies.py, api/routes/v1/auth.py) only ever
talks to adapters through these three methods plus implemented_events().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

from auth.cookies import CookieStore
from auth.models import Principal
from auth.session import SessionStore


class Authenticator(ABC):
    """Provider-neutral authentication adapter."""

    @abstractmethod
    def authenticate(self, cookies: CookieStore | None, session: SessionStore | None) -> Principal | None:
        """Authenticate the current request; persist the principal on success."""

    @abstractmethod
    def get_user(self, cookies: CookieStore | None, session: SessionStore | None = None) -> Principal | None:
        """Resolve the principal for the current request, or None."""

    @abstractmethod
    def logout(self, cookies: CookieStore, user: Principal | None = None) -> None:
        """Tear down any client-side state this adapter owns."""

    def implemented_events(self) -> dict[str, Callable[..., Any]]:
        """Framework events this adapter listens to, mapped to handlers."""
        return {}
