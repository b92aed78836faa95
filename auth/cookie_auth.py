"""
auth/cookie_auth.py -- Remember-me cookie authenticator.

Re-establishes a session from a persistent cookie holding an identifier and a
secret (a password, or more usually a random remember-me token):

    cookie -> {username, password} -> user store lookup (identifier AND scope)
           -> optional token staleness check -> optional secret verification
           -> principal (secret stripped) written to the session

Example configuration:

    CookieAuthenticator.from_options(
        {
            "fields": {"username": "uuid", "password": "remember_me_token"},
            "tokenCreated": "remember_me_token_created",
            "userModel": "users",
            "scope": {"users.active": True},
            "crypt": "aes",
            "cookie": {"name": "RememberMe", "expires": "+2 weeks"},
        },
        user_store=store,
        crypto=CryptoContext.from_settings(),
    )

Security design decisions:
  Single failure value: every authentication failure returns None. Callers
       (and attackers) cannot tell "no such user" from "wrong token" from
       "stale token" by the result. When no record matches, the hasher still
       runs a dummy check so response time does not leak it either [C1].

  Staleness: a stolen cookie is only useful until the server-side token is
       older than the configured window, regardless of what the browser kept.

  Wiring faults (no cookie collaborator, bad options) raise
       ConfigurationError instead of reading as "not logged in".

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from auth.base import Authenticator
from auth.config import AuthConfig
from auth.cookies import CookieStore
from auth.errors import ConfigurationError
from auth.hashers import BcryptHasher, CryptoContext, PasswordHasher, build_hasher
from auth.models import Principal
from auth.session import SessionStore
from auth.store import UserStore

logger = logging.getLogger("rememberme.auth")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Any) -> datetime | None:
    """Coerce a stored timestamp (datetime or ISO 8601 string) to aware UTC.

    Naive values are taken to be UTC. Returns None for anything unparseable.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CookieAuthenticator(Authenticator):
    """Authenticate requests from a remember-me cookie.

    Stateless across requests apart from the rehash advisory flag, which
    reflects the most recent verified lookup only.
    """

    def __init__(
        self,
        config: AuthConfig,
        user_store: UserStore,
        hasher: PasswordHasher | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.user_store = user_store
        self.hasher = hasher if hasher is not None else BcryptHasher()
        self._clock = clock or _utc_now
        self._needs_password_rehash = False

    @classmethod
    def from_options(
        cls,
        options: Mapping[str, Any] | None,
        user_store: UserStore,
        crypto: CryptoContext | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> "CookieAuthenticator":
        """Build an authenticator from a plain options mapping.

        ``passwordHasher`` is consumed here (see auth.hashers.build_hasher);
        every other key is validated by AuthConfig.
        """
        options = dict(options or {})
        hasher = build_hasher(options.pop("passwordHasher", None), crypto)
        return cls(AuthConfig.from_options(options), user_store, hasher, clock=clock)

    def implemented_events(self) -> dict[str, Callable[..., Any]]:
        return {"Auth.logout": self.logout}

    def needs_password_rehash(self) -> bool:
        """True if the last verified hash was produced with outdated parameters.

        Advisory only: a credential-based login is the place to act on it,
        since that is the only time the plaintext secret is available.
        """
        return self._needs_password_rehash

    # ------------------------------------------------------------------
    # Request entry points
    # ------------------------------------------------------------------

    def authenticate(self, cookies: CookieStore | None, session: SessionStore | None) -> Principal | None:
        """Authenticate the request from its remember-me cookie.

        Returns the principal on success (also written to session under the
        configured session key) and None on any authentication failure.

        Raises ConfigurationError if no cookie collaborator is supplied.
        """
        return self.get_user(cookies, session)

    def get_user(self, cookies: CookieStore | None, session: SessionStore | None = None) -> Principal | None:
        if cookies is None:
            raise ConfigurationError("A cookie store is required for remember-me authentication.")

        cookie = self.config.cookie
        cookies.configure(cookie.name, cookie.store_options(self.config.crypt))
        data = cookies.read(cookie.name)
        if not data or not isinstance(data, Mapping):
            return None

        username = data.get(self.config.username_field)
        password = data.get(self.config.password_field)
        if not username or not isinstance(username, str):
            logger.debug("Remember-me cookie has no identifier")
            return None
        if self.config.password_required:
            if not password or not isinstance(password, str):
                logger.debug("Remember-me cookie has no secret")
                return None
        else:
            password = None

        user = self.find_user_with_expiration(username, password)
        if user is None:
            return None
        if session is not None:
            session.write(self.config.session_key, user)
        return user

    def logout(self, cookies: CookieStore, user: Principal | None = None) -> None:
        """Delete the remember-me cookie. Safe to call when none is set.

        The cookie is configured first so the deletion carries the same path
        and domain the cookie was issued with.
        """
        cookie = self.config.cookie
        cookies.configure(cookie.name, cookie.store_options(self.config.crypt))
        cookies.delete(cookie.name)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find_user_with_expiration(self, username: str, password: str | None = None) -> Principal | None:
        """Find the record for username within scope, honouring token age.

        password=None skips secret verification (pure identifier lookup). The
        secret field is removed from the returned record in every case.
        """
        self._needs_password_rehash = False
        # Pairs, not a dict: a scope entry on the identifier column is ANDed, never merged.
        conditions = [(self.config.username_field, username), *self.config.scope_conditions().items()]

        record = self.user_store.find_one(self.config.model_name, conditions, self.config.contain)
        if record is None:
            if password is not None:
                self.hasher.check_dummy(password)
            logger.debug("Remember-me lookup found no record")
            return None

        if self.config.token_created and self._is_stale(record.get(self.config.token_created)):
            logger.debug("Remember-me token is older than %s", self.config.expiration_window)
            return None

        if password is not None:
            hashed = record.get(self.config.password_field)
            if not hashed or not self.hasher.check(password, hashed):
                logger.debug("Remember-me secret did not verify")
                return None
            self._needs_password_rehash = self.hasher.needs_rehash(hashed)

        for field in (self.config.password_field, *self.config.hidden):
            record.pop(field, None)
        return record

    def _is_stale(self, created: Any) -> bool:
        created_at = _as_utc(created)
        if created_at is None:
            return True
        return self._clock() - created_at > self.config.expiration_window
