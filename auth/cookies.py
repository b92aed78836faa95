"""
auth/cookies.py -- Cookie store collaborator: read, write and delete structured cookies.

CookieJar wraps the cookies of one inbound request. Reads decode and verify
immediately; writes and deletes are queued and flushed onto the outgoing
response with apply(). A jar never touches the network or the request object
itself, so it is equally usable from FastAPI routes and plain unit tests.

Encoding ("crypt" option):
  aes:  JWE compact serialization, alg=dir, enc=A256GCM. The 256-bit content
        key is SHA-256(secret_key). Payload is confidential and tamper-proof.
  sign: HS256 JWT signed with secret_key. Payload is readable by the client
        but tamper-proof.

Both encodings carry an ``exp`` claim equal to the cookie lifetime, so a
cookie replayed after its lifetime is rejected even if the browser kept it.
Anything that fails to decode, verify, or parse reads as None -- a bad
cookie is "no cookie", never an error.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Protocol

from jose import jwe, jwt
from jose.exceptions import JOSEError

from auth.durations import parse_duration
from auth.errors import ConfigurationError
from auth.hashers import CryptoContext

logger = logging.getLogger("rememberme.auth.cookies")

_JWT_ALGORITHM = "HS256"
_JWE_ENCRYPTION = "A256GCM"
_CRYPT_MODES = ("aes", "sign")

_DEFAULT_OPTIONS: dict[str, Any] = {
    "expires": timedelta(weeks=2),
    "path": "/",
    "domain": None,
    "secure": False,
    "http_only": True,
    "same_site": "lax",
    "crypt": "aes",
}


class CookieStore(Protocol):
    """What the authenticator needs from a cookie collaborator."""

    def configure(self, name: str, options: Mapping[str, Any]) -> None: ...

    def read(self, name: str) -> dict[str, Any] | None: ...

    def delete(self, name: str) -> None: ...


class CookieJar:
    """Request-scoped CookieStore backed by Starlette request/response cookies.

    Usage:
        jar = CookieJar(request.cookies, CryptoContext(secret_key))
        jar.configure("RememberMe", {"expires": "+2 weeks", "crypt": "aes"})
        data = jar.read("RememberMe")        # dict or None
        jar.delete("RememberMe")
        jar.apply(response)                  # emits Set-Cookie headers
    """

    def __init__(self, request_cookies: Mapping[str, str], crypto: CryptoContext) -> None:
        self._raw = dict(request_cookies)
        self._crypto = crypto
        self._options: dict[str, dict[str, Any]] = {}
        # name -> encoded value, or None for a pending delete
        self._pending: dict[str, str | None] = {}

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(self, name: str, options: Mapping[str, Any] | None = None) -> None:
        """Set per-cookie options. Unknown crypt modes fail immediately."""
        merged = {**_DEFAULT_OPTIONS, **self._options.get(name, {})}
        merged.update({k: v for k, v in (options or {}).items() if k in _DEFAULT_OPTIONS})
        merged["expires"] = parse_duration(merged["expires"])
        if merged["crypt"] not in _CRYPT_MODES:
            raise ConfigurationError(f"Unknown cookie crypt mode {merged['crypt']!r}; expected one of {_CRYPT_MODES}")
        self._options[name] = merged

    def options(self, name: str) -> dict[str, Any]:
        if name not in self._options:
            self.configure(name)
        return self._options[name]

    # ------------------------------------------------------------------
    # Cookie operations
    # ------------------------------------------------------------------

    def read(self, name: str) -> dict[str, Any] | None:
        """Return the decoded mapping stored under name, or None.

        A cookie written or deleted earlier in this request reads back as the
        pending value, mirroring what the client will hold after the response.
        """
        if name in self._pending:
            raw = self._pending[name]
        else:
            raw = self._raw.get(name)
        if not raw:
            return None
        return self._decode(raw, self.options(name))

    def encode(self, name: str, value: Mapping[str, Any]) -> str:
        """Return the encoded cookie value for name without queueing it."""
        return self._encode(dict(value), self.options(name))

    def write(self, name: str, value: Mapping[str, Any]) -> None:
        """Queue value (a JSON-serializable mapping) to be set on the response."""
        self._pending[name] = self.encode(name, value)

    def delete(self, name: str) -> None:
        """Queue deletion of name. Deleting a cookie that does not exist is fine."""
        self._pending[name] = None

    def apply(self, response) -> None:
        """Flush queued writes and deletes onto a Starlette/FastAPI response."""
        for name, value in self._pending.items():
            opts = self.options(name)
            if value is None:
                response.delete_cookie(
                    name,
                    path=opts["path"],
                    domain=opts["domain"],
                    secure=opts["secure"],
                    httponly=opts["http_only"],
                    samesite=opts["same_site"],
                )
            else:
                response.set_cookie(
                    name,
                    value=value,
                    max_age=int(opts["expires"].total_seconds()),
                    path=opts["path"],
                    domain=opts["domain"],
                    secure=opts["secure"],
                    httponly=opts["http_only"],
                    samesite=opts["same_site"],
                )

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def _aes_key(self) -> bytes:
        return hashlib.sha256(self._crypto.secret_key.encode("utf-8")).digest()

    def _encode(self, value: dict[str, Any], opts: dict[str, Any]) -> str:
        expire = datetime.now(timezone.utc) + opts["expires"]
        if opts["crypt"] == "sign":
            return jwt.encode({"data": value, "exp": expire}, self._crypto.secret_key, algorithm=_JWT_ALGORITHM)
        plaintext = json.dumps({"data": value, "exp": int(expire.timestamp())})
        token = jwe.encrypt(plaintext, self._aes_key(), algorithm="dir", encryption=_JWE_ENCRYPTION)
        return token.decode("ascii") if isinstance(token, bytes) else token

    def _decode(self, raw: str, opts: dict[str, Any]) -> dict[str, Any] | None:
        try:
            if opts["crypt"] == "sign":
                claims = jwt.decode(raw, self._crypto.secret_key, algorithms=[_JWT_ALGORITHM])
            else:
                claims = json.loads(jwe.decrypt(raw, self._aes_key()))
                if claims.get("exp", 0) < datetime.now(timezone.utc).timestamp():
                    logger.debug("Encrypted cookie past its exp claim")
                    return None
        except (JOSEError, ValueError, TypeError, AttributeError):
            # ValueError covers JSON decoding; the others cover malformed JWE structure.
            logger.debug("Cookie failed to decode or verify")
            return None
        data = claims.get("data")
        return data if isinstance(data, dict) and data else None
