"""
auth/hashers.py -- Pluggable password/token hashing strategies.

Security design decisions:
  Bcrypt: the default. Using bcrypt directly rather than passlib[bcrypt]
       because passlib's wrap-bug detection creates a password longer than 72
       bytes, which bcrypt 4.x rejects with an explicit error.

  Legacy digests: WeakPasswordHasher verifies salted SHA/MD5 hashes left over
       from older deployments. It always reports needs_rehash() so the caller
       can upgrade the stored hash on the next credential-based login.

  Crypto context: the salt and secret are passed in explicitly as a
       CryptoContext value. Nothing reads a process-wide salt at hash time.

  Timing: check_dummy() runs a full-cost verification against a throwaway
       hash. The authenticator calls it when no record matched so "no such
       user" costs the same as "wrong secret" [C1].

Layer rule: no imports from api/. Import from core/ is allowed only inside
CryptoContext.from_settings().
"""

from __future__ import annotations

import hashlib
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable

import bcrypt

from auth.errors import ConfigurationError


@dataclass(frozen=True)
class CryptoContext:
    """Secret material shared by the hashers and the cookie store.

    secret_key: signs/encrypts cookies. salt: prefixes legacy digest hashes.
    """

    secret_key: str
    salt: str = ""

    def __repr__(self) -> str:
        return "CryptoContext(secret_key=***, salt=***)"

    @classmethod
    def from_settings(cls, settings=None) -> "CryptoContext":
        if settings is None:
            from core.config import get_settings

            settings = get_settings()
        return cls(secret_key=settings.secret_key, salt=settings.security_salt)


class PasswordHasher(ABC):
    """Strategy interface for hashing and verifying secrets."""

    @abstractmethod
    def hash(self, plain: str) -> str:
        """Return a new hash of plain."""

    @abstractmethod
    def check(self, plain: str, hashed: str) -> bool:
        """Return True if plain matches hashed. Never raises on malformed hashes."""

    def needs_rehash(self, hashed: str) -> bool:
        """Return True if hashed was produced by outdated algorithm/parameters."""
        return False

    def check_dummy(self, plain: str) -> None:
        """Spend the cost of one check() without a real hash to compare to."""
        self.check(plain, self._dummy_hash())

    def _dummy_hash(self) -> str:
        if not hasattr(self, "_cached_dummy"):
            self._cached_dummy = self.hash("rememberme_timing_dummy")
        return self._cached_dummy


class BcryptHasher(PasswordHasher):
    """bcrypt with a fixed cost factor.

    needs_rehash() is true for hashes that are not bcrypt at all and for
    bcrypt hashes whose cost differs from ``rounds``.
    """

    _PREFIXES = ("$2a$", "$2b$", "$2y$")

    def __init__(self, rounds: int = 12) -> None:
        if not 4 <= rounds <= 31:
            raise ConfigurationError(f"bcrypt rounds must be between 4 and 31, got {rounds}")
        self.rounds = rounds

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of plain.

        Inputs longer than 72 bytes are truncated by bcrypt itself; remember-me
        tokens are UUIDs and stay well below that.
        """
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def check(self, plain: str, hashed: str) -> bool:
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            # Not a bcrypt hash (e.g. a legacy digest) -- never a match here.
            return False

    def needs_rehash(self, hashed: str) -> bool:
        if not hashed or not hashed.startswith(self._PREFIXES):
            return True
        try:
            cost = int(hashed.split("$")[2])
        except (IndexError, ValueError):
            return True
        return cost != self.rounds


class WeakPasswordHasher(PasswordHasher):
    """Salted single-pass digest, kept only to verify legacy hashes.

    hash = hexdigest(salt + plain). Comparison is constant time. Every hash
    produced or verified here reports needs_rehash() so it gets replaced.
    """

    def __init__(self, crypto: CryptoContext, algorithm: str = "sha1") -> None:
        if algorithm not in hashlib.algorithms_available:
            raise ConfigurationError(f"Unknown hash algorithm: {algorithm!r}")
        self._salt = crypto.salt
        self.algorithm = algorithm

    def hash(self, plain: str) -> str:
        digest = hashlib.new(self.algorithm)
        digest.update(f"{self._salt}{plain}".encode("utf-8"))
        return digest.hexdigest()

    def check(self, plain: str, hashed: str) -> bool:
        if not hashed:
            return False
        return hmac.compare_digest(self.hash(plain), hashed)

    def needs_rehash(self, hashed: str) -> bool:
        return True


class FallbackPasswordHasher(PasswordHasher):
    """Try several hashers in order; the first one is the current scheme.

    Lets a deployment move from legacy digests to bcrypt without a forced
    password reset: old hashes still verify, and needs_rehash() flags them.
    """

    def __init__(self, hashers: Iterable[PasswordHasher]) -> None:
        self.hashers = list(hashers)
        if not self.hashers:
            raise ConfigurationError("FallbackPasswordHasher needs at least one hasher.")

    def hash(self, plain: str) -> str:
        return self.hashers[0].hash(plain)

    def check(self, plain: str, hashed: str) -> bool:
        for hasher in self.hashers:
            if hasher.check(plain, hashed):
                return True
        return False

    def needs_rehash(self, hashed: str) -> bool:
        return self.hashers[0].needs_rehash(hashed)

    def check_dummy(self, plain: str) -> None:
        for hasher in self.hashers:
            hasher.check_dummy(plain)


_HASHERS = {
    "bcrypt": BcryptHasher,
    "weak": WeakPasswordHasher,
}


def build_hasher(spec: str | dict | PasswordHasher | None, crypto: CryptoContext | None = None) -> PasswordHasher:
    """Resolve a hasher from a name, an options dict, or an instance.

    Accepted forms:
        None                                  -> BcryptHasher()
        "bcrypt" / "weak"                     -> that hasher with defaults
        {"className": "bcrypt", "rounds": 10} -> that hasher with options
        {"className": "fallback", "hashers": ["bcrypt", "weak"]}
    """
    if spec is None:
        return BcryptHasher()
    if isinstance(spec, PasswordHasher):
        return spec
    if isinstance(spec, str):
        spec = {"className": spec}
    if not isinstance(spec, dict):
        raise ConfigurationError(f"Invalid passwordHasher option: {spec!r}")

    options = dict(spec)
    name = options.pop("className", "bcrypt")
    if name == "fallback":
        return FallbackPasswordHasher(build_hasher(h, crypto) for h in options.get("hashers", []))
    hasher_cls = _HASHERS.get(name)
    if hasher_cls is None:
        raise ConfigurationError(f"Unknown password hasher: {name!r}")
    if hasher_cls is WeakPasswordHasher:
        if crypto is None:
            raise ConfigurationError("WeakPasswordHasher requires a CryptoContext.")
        options["crypto"] = crypto
    try:
        return hasher_cls(**options)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid options for {name!r} hasher: {exc}") from exc
