"""
auth/config.py -- Immutable configuration for the remember-me authenticator.

Pattern: Value Object. AuthConfig is a frozen pydantic model built once per
authenticator. Option keys follow the names deployments already use
("fields", "userModel", "tokenCreated", ...) through aliases, while the Python
attributes are snake_case.

Field names are resolved into FieldMap attributes at construction so the
request path never looks configuration up by string.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from auth.durations import parse_duration
from auth.errors import ConfigurationError

DEFAULT_COOKIE_NAME = "RememberMe"
DEFAULT_COOKIE_EXPIRES = "+2 weeks"
DEFAULT_SESSION_KEY = "Auth.User"


class CookieOptions(BaseModel):
    """Name, lifetime and transport flags of the remember-me cookie.

    Everything except ``name`` is handed to the cookie store via
    CookieStore.configure(); this package only interprets ``expires``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    name: str = Field(default=DEFAULT_COOKIE_NAME, min_length=1)
    expires: timedelta = Field(default_factory=lambda: parse_duration(DEFAULT_COOKIE_EXPIRES))
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    http_only: bool = Field(default=True, alias="httpOnly")
    same_site: str = Field(default="lax", alias="sameSite")

    @field_validator("expires", mode="before")
    @classmethod
    def coerce_expires(cls, value: Any) -> timedelta:
        return parse_duration(value)

    def store_options(self, crypt: str) -> dict[str, Any]:
        """Options passed to CookieStore.configure() (everything but the name)."""
        return {
            "expires": self.expires,
            "path": self.path,
            "domain": self.domain,
            "secure": self.secure,
            "http_only": self.http_only,
            "same_site": self.same_site,
            "crypt": crypt,
        }


class FieldMap(BaseModel):
    """Which payload/record fields hold the identifier and the secret."""

    model_config = ConfigDict(frozen=True)

    username: str = Field(default="username", min_length=1)
    password: str = Field(default="password", min_length=1)


class AuthConfig(BaseModel):
    """Configuration for one CookieAuthenticator instance.

    token_max_age is the freshness tolerance applied to ``token_created``.
    When it is None the cookie's own ``expires`` is reused, which ties "how
    long the browser keeps the cookie" to "how long the server trusts the
    token". Set token_max_age explicitly when those should differ.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    cookie: CookieOptions = Field(default_factory=CookieOptions)
    field_map: FieldMap = Field(default_factory=FieldMap, alias="fields")
    user_model: str = Field(default="users", alias="userModel", min_length=1)
    scope: dict[str, Any] = Field(default_factory=dict)
    contain: list[str] | None = None
    token_created: str | None = Field(default=None, alias="tokenCreated")
    token_max_age: timedelta | None = Field(default=None, alias="tokenMaxAge")
    password_required: bool = Field(default=True, alias="passwordRequired")
    # Columns never returned in a principal, on top of the secret field.
    hidden: tuple[str, ...] = ("password",)
    crypt: Literal["aes", "sign"] = "aes"
    session_key: str = Field(default=DEFAULT_SESSION_KEY, alias="sessionKey", min_length=1)

    @model_validator(mode="before")
    @classmethod
    def lift_token_created(cls, data: Any) -> Any:
        """Accept ``fields.tokenCreated`` as well as top-level ``tokenCreated``.

        Older configurations nest the timestamp column with the other field
        names. A top-level value wins when both are given.
        """
        if not isinstance(data, Mapping):
            return data
        fields = data.get("fields")
        if isinstance(fields, Mapping) and "tokenCreated" in fields:
            data = dict(data)
            nested = dict(fields)
            token_created = nested.pop("tokenCreated")
            data["fields"] = nested
            if not data.get("tokenCreated") and not data.get("token_created"):
                data["tokenCreated"] = token_created
        return data

    @field_validator("token_max_age", mode="before")
    @classmethod
    def coerce_token_max_age(cls, value: Any) -> timedelta | None:
        if value is None or value == "":
            return None
        return parse_duration(value)

    @field_validator("token_created", mode="before")
    @classmethod
    def empty_token_created_is_none(cls, value: Any) -> Any:
        return value or None

    @property
    def model_name(self) -> str:
        """Table name without any plugin/namespace prefix ("Plugin.users" -> "users")."""
        return self.user_model.rsplit(".", 1)[-1]

    @property
    def username_field(self) -> str:
        return self.field_map.username

    @property
    def password_field(self) -> str:
        return self.field_map.password

    @property
    def expiration_window(self) -> timedelta:
        """Maximum accepted age of the remember-me token."""
        return self.token_max_age if self.token_max_age is not None else self.cookie.expires

    def scope_conditions(self) -> dict[str, Any]:
        """Scope constraints with any "<model>." qualifier stripped from the keys."""
        prefix = f"{self.model_name}."
        conditions: dict[str, Any] = {}
        for key, value in self.scope.items():
            column = key[len(prefix) :] if key.lower().startswith(prefix.lower()) else key
            conditions[column] = value
        return conditions

    @classmethod
    def from_options(cls, options: Mapping[str, Any] | None = None) -> "AuthConfig":
        """Build an AuthConfig from a plain options mapping.

        Raises ConfigurationError (never pydantic.ValidationError) so callers
        handle one exception type for every wiring fault.
        """
        try:
            return cls.model_validate(dict(options or {}))
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid remember-me configuration: {exc}") from exc
