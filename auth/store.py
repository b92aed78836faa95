"""
auth/store.py -- SQLAlchemy Core user store for the remember-me authenticator.

Pattern: Repository + Data Mapper. SqlUserStore is the repository; rows come
back as plain dicts (Principal) because the authenticator can be pointed at
any table through its userModel option.

The default ``users`` table is declared here and created on startup. Any
other table named by userModel or contain is reflected from the database on
first use, so existing schemas work without declaring them.

Security:
  All queries use bound parameters. Column names come from configuration and
  are checked against the table's reflected columns before any SQL is built;
  an unknown column is a ConfigurationError, never raw SQL.

DB URL: core.config.Settings.database_url (sqlite file next to the project
by default).

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Protocol

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, Text, and_, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError

from auth.errors import ConfigurationError
from auth.models import Principal, User


class UserStore(Protocol):
    """What the authenticator needs from a user persistence layer."""

    def find_one(
        self,
        model: str,
        conditions: Mapping[str, Any] | Iterable[tuple[str, Any]],
        contain: Iterable[str] | None = None,
    ) -> Principal | None: ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_name", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False),
    Column("password", Text),  # hash; NULL for token-only accounts
    Column("token", String(255)),
    Column("created", String(32), nullable=False),
    Column("updated", String(32), nullable=False),
    Column("uuid", String(36)),
    Column("remember_me_token", Text),  # hash of the cookie token
    Column("remember_me_token_created", String(32)),  # ISO 8601, UTC
    Column("active", Boolean, nullable=False, server_default="1"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    return value


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SqlUserStore:
    """Repository for principal records.

    Usage:
        store = SqlUserStore("sqlite:///users.db")
        store.create_user(User(user_name="mariano", email="m@example.com", password=hasher.hash("secret")))
        record = store.find_one("users", {"user_name": "mariano", "active": True})
        store.close()
    """

    def __init__(self, db_url: str, foreign_key: str = "user_id") -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self.foreign_key = foreign_key
        # Tables outside the declared schema are reflected here, per store,
        # so two stores on different databases never share reflected state.
        self._reflected = MetaData()

    def _table(self, name: str) -> Table:
        if name in _metadata.tables:
            return _metadata.tables[name]
        if name in self._reflected.tables:
            return self._reflected.tables[name]
        try:
            return Table(name, self._reflected, autoload_with=self.engine)
        except NoSuchTableError as exc:
            raise ConfigurationError(f"Unknown user model table {name!r}") from exc

    @staticmethod
    def _column(table: Table, name: str):
        if name not in table.c:
            raise ConfigurationError(f"Table {table.name!r} has no column {name!r}")
        return table.c[name]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_one(
        self,
        model: str,
        conditions: Mapping[str, Any] | Iterable[tuple[str, Any]],
        contain: Iterable[str] | None = None,
    ) -> Principal | None:
        """Return the first record of model matching every condition, or None.

        Conditions are column -> value equality constraints (a mapping or
        (column, value) pairs), all ANDed. The same column may appear twice. No
        ordering is applied: the first row the database returns wins.

        contain lists related tables to load. Each is queried for rows whose
        foreign key column equals the record's id and attached under the
        table's name as a list of dicts.
        """
        pairs = list(conditions.items() if isinstance(conditions, Mapping) else conditions)
        if not pairs:
            raise ConfigurationError("find_one() requires at least one condition.")
        table = self._table(model)
        clauses = [self._column(table, column) == _to_db(value) for column, value in pairs]
        related = [(name, self._table(name)) for name in (contain or [])]

        with self.engine.connect() as conn:
            row = conn.execute(table.select().where(and_(*clauses)).limit(1)).fetchone()
            if row is None:
                return None
            record: Principal = dict(row._mapping)
            for name, rel in related:
                fk = self._column(rel, self.foreign_key)
                rows = conn.execute(rel.select().where(fk == record.get("id"))).fetchall()
                record[name] = [dict(r._mapping) for r in rows]
        return record

    def create_user(self, user: User) -> int:
        """Insert a user into the default users table and return its ID.

        Raises sqlalchemy.exc.IntegrityError if the user_name already exists.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    user_name=user.user_name,
                    email=user.email,
                    password=user.password,
                    token=user.token,
                    uuid=user.uuid,
                    remember_me_token=user.remember_me_token,
                    remember_me_token_created=_to_db(user.remember_me_token_created),
                    created=_to_db(user.created) or now,
                    updated=_to_db(user.updated) or now,
                    active=user.active,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update columns on an existing user. Returns False if user_id was not found."""
        for name in fields:
            self._column(_users, name)
        values = {name: _to_db(value) for name, value in fields.items()}
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()
