"""
auth/store.py -- SQLAlchemy Core persistence layer for users and sessions.

Pattern: Repository + Data Mapper. UserStore is the repository;
_row_to_user / _row_to_session are the mappers. Services never touch SQL.

Security:
  All queries use bound parameters. Sort columns come from a fixed mapping,
  never from raw user input.

Race safety:
  UNIQUE(email) is the real guard against concurrent registrations with the
  same address. create_user() lets IntegrityError propagate so the caller
  can report a conflict even when its own existence check passed.

Sessions:
  One row per login. latest_session() is the single accessor for "the
  current session": newest created_at, ties broken by the higher id. No
  other method exposes the ordering.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, func, or_, select
from sqlalchemy.engine import Engine

from auth.models import Role, Session, User, UserStatus
from core.db import make_engine
from core.db import now_iso as _now_iso

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("full_name", String(100), nullable=False),
    Column("year_of_birth", Integer, nullable=False),
    Column("phone", String(20), nullable=False),
    Column("avatar", Text),
    Column("role", String(20), nullable=False, server_default=Role.USER.value),
    Column("status", String(20), nullable=False, server_default=UserStatus.INACTIVE.value),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("ip_address", String(45)),
    Column("device_info", Text),
    Column("created_at", String(32), nullable=False),
)

# Public sort keys (API names) -> columns.
_SORT_COLUMNS = {
    "fullName": _users.c.full_name,
    "email": _users.c.email,
    "createdAt": _users.c.created_at,
}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and Session entities.

    Usage:
        store = UserStore("sqlite:///storekeep.db")
        user_id = store.create_user(User(email="a@x.com", ...))
        store.add_session(Session(user_id=user_id, ip_address="127.0.0.1"))
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(select(1)).scalar() == 1

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    hashed_password=user.hashed_password,
                    full_name=user.full_name,
                    year_of_birth=user.year_of_birth,
                    phone=user.phone,
                    avatar=user.avatar,
                    role=Role(user.role).value,
                    status=UserStatus(user.status).value,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> Optional[User]:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> Optional[User]:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user(self, user_id: int, **fields: Any) -> bool:
        """Update columns on an existing user and stamp updated_at.

        Enum values are stored by their string value. Returns True if a row
        was updated, False if user_id was not found. Raises IntegrityError on
        an email collision.
        """
        values = {k: (v.value if isinstance(v, (Role, UserStatus)) else v) for k, v in fields.items()}
        values["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Delete a user and their sessions. Returns False if not found."""
        with self.engine.connect() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def search_users(
        self,
        *,
        search: Optional[str] = None,
        role: Optional[Role] = None,
        status: Optional[UserStatus] = None,
        offset: int = 0,
        limit: int = 10,
        sort_by: str = "createdAt",
        descending: bool = True,
    ) -> tuple[list[User], int]:
        """Return (page of users, total matching count).

        search is a case-sensitive substring match on full_name or email.
        """
        conditions = []
        if role is not None:
            conditions.append(_users.c.role == Role(role).value)
        if status is not None:
            conditions.append(_users.c.status == UserStatus(status).value)
        if search:
            conditions.append(
                or_(
                    self._contains_exact_case(_users.c.full_name, search),
                    self._contains_exact_case(_users.c.email, search),
                )
            )

        column = _SORT_COLUMNS.get(sort_by, _users.c.created_at)
        order = column.desc() if descending else column.asc()

        page_query = _users.select().where(*conditions).order_by(order, _users.c.id).offset(offset).limit(limit)
        count_query = select(func.count()).select_from(_users).where(*conditions)
        with self.engine.connect() as conn:
            rows = conn.execute(page_query).fetchall()
            total = conn.execute(count_query).scalar() or 0
        return [_row_to_user(r) for r in rows], total

    def _contains_exact_case(self, column, term: str):
        # SQLite's LIKE ignores ASCII case; instr() compares bytes.
        if self.engine.dialect.name == "sqlite":
            return func.instr(column, term) > 0
        return column.contains(term, autoescape=True)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def add_session(self, session: Session) -> Session:
        """Append a session row and return it with id and created_at filled in."""
        created_at = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.insert().values(
                    user_id=session.user_id,
                    ip_address=session.ip_address,
                    device_info=session.device_info,
                    created_at=created_at,
                )
            )
            conn.commit()
        return Session(
            id=result.inserted_primary_key[0],
            user_id=session.user_id,
            ip_address=session.ip_address,
            device_info=session.device_info,
            created_at=created_at,
        )

    def latest_session(self, user_id: int) -> Optional[Session]:
        """Return the most recently created session for a user, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _sessions.select()
                .where(_sessions.c.user_id == user_id)
                .order_by(_sessions.c.created_at.desc(), _sessions.c.id.desc())
                .limit(1)
            ).fetchone()
        return _row_to_session(row) if row is not None else None

    def delete_session(self, session_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        full_name=row.full_name,
        year_of_birth=row.year_of_birth,
        phone=row.phone,
        avatar=row.avatar,
        role=Role(row.role),
        status=UserStatus(row.status),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        ip_address=row.ip_address,
        device_info=row.device_info,
        created_at=row.created_at,
    )
