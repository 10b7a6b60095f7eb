# user storage: one interface, a sqlite implementation and a process-local one
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from werkzeug.security import generate_password_hash, check_password_hash

from .config import OMNITOKENS_BASELINE, OMNICOINS_BASELINE
from .database import Database, utcnow, to_db_time, from_db_time
from .errors import ConflictError, PersistenceError
from .models import Permissions, UserRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

# fn receives the current record and returns the record to store plus a result
CreditMutation = Callable[[UserRecord], Tuple[UserRecord, T]]


def hash_password(password: str) -> str:
    """Salted hash string; the method and salt travel inside it"""
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return check_password_hash(password_hash, password)


def new_user_record(
    username: str,
    email: str,
    password: str,
    permissions: Optional[Permissions] = None,
    now: Optional[datetime] = None
) -> UserRecord:
    """Create a record with baseline credits and a hashed password"""
    now = now or utcnow()
    return UserRecord(
        username=username,
        email=email,
        password_hash=hash_password(password),
        permissions=permissions or Permissions(),
        omnitokens=OMNITOKENS_BASELINE,
        omnicoins=OMNICOINS_BASELINE,
        last_reset=now,
        created_at=now,
    )


class UserRepository(ABC):
    """Storage interface for identities and their credit counters"""

    @abstractmethod
    def add(self, user: UserRecord) -> UserRecord:
        """Insert a new user; raises ConflictError if the username exists"""

    @abstractmethod
    def get(self, username: str) -> Optional[UserRecord]:
        ...

    @abstractmethod
    def list(self) -> List[UserRecord]:
        ...

    @abstractmethod
    def update_permissions(self, username: str, changes: Dict) -> bool:
        """Merge changes into the stored permissions; False if unknown user"""

    @abstractmethod
    def mutate_credits(self, username: str, fn: CreditMutation) -> Optional[T]:
        """Atomically read, transform and write one user's credit fields.

        Returns fn's result, or None when the user does not exist. Concurrent
        calls for the same username never interleave.
        """


# sqlite-backed users
class SQLiteUserRepository(UserRepository):
    def __init__(self, database: Database):
        self.database = database

    @staticmethod
    def _row_to_record(row) -> UserRecord:
        return UserRecord(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            password_hash=row["password_hash"],
            permissions=Permissions.from_raw(row["permissions"]),
            omnitokens=row["omnitokens"],
            omnicoins=row["omnicoins"],
            last_reset=from_db_time(row["last_reset"]),
            created_at=from_db_time(row["created_at"]),
        )

    def add(self, user: UserRecord) -> UserRecord:
        try:
            with self.database.transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO users (username, email, password_hash, permissions,
                                       omnitokens, omnicoins, last_reset, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user.username,
                        user.email,
                        user.password_hash,
                        user.permissions.to_json(),
                        user.omnitokens,
                        user.omnicoins,
                        to_db_time(user.last_reset),
                        to_db_time(user.created_at or utcnow()),
                    ),
                )
                user_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise ConflictError(f"user '{user.username}' already exists", cause=e)
        return user.model_copy(update={"id": user_id})

    def get(self, username: str) -> Optional[UserRecord]:
        with self.database.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
        return self._row_to_record(row) if row else None

    def list(self) -> List[UserRecord]:
        with self.database.connect() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY username").fetchall()
        return [self._row_to_record(row) for row in rows]

    def update_permissions(self, username: str, changes: Dict) -> bool:
        with self.database.transaction() as conn:
            row = conn.execute(
                "SELECT permissions FROM users WHERE username = ?", (username,)
            ).fetchone()
            if row is None:
                return False
            merged = Permissions.from_raw(row["permissions"]).merged(changes)
            conn.execute(
                "UPDATE users SET permissions = ?, updated_at = ? WHERE username = ?",
                (merged.to_json(), to_db_time(utcnow()), username),
            )
        return True

    def mutate_credits(self, username: str, fn: CreditMutation) -> Optional[T]:
        try:
            with self.database.transaction() as conn:
                row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
                if row is None:
                    return None
                updated, result = fn(self._row_to_record(row))
                conn.execute(
                    """
                    UPDATE users SET omnitokens = ?, omnicoins = ?, last_reset = ?, updated_at = ?
                    WHERE username = ?
                    """,
                    (
                        updated.omnitokens,
                        updated.omnicoins,
                        to_db_time(updated.last_reset),
                        to_db_time(utcnow()),
                        username,
                    ),
                )
                return result
        except sqlite3.OperationalError as e:
            raise PersistenceError("could not update credits", cause=e, context={"username": username})


# process-local users, guarded by one lock per username
class InMemoryUserRepository(UserRepository):
    def __init__(self):
        self._users: Dict[str, UserRecord] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()
        self._next_id = 1

    def _user_lock(self, username: str) -> threading.Lock:
        with self._lock:
            lock = self._locks.get(username)
            if lock is None:
                lock = self._locks[username] = threading.Lock()
            return lock

    def add(self, user: UserRecord) -> UserRecord:
        with self._lock:
            if user.username in self._users:
                raise ConflictError(f"user '{user.username}' already exists")
            stored = user.model_copy(deep=True, update={"id": self._next_id})
            self._next_id += 1
            self._users[user.username] = stored
        return stored.model_copy(deep=True)

    def get(self, username: str) -> Optional[UserRecord]:
        with self._lock:
            user = self._users.get(username)
        return user.model_copy(deep=True) if user else None

    def list(self) -> List[UserRecord]:
        with self._lock:
            users = sorted(self._users.values(), key=lambda u: u.username)
        return [u.model_copy(deep=True) for u in users]

    def update_permissions(self, username: str, changes: Dict) -> bool:
        with self._user_lock(username):
            with self._lock:
                user = self._users.get(username)
                if user is None:
                    return False
                self._users[username] = user.model_copy(
                    update={"permissions": user.permissions.merged(changes)}
                )
        return True

    def mutate_credits(self, username: str, fn: CreditMutation) -> Optional[T]:
        with self._user_lock(username):
            with self._lock:
                user = self._users.get(username)
            if user is None:
                return None
            updated, result = fn(user.model_copy(deep=True))
            with self._lock:
                self._users[username] = self._users[username].model_copy(
                    update={
                        "omnitokens": updated.omnitokens,
                        "omnicoins": updated.omnicoins,
                        "last_reset": updated.last_reset,
                    }
                )
            return result
