from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from retail_pos.auth import Principal
from retail_pos.models import User, UserRole, utcnow
from retail_pos.security.passwords import verify_password
from retail_pos.services.sort_utils import matches_query, normalize_sort_text

INVALID_CREDENTIALS_MESSAGE = 'Invalid username or password'
MANAGER_ROLES = frozenset(
    {UserRole.ADMIN, UserRole.STORE_MANAGER, UserRole.ASSISTANT_MANAGER, UserRole.DEPARTMENT_MANAGER}
)
RECENT_LOGIN_WINDOW = timedelta(days=7)


class StaffSort(str, Enum):
    NAME = 'name'
    ROLE = 'role'
    DEPARTMENT = 'department'
    LAST_LOGIN = 'last_login'


@dataclass(frozen=True)
class StaffStats:
    total_staff: int
    active_staff: int
    inactive_staff: int
    managers: int
    recent_logins: int


@dataclass(frozen=True)
class AuthenticationOutcome:
    principal: Principal | None
    failure_reason: str | None = None
    user_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.principal is not None


class UserDirectory:
    """Static set of staff accounts, looked up by username."""

    def __init__(self, users: list[User] | None = None) -> None:
        self._by_username: dict[str, User] = {}
        self._by_id: dict[str, User] = {}
        for user in users or []:
            self.add(user)

    def add(self, user: User) -> None:
        self._by_username[user.username] = user
        self._by_id[user.id] = user

    def get(self, user_id: str) -> User | None:
        return self._by_id.get(user_id)

    def get_by_username(self, username: str) -> User | None:
        return self._by_username.get(username)

    def authenticate(self, username: str, password: str) -> AuthenticationOutcome:
        """Check credentials.

        Callers must show every failure the same way; ``failure_reason`` is only
        for the audit trail.
        """
        user = self.get_by_username(username.strip())
        if user is None:
            verify_password(password, None)
            return AuthenticationOutcome(principal=None, failure_reason='UNKNOWN_USERNAME')
        if not user.is_active:
            verify_password(password, None)
            return AuthenticationOutcome(principal=None, failure_reason='INACTIVE_PRINCIPAL', user_id=user.id)
        if not verify_password(password, user.password_hash):
            return AuthenticationOutcome(principal=None, failure_reason='BAD_PASSWORD', user_id=user.id)

        user.last_login = utcnow()
        return AuthenticationOutcome(principal=Principal.from_user(user), user_id=user.id)

    def principal_for(self, user_id: str) -> Principal | None:
        user = self._by_id.get(user_id)
        if user is None:
            return None
        return Principal.from_user(user)

    def list_all(self) -> list[User]:
        return list(self._by_id.values())

    def search(
        self,
        query: str | None = None,
        *,
        role: UserRole | None = None,
        department: str | None = None,
        active: bool | None = None,
        sort_by: StaffSort = StaffSort.NAME,
    ) -> list[User]:
        rows = [
            user
            for user in self._by_id.values()
            if matches_query(query, (user.first_name, user.last_name, user.email, user.username))
            and (role is None or user.role == role)
            and (department is None or normalize_sort_text(user.department) == normalize_sort_text(department))
            and (active is None or user.is_active == active)
        ]
        return sort_staff(rows, sort_by)


def sort_staff(users: list[User], sort_by: StaffSort) -> list[User]:
    if sort_by == StaffSort.ROLE:
        return sorted(users, key=lambda user: (user.role.value, normalize_sort_text(user.full_name)))
    if sort_by == StaffSort.DEPARTMENT:
        return sorted(
            users,
            key=lambda user: (normalize_sort_text(user.department), normalize_sort_text(user.full_name)),
        )
    if sort_by == StaffSort.LAST_LOGIN:
        # Most recent first; staff who never signed in go last.
        signed_in = sorted((user for user in users if user.last_login), key=lambda user: user.last_login, reverse=True)
        return signed_in + [user for user in users if not user.last_login]
    return sorted(users, key=lambda user: normalize_sort_text(user.full_name))


def staff_stats(users: list[User], now: datetime | None = None) -> StaffStats:
    since = (now or utcnow()) - RECENT_LOGIN_WINDOW
    active = sum(1 for user in users if user.is_active)
    return StaffStats(
        total_staff=len(users),
        active_staff=active,
        inactive_staff=len(users) - active,
        managers=sum(1 for user in users if user.role in MANAGER_ROLES),
        recent_logins=sum(1 for user in users if user.last_login is not None and user.last_login >= since),
    )
