"""
Session state store.

A single reactive snapshot of the authenticated identity: the user, their
role rows, the current credential pair, and UI flags. Identity, roles and
tokens change only through ``set_auth_response``, ``set_tokens``,
``set_error`` and ``clear_auth``; ``set_loading`` touches nothing but the
loading flag.
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional

import structlog
from pydantic import BaseModel, ConfigDict

from taskmanager_shared.schemas.auth import AuthTokens
from taskmanager_shared.schemas.common import Role
from taskmanager_shared.schemas.users import UserResponse, UserRoleResponse

log = structlog.get_logger()

Listener = Callable[["SessionState"], None]


class SessionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: Optional[UserResponse] = None
    roles: tuple[UserRoleResponse, ...] = ()
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    is_loading: bool = False
    error: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)


class SessionStore:
    def __init__(self) -> None:
        self._state = SessionState()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> Optional[UserResponse]:
        return self._state.user

    @property
    def roles(self) -> tuple[UserRoleResponse, ...]:
        return self._state.roles

    @property
    def access_token(self) -> Optional[str]:
        return self._state.access_token

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called with each new snapshot. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _update(self, **changes) -> None:
        self._publish(self._state.model_copy(update=changes))

    def _publish(self, state: SessionState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as exc:
                log.error("session.listener_error", error=str(exc))

    # --- Mutators ---

    def set_auth_response(
        self, user: UserResponse, roles: Iterable[UserRoleResponse], tokens: AuthTokens
    ) -> None:
        self._update(
            user=user,
            roles=tuple(roles),
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            error=None,
        )

    def set_tokens(self, tokens: AuthTokens) -> None:
        self._update(access_token=tokens.access_token, refresh_token=tokens.refresh_token)

    def set_loading(self, is_loading: bool) -> None:
        self._update(is_loading=is_loading)

    def set_error(self, error: Optional[str]) -> None:
        self._update(error=error)

    def clear_auth(self) -> None:
        self._publish(SessionState())

    # --- Queries ---

    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    def is_owner(self) -> bool:
        return bool(self._state.user and self._state.user.is_owner)

    def current_user_name(self) -> Optional[str]:
        user = self._state.user
        return user.full_name if user else None

    def role_in_department(self, department_id: str) -> Optional[Role]:
        """The role held in ``department_id``. None for an owner, who bypasses roles."""
        if self.is_owner():
            return None
        for grant in self._state.roles:
            if grant.department_id == department_id:
                return grant.role
        return None

    def is_admin_in_department(self, department_id: str) -> bool:
        if self.is_owner():
            return True
        return self.role_in_department(department_id) == Role.ADMIN

    def is_viewer_in_department(self, department_id: str) -> bool:
        return self.role_in_department(department_id) == Role.VIEWER

    def has_access_to_department(self, department_id: str) -> bool:
        if self.is_owner():
            return True
        return self.role_in_department(department_id) is not None

    def is_admin_anywhere(self) -> bool:
        return any(grant.role == Role.ADMIN for grant in self._state.roles)
