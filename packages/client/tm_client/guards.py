"""
Navigation guard policies.

Each guard answers whether a screen may be entered: ``True`` to proceed, or
the path to redirect to.
"""

from __future__ import annotations

from typing import Optional, Union

from .session import SessionStore
from .tokens import TokenManager

LOGIN_PATH = "/auth/login"
HOME_PATH = "/app/tasks"

GuardResult = Union[bool, str]


async def auth_guard(store: SessionStore, tokens: TokenManager) -> GuardResult:
    if store.is_authenticated():
        return True
    if await tokens.initialize_from_storage():
        return True
    return LOGIN_PATH


async def no_auth_guard(store: SessionStore, tokens: TokenManager) -> GuardResult:
    if store.is_authenticated():
        return HOME_PATH
    if await tokens.initialize_from_storage():
        return HOME_PATH
    return True


def owner_guard(store: SessionStore) -> GuardResult:
    return True if store.is_owner() else HOME_PATH


def admin_or_owner_guard(store: SessionStore) -> GuardResult:
    if store.is_owner() or store.is_admin_anywhere():
        return True
    return HOME_PATH


def department_admin_guard(store: SessionStore, department_id: Optional[str]) -> GuardResult:
    if department_id and store.is_admin_in_department(department_id):
        return True
    return HOME_PATH
