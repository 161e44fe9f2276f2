"""
auth/roles.py -- Role resolver: the single place of truth for access decisions.

Every function here is pure, total and deterministic: no I/O, no exceptions for
any input. Callers (login redirect, role-gated pages, the edge server's Google
callback, the CLI) never check role lists themselves.

Areas and the roles that open them:
  /admin         -> ADMIN
  /recruiter     -> RECRUITER or RECRUITER_PENDING
  /job-seeker    -> JOB_SEEKER
Any other same-origin path carries no role requirement.

Area matching is a plain prefix test, so "/admin-tools" is treated as admin
area too. That only ever makes a path stricter.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional
from urllib.parse import urlencode

from core.models import Account, Role

if TYPE_CHECKING:
    from auth.session import SessionState

HOME_PATH = "/"
ADMIN_DASHBOARD_PATH = "/admin/dashboard"
RECRUITER_DASHBOARD_PATH = "/recruiter/dashboard"
JOB_SEEKER_DASHBOARD_PATH = "/job-seeker/dashboard"

_AREA_ROLES: tuple[tuple[str, frozenset[str]], ...] = (
    ("/admin", frozenset({Role.ADMIN.value})),
    ("/recruiter", frozenset({Role.RECRUITER.value, Role.RECRUITER_PENDING.value})),
    ("/job-seeker", frozenset({Role.JOB_SEEKER.value})),
)


def _role_names(roles: Optional[Iterable[object]]) -> set[str]:
    names: set[str] = set()
    for r in roles or ():
        names.add(r.value if isinstance(r, Role) else str(r))
    return names


def account_roles(account: Optional[Account]) -> list[str]:
    """Role names of an account in backend order; empty for no account."""
    if account is None:
        return []
    return list(account.roles)


def default_landing_path(roles: Optional[Iterable[object]]) -> str:
    """Dashboard a user lands on after login when no deep link applies."""
    names = _role_names(roles)
    if Role.ADMIN.value in names:
        return ADMIN_DASHBOARD_PATH
    if Role.RECRUITER.value in names or Role.RECRUITER_PENDING.value in names:
        return RECRUITER_DASHBOARD_PATH
    if Role.JOB_SEEKER.value in names:
        return JOB_SEEKER_DASHBOARD_PATH
    return HOME_PATH


def is_safe_next(path: object) -> bool:
    """True for a same-origin absolute path.

    Rejects scheme-relative ("//evil.com") targets, and "/\\evil.com", which
    browsers normalize to the same thing.
    """
    return (
        isinstance(path, str)
        and path.startswith("/")
        and not path.startswith("//")
        and not path.startswith("/\\")
    )


def required_roles(path: str) -> Optional[frozenset[str]]:
    """Roles that open the area containing path; None when no area matches."""
    for prefix, roles in _AREA_ROLES:
        if path.startswith(prefix):
            return roles
    return None


def can_access(roles: Optional[Iterable[object]], path: str) -> bool:
    needed = required_roles(path)
    if needed is None:
        return True
    return bool(needed & _role_names(roles))


def resolve_redirect(account: Optional[Account], next_path: object) -> str:
    """Where to send a user right after login.

    The captured deep link wins when it is same-origin and the account's roles
    open its area; otherwise the user lands on their default dashboard.
    """
    roles = account_roles(account)
    if is_safe_next(next_path) and can_access(roles, next_path):  # type: ignore[arg-type]
        return next_path  # type: ignore[return-value]
    return default_landing_path(roles)


def login_redirect(next_path: str, login_path: str = "/login") -> str:
    """Login URL carrying the originally requested path as ?next=."""
    return f"{login_path}?{urlencode({'next': next_path})}"


# ---------------------------------------------------------------------------
# Role-gated page decisions
# ---------------------------------------------------------------------------


class Access(str, Enum):
    PENDING = "pending"  # hydration still running -- render a skeleton, not content
    ALLOWED = "allowed"
    DENIED = "denied"


@dataclass(frozen=True)
class AccessDecision:
    access: Access
    redirect: Optional[str] = None


def evaluate_access(state: "SessionState", path: str, login_path: str = "/login") -> AccessDecision:
    """Decide what a role-gated page at path may render for this session state.

    PENDING while the session is loading, so nothing protected renders and the
    page does not flash a denial. Unauthenticated users are sent to login with
    the path preserved; authenticated users without the area role go to their
    own dashboard.
    """
    if state.is_loading:
        return AccessDecision(Access.PENDING)
    if not state.is_authenticated:
        return AccessDecision(Access.DENIED, login_redirect(path, login_path))
    if not can_access(state.roles, path):
        return AccessDecision(Access.DENIED, default_landing_path(state.roles))
    return AccessDecision(Access.ALLOWED)
