"""
api/guard.py -- Edge route guard decision.

Runs ahead of every page request. For a path under a protected prefix it only
checks that the refresh-session cookie is present; it performs no token
validation and no role check. Role decisions happen client-side after
hydration (auth/roles.py), because only then is the account payload available.

A prefix matches the path itself and anything nested below it:
"/admin" protects "/admin" and "/admin/x", not "/administrator".
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Optional

from auth.roles import login_redirect


def is_protected(path: str, prefixes: Iterable[str]) -> bool:
    for prefix in prefixes:
        prefix = prefix.rstrip("/")
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


def guard_redirect(
    path: str,
    cookies: Mapping[str, str],
    *,
    prefixes: Iterable[str],
    cookie_name: str,
    login_path: str = "/login",
) -> Optional[str]:
    """Return the login redirect for an unauthenticated protected request, else None."""
    if not is_protected(path, prefixes):
        return None
    if cookies.get(cookie_name):
        return None
    return login_redirect(path, login_path)
