"""
auth/login.py -- Login submission: the call site that classifies login failures.

sign_in() and sign_in_with_google() never raise for backend failures. They
return a LoginOutcome carrying either the post-login redirect (decided by the
role resolver, honoring a captured ?next=) or a Notice for the user. The form
stays editable and no state changes on failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from auth.errors import ErrorKind, Notice, classify, describe
from auth.roles import resolve_redirect
from auth.session import SessionManager
from core.backend import ApiError
from core.models import Account

logger = logging.getLogger("jobhub.auth.login")

_FAILED_TITLE = "Login failed"


@dataclass(frozen=True)
class LoginOutcome:
    ok: bool
    notice: Notice
    account: Optional[Account] = None
    redirect: Optional[str] = None


def _failure(error: ApiError) -> LoginOutcome:
    kind = classify(error)
    if kind is ErrorKind.INVALID_CREDENTIALS:
        message = error.message or "Invalid email or password."
    else:
        message = describe(error)
    logger.info("Login rejected (%s): %s", kind.value, error.code)
    return LoginOutcome(ok=False, notice=Notice.error(_FAILED_TITLE, message))


def _success(account: Account, next_path: Optional[str]) -> LoginOutcome:
    return LoginOutcome(
        ok=True,
        notice=Notice.success("Logged in", "Welcome back."),
        account=account,
        redirect=resolve_redirect(account, next_path),
    )


async def sign_in(session: SessionManager, email: str, password: str, next_path: Optional[str] = None) -> LoginOutcome:
    try:
        account = await session.login(email, password)
    except ApiError as e:
        return _failure(e)
    return _success(account, next_path)


async def sign_in_with_google(
    session: SessionManager, credential: Optional[str], next_path: Optional[str] = None
) -> LoginOutcome:
    """Complete a Google sign-in with the credential string the identity SDK delivered."""
    if not credential:
        return LoginOutcome(ok=False, notice=Notice.error(_FAILED_TITLE, "No token was received from Google."))
    try:
        account = await session.google_login(credential)
    except ApiError as e:
        return _failure(e)
    return _success(account, next_path)
