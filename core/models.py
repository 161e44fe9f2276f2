"""
core/models.py -- Domain dataclasses for accounts, sessions and OTP flows.

Pattern: Data class (pure data container). Serialization helpers live next to
the shape they serialize; stores and flows do the work.

Wire format: the backend speaks camelCase JSON. to_dict()/from_dict() are the
only places that know the key names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Role(str, Enum):
    ADMIN = "ADMIN"
    RECRUITER = "RECRUITER"
    RECRUITER_PENDING = "RECRUITER_PENDING"
    JOB_SEEKER = "JOB_SEEKER"


class ResetStep(str, Enum):
    EMAIL = "email"
    OTP = "otp"
    PASSWORD = "password"


def normalize_email(email: str) -> str:
    """Emails are case-insensitive; the backend stores them lowercase."""
    return email.strip().lower()


def _role_name(entry: Any) -> str:
    # The backend sends role objects ({"roleName": ...}); cached copies may be plain strings.
    if isinstance(entry, dict):
        name = entry.get("roleName")
    else:
        name = entry
    if not isinstance(name, str) or not name:
        raise ValueError(f"Invalid role entry: {entry!r}")
    return name


@dataclass
class Account:
    """Read-only client copy of a backend account.

    roles keeps the backend's order and may contain names the client does not
    know; unknown names grant no access.
    """

    account_id: str
    email: str
    roles: list[str] = field(default_factory=list)
    status: Optional[str] = None
    created_at: Optional[str] = None
    avatar_url: Optional[str] = None

    def has_role(self, role: Role) -> bool:
        return role.value in self.roles

    def to_dict(self) -> dict[str, Any]:
        return {
            "accountId": self.account_id,
            "email": self.email,
            "roles": list(self.roles),
            "status": self.status,
            "createdAt": self.created_at,
            "avatarUrl": self.avatar_url,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Account":
        """Build an Account from a backend payload or a stored record.

        The client keeps whatever profile fields the backend sent; only a
        non-object payload or a malformed roles list raises ValueError, so
        callers can treat such a record exactly like a missing one.
        """
        if not isinstance(data, dict):
            raise ValueError("Account payload must be an object")
        roles = data.get("roles") or []
        if not isinstance(roles, list):
            raise ValueError("Account roles must be a list")
        email = data.get("email")
        account_id = data.get("accountId", data.get("id"))
        return cls(
            account_id="" if account_id is None else str(account_id),
            email=email if isinstance(email, str) else "",
            roles=[_role_name(r) for r in roles],
            status=data.get("status"),
            created_at=data.get("createdAt"),
            avatar_url=data.get("avatarUrl"),
        )


@dataclass
class LoginResult:
    """Successful login/google-login response.

    set_cookie_headers holds the backend's raw Set-Cookie values (the refresh
    cookie). Only the edge server relays them; they are never persisted.
    """

    account: Account
    access_token: str
    set_cookie_headers: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class StoredSession:
    account: Account
    access_token: str


@dataclass
class OtpFlowState:
    """Password-reset progress persisted across reloads."""

    email: str = ""
    step: ResetStep = ResetStep.EMAIL

    def to_dict(self) -> dict[str, str]:
        return {"email": self.email, "step": self.step.value}

    @classmethod
    def from_dict(cls, data: Any) -> "OtpFlowState":
        if not isinstance(data, dict):
            raise ValueError("Flow state must be an object")
        email = data.get("email", "")
        if not isinstance(email, str):
            raise ValueError("Flow state email must be a string")
        return cls(email=email, step=ResetStep(data.get("step")))
