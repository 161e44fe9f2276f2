"""
core/backend.py -- Async client for the JobHub REST backend.

Every backend response uses the envelope {code, status, message, data}. A code
outside 2xx is turned into ApiError carrying the backend's structured status
(e.g. "INVALID_OTP", "OTP_NOT_VERIFIED", "RESOURCE_ALREADY_EXISTS") so callers
can classify failures without parsing messages.

Transport failures (connection refused, timeouts, unparseable bodies) become
ApiError(500, "CLIENT_ERROR", ...). ApiError is the only exception this module
raises.

The refresh token travels only as a cookie: the client's cookie jar sends it
back on refresh/logout, and it is never read here.

Layer rule: core/ is the kernel. No imports from auth/, api/, or web/.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from core.config import Settings, get_settings
from core.models import Account, LoginResult

logger = logging.getLogger("jobhub.backend")


class ApiError(Exception):
    """A failed backend call.

    status_code: envelope code (or HTTP status when no envelope was returned).
    code:        structured backend status, e.g. "INVALID_OTP".
    details:     per-field messages when the backend returned them.
    """

    def __init__(self, status_code: int, code: str, message: str, details: Optional[dict] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details

    def __repr__(self) -> str:
        return f"ApiError({self.status_code}, {self.code!r}, {self.message!r})"


def _error_message(message: Any) -> str:
    if isinstance(message, str):
        return message
    if isinstance(message, dict) and message:
        return "; ".join(str(v) for v in message.values())
    return "An unknown error occurred."


def _parse_login(data: Any, response: httpx.Response) -> LoginResult:
    if not isinstance(data, dict) or not data.get("accessToken"):
        raise ApiError(500, "INTERNAL_ERROR", "Login response did not contain data.")
    try:
        account = Account.from_dict(data.get("account"))
    except ValueError as e:
        raise ApiError(500, "INTERNAL_ERROR", f"Login response contained an invalid account: {e}") from e
    return LoginResult(
        account=account,
        access_token=str(data["accessToken"]),
        set_cookie_headers=response.headers.get_list("set-cookie"),
    )


class BackendClient:
    """Thin async wrapper over the auth endpoints.

    Usage:
        async with BackendClient() as backend:
            result = await backend.login("a@b.com", "Secret1!")

    transport is injectable so tests can plug in httpx.MockTransport.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        cfg = settings or get_settings()
        self._client = httpx.AsyncClient(
            base_url=cfg.backend_base_url.rstrip("/"),
            timeout=cfg.backend_timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        access_token: Optional[str] = None,
        params: Optional[dict] = None,
    ) -> tuple[Any, httpx.Response]:
        """Send one request and unwrap the envelope. Returns (data, response)."""
        headers: dict[str, str] = {}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        try:
            resp = await self._client.request(method, path, json=json, headers=headers, params=params)
        except httpx.HTTPError as e:
            logger.warning("Backend %s %s failed: %s", method, path, e)
            raise ApiError(500, "CLIENT_ERROR", str(e) or "A network or client error occurred.") from e

        try:
            body = resp.json()
        except ValueError:
            if resp.is_success:
                return None, resp
            raise ApiError(resp.status_code or 500, "CLIENT_ERROR", "Failed to parse server response.") from None

        if not isinstance(body, dict):
            if resp.is_success:
                return body, resp
            raise ApiError(resp.status_code, "CLIENT_ERROR", "Request failed.")

        code = body.get("code", resp.status_code)
        if not isinstance(code, int):
            code = resp.status_code
        envelope_ok = 200 <= code < 300
        if not envelope_ok or not resp.is_success:
            message = body.get("message")
            raise ApiError(
                resp.status_code if envelope_ok else code,
                str(body.get("status") or f"HTTP_{resp.status_code}"),
                _error_message(message),
                message if isinstance(message, dict) else None,
            )
        return body.get("data"), resp

    # ------------------------------------------------------------------
    # Session endpoints
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> LoginResult:
        data, resp = await self.send("POST", "/auth/login", json={"email": email, "password": password})
        return _parse_login(data, resp)

    async def google_login(self, id_token: str) -> LoginResult:
        data, resp = await self.send("POST", "/auth/google", json={"idToken": id_token})
        return _parse_login(data, resp)

    async def logout(self, access_token: Optional[str]) -> None:
        await self.send("POST", "/auth/logout", access_token=access_token)

    async def refresh_token(self) -> str:
        """Exchange the refresh cookie for a new access token."""
        data, _ = await self.send("POST", "/auth/refresh-token")
        if not isinstance(data, dict) or not data.get("accessToken"):
            raise ApiError(500, "INTERNAL_ERROR", "Refresh token response did not contain data.")
        return str(data["accessToken"])

    # ------------------------------------------------------------------
    # OTP endpoints
    # ------------------------------------------------------------------

    async def register(self, email: str, password: str) -> None:
        await self.send("POST", "/auth/register", json={"email": email, "password": password})

    async def verify_registration(self, email: str, otp: str) -> None:
        await self.send("POST", "/auth/verify-registration", json={"email": email, "otp": otp})

    async def forgot_password(self, email: str) -> None:
        await self.send("POST", "/auth/forgot-password", json={"email": email})

    async def verify_otp(self, email: str, otp: str) -> None:
        await self.send("POST", "/auth/verify-otp", json={"email": email, "otp": otp})

    async def reset_password(self, email: str, new_password: str) -> None:
        await self.send("POST", "/auth/reset-password", json={"email": email, "newPassword": new_password})
