"""
API response models for the JobHub edge server.

These Pydantic v2 models define the HTTP transport contract of the edge app.
They are intentionally separate from the dataclasses in core/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Any, Optional

from pydantic import BaseModel

# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Structured error payload. Returned inside ErrorResponse."""

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope for every non-2xx JSON response."""

    error: ErrorDetail


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    status: str = "ok"
    version: str


class LoginHandoffResponse(BaseModel):
    """Result of a completed server-side sign-in (password form or Google).

    The page shell stores account and accessToken under the client storage
    keys and navigates to redirect. The refresh cookie travels as Set-Cookie.
    """

    account: dict[str, Any]
    accessToken: str
    redirect: str
