"""
auth/otp.py -- OTP flow state machines: password reset and registration verification.

Password reset:   email -> otp -> password -> (terminal: routed to /login)
Registration:     register -> verify -> verified (terminal, cannot be re-entered)

Rules shared by both flows:
  - A step advances only after the backend accepted the call. Any failure
    leaves the flow on the same step with a Notice or a field error.
  - Input is validated client-side first (pydantic models below); invalid input
    never reaches the backend.
  - One submission at a time: while a call is outstanding, further submissions
    are ignored (is_submitting is the "disable the button" flag).
  - OTP length is a backend-owned setting (OTP_LENGTH); when unset any
    non-empty code is accepted.

Password-reset progress ({email, step}) is persisted under a fixed storage key
after every successful transition so a reload resumes at the same step. A
malformed persisted record is dropped silently. OTP_NOT_VERIFIED on the final
step rewinds the flow to "email" and persists that.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from urllib.parse import urlencode

from pydantic import BaseModel, EmailStr, ValidationError, ValidationInfo, field_validator

from auth.errors import ErrorKind, Notice, classify, describe
from auth.storage import LocalStorage
from auth.tasks import TaskScope
from core.backend import ApiError, BackendClient
from core.config import get_settings
from core.models import OtpFlowState, ResetStep, normalize_email

logger = logging.getLogger("jobhub.auth.otp")

LOGIN_PATH = "/login"
VERIFY_REGISTRATION_PATH = "/verify-registration"

INVALID_OTP_MESSAGE = "The code is incorrect or has expired."

# ---------------------------------------------------------------------------
# Form validation
# ---------------------------------------------------------------------------


class EmailForm(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def strip(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("email")
    @classmethod
    def lowercase(cls, value: str) -> str:
        return normalize_email(value)


class OtpForm(BaseModel):
    otp: str

    @field_validator("otp")
    @classmethod
    def check_length(cls, value: str, info: ValidationInfo) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Enter the code from your email.")
        length = (info.context or {}).get("otp_length")
        if length and len(value) != length:
            raise ValueError(f"The code must be {length} characters.")
        return value


def _check_password_policy(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters.")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain an uppercase letter.")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain a lowercase letter.")
    if not re.search(r"[0-9]", value):
        raise ValueError("Password must contain a digit.")
    if not re.search(r"[\W_]", value):
        raise ValueError("Password must contain a special character.")
    return value


class NewPasswordForm(BaseModel):
    new_password: str

    @field_validator("new_password")
    @classmethod
    def check_policy(cls, value: str) -> str:
        return _check_password_policy(value)


class RegistrationForm(EmailForm):
    password: str

    @field_validator("password")
    @classmethod
    def check_policy(cls, value: str) -> str:
        return _check_password_policy(value)


def _field_errors(exc: ValidationError) -> dict[str, str]:
    errors: dict[str, str] = {}
    for err in exc.errors():
        name = str(err["loc"][0]) if err["loc"] else "__root__"
        msg = err["msg"]
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, ") :]
        errors.setdefault(name, msg)
    return errors


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StepResult:
    """Outcome of one submission. step is the flow's step after the call."""

    ok: bool
    step: str
    notice: Optional[Notice] = None
    field_errors: dict[str, str] = field(default_factory=dict)
    redirect: Optional[str] = None


_FAILED = "Request failed"


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


class PasswordResetFlow:
    """email -> otp -> password, resumable across reloads.

    Usage:
        flow = PasswordResetFlow(backend, storage, email_hint=query_email)
        await flow.request_code("a@b.com")
        await flow.verify_code("123456")
        result = await flow.submit_password("NewSecret1!")
    """

    def __init__(
        self,
        backend: BackendClient,
        storage: LocalStorage,
        *,
        storage_key: Optional[str] = None,
        otp_length: Optional[int] = None,
        email_hint: Optional[str] = None,
    ) -> None:
        cfg = get_settings()
        self.backend = backend
        self.storage = storage
        self.storage_key = storage_key or cfg.reset_flow_storage_key
        self.otp_length = otp_length if otp_length is not None else cfg.otp_length
        self.state = OtpFlowState()
        self.form_email = ""
        self.is_submitting = False
        self.completed = False
        self._scope = TaskScope()
        self.restore(email_hint)

    @property
    def step(self) -> ResetStep:
        return self.state.step

    @property
    def email(self) -> str:
        return self.state.email

    def restore(self, email_hint: Optional[str] = None) -> OtpFlowState:
        """Resume from the persisted record; a link-supplied email only seeds the form."""
        raw = self.storage.get_item(self.storage_key)
        state = OtpFlowState()
        if raw is not None:
            try:
                state = OtpFlowState.from_dict(json.loads(raw))
            except ValueError:
                logger.debug("Discarding malformed reset-flow record")
                self.storage.remove_item(self.storage_key)
                state = OtpFlowState()
            if state.step is not ResetStep.EMAIL and not state.email:
                self.storage.remove_item(self.storage_key)
                state = OtpFlowState()
        self.state = state
        if email_hint and state.step is ResetStep.EMAIL:
            self.form_email = email_hint.strip()
        else:
            self.form_email = state.email
        return state

    def _persist(self, state: OtpFlowState) -> None:
        self.state = state
        self.form_email = state.email
        self.storage.set_item(self.storage_key, json.dumps(state.to_dict()))

    def _result(self, ok: bool, **kwargs) -> StepResult:
        return StepResult(ok=ok, step=self.state.step.value, **kwargs)

    def _busy(self) -> Optional[StepResult]:
        if self.is_submitting:
            logger.debug("Ignoring submission while a request is outstanding")
            return self._result(False)
        return None

    async def request_code(self, email: str) -> StepResult:
        if busy := self._busy():
            return busy
        try:
            form = EmailForm(email=email)
        except ValidationError as e:
            return self._result(False, field_errors=_field_errors(e))

        handle = self._scope.handle()
        self.is_submitting = True
        try:
            await self.backend.forgot_password(form.email)
        except ApiError as e:
            return self._result(False, notice=Notice.error(_FAILED, describe(e)))
        finally:
            self.is_submitting = False
            handle.release()

        if handle.valid:
            self._persist(OtpFlowState(email=form.email, step=ResetStep.OTP))
        return self._result(True, notice=Notice.success("Code sent", "A verification code was sent to your email."))

    async def verify_code(self, otp: str) -> StepResult:
        if busy := self._busy():
            return busy
        if self.state.step is not ResetStep.OTP:
            return self._result(False, notice=Notice.error(_FAILED, "Request a verification code first."))
        try:
            form = OtpForm.model_validate({"otp": otp}, context={"otp_length": self.otp_length})
        except ValidationError as e:
            return self._result(False, field_errors=_field_errors(e))

        handle = self._scope.handle()
        self.is_submitting = True
        try:
            await self.backend.verify_otp(self.state.email, form.otp)
        except ApiError as e:
            if classify(e) is ErrorKind.INVALID_OTP:
                return self._result(False, field_errors={"otp": INVALID_OTP_MESSAGE})
            return self._result(False, notice=Notice.error(_FAILED, describe(e)))
        finally:
            self.is_submitting = False
            handle.release()

        if handle.valid:
            self._persist(OtpFlowState(email=self.state.email, step=ResetStep.PASSWORD))
        return self._result(True, notice=Notice.success("Code verified", "Choose a new password."))

    async def submit_password(self, new_password: str) -> StepResult:
        if busy := self._busy():
            return busy
        if self.state.step is not ResetStep.PASSWORD:
            return self._result(False, notice=Notice.error(_FAILED, "Verify your code first."))
        try:
            form = NewPasswordForm(new_password=new_password)
        except ValidationError as e:
            return self._result(False, field_errors=_field_errors(e))

        email = self.state.email
        handle = self._scope.handle()
        self.is_submitting = True
        try:
            await self.backend.reset_password(email, form.new_password)
        except ApiError as e:
            if classify(e) is ErrorKind.OTP_NOT_VERIFIED:
                logger.info("Reset attempted without a verified code; rewinding flow")
                if handle.valid:
                    self._persist(OtpFlowState(email=email, step=ResetStep.EMAIL))
                return self._result(
                    False,
                    notice=Notice.error("Verification required", "Your code was not verified. Please start again."),
                )
            return self._result(False, notice=Notice.error(_FAILED, describe(e)))
        finally:
            self.is_submitting = False
            handle.release()

        if handle.valid:
            self.storage.remove_item(self.storage_key)
            self.state = OtpFlowState()
            self.form_email = ""
            self.completed = True
        return self._result(
            True,
            notice=Notice.success("Password reset", "Your password was reset. Please log in."),
            redirect=LOGIN_PATH,
        )

    def reset(self) -> None:
        """Abandon the flow and forget persisted progress."""
        self.storage.remove_item(self.storage_key)
        self.state = OtpFlowState()
        self.form_email = ""
        self.completed = False

    def teardown(self) -> None:
        self._scope.close()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class RegistrationStep(str, Enum):
    REGISTER = "register"
    VERIFY = "verify"
    VERIFIED = "verified"


class RegistrationFlow:
    """register -> verify -> verified.

    A link-supplied email (the verification page opened from the registration
    redirect) seeds the verify form; the code must still be verified.
    """

    def __init__(
        self,
        backend: BackendClient,
        *,
        email_hint: Optional[str] = None,
        otp_length: Optional[int] = None,
    ) -> None:
        self.backend = backend
        self.otp_length = otp_length if otp_length is not None else get_settings().otp_length
        self.step = RegistrationStep.REGISTER
        self.email = ""
        self.is_submitting = False
        self._scope = TaskScope()
        if email_hint:
            self.email = email_hint.strip()
            self.step = RegistrationStep.VERIFY

    def _result(self, ok: bool, **kwargs) -> StepResult:
        return StepResult(ok=ok, step=self.step.value, **kwargs)

    async def register(self, email: str, password: str) -> StepResult:
        if self.is_submitting:
            return self._result(False)
        if self.step is RegistrationStep.VERIFIED:
            return self._result(False, notice=Notice.error(_FAILED, "This account is already verified."))
        try:
            form = RegistrationForm(email=email, password=password)
        except ValidationError as e:
            return self._result(False, field_errors=_field_errors(e))

        handle = self._scope.handle()
        self.is_submitting = True
        try:
            await self.backend.register(form.email, form.password)
        except ApiError as e:
            if classify(e) is ErrorKind.RESOURCE_ALREADY_EXISTS:
                return self._result(False, field_errors={"email": "An account with this email already exists."})
            return self._result(False, notice=Notice.error("Registration failed", describe(e)))
        finally:
            self.is_submitting = False
            handle.release()

        if handle.valid:
            self.email = form.email
            self.step = RegistrationStep.VERIFY
        return self._result(
            True,
            notice=Notice.success("Check your email", "A verification code was sent to your email."),
            redirect=f"{VERIFY_REGISTRATION_PATH}?{urlencode({'email': form.email})}",
        )

    async def verify(self, otp: str, email: Optional[str] = None) -> StepResult:
        if self.is_submitting:
            return self._result(False)
        if self.step is RegistrationStep.VERIFIED:
            return self._result(False, notice=Notice.error(_FAILED, "This account is already verified."))
        errors: dict[str, str] = {}
        try:
            email_form = EmailForm(email=email if email is not None else self.email)
        except ValidationError as e:
            errors.update(_field_errors(e))
        try:
            otp_form = OtpForm.model_validate({"otp": otp}, context={"otp_length": self.otp_length})
        except ValidationError as e:
            errors.update(_field_errors(e))
        if errors:
            return self._result(False, field_errors=errors)

        handle = self._scope.handle()
        self.is_submitting = True
        try:
            await self.backend.verify_registration(email_form.email, otp_form.otp)
        except ApiError as e:
            if classify(e) is ErrorKind.INVALID_OTP:
                return self._result(False, field_errors={"otp": INVALID_OTP_MESSAGE})
            return self._result(False, notice=Notice.error("Verification failed", describe(e)))
        finally:
            self.is_submitting = False
            handle.release()

        if handle.valid:
            self.email = email_form.email
            self.step = RegistrationStep.VERIFIED
        return self._result(
            True,
            notice=Notice.success("Account verified", "Your account is active. Please log in."),
            redirect=LOGIN_PATH,
        )

    def teardown(self) -> None:
        self._scope.close()
