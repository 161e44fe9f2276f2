"""
tests/test_otp.py -- Password reset and registration OTP flows.

Covers:
  - reset walk-through with progress persisted and resumed across "reloads"
  - OTP_NOT_VERIFIED on the final step rewinds to "email" and persists it
  - malformed persisted progress is dropped silently
  - client-side validation never reaches the backend
  - registration: duplicate email, wrong code, terminal verified state
"""

from __future__ import annotations

import json

from auth.errors import NETWORK_ERROR_MESSAGE, NoticeLevel
from auth.otp import PasswordResetFlow, RegistrationFlow, RegistrationStep
from core.models import ResetStep

RESET_KEY = "jobhub_reset_password_state"


def _persisted(storage) -> dict:
    return json.loads(storage.get_item(RESET_KEY))


class TestPasswordReset:
    async def test_full_flow_survives_reloads(self, storage, backend, fake_backend):
        fake_backend.reply("/auth/forgot-password").reply("/auth/verify-otp").reply("/auth/reset-password")

        flow = PasswordResetFlow(backend, storage)
        result = await flow.request_code(" User@JobHub.io ")
        assert result.ok and result.step == "otp"
        assert _persisted(storage) == {"email": "user@jobhub.io", "step": "otp"}
        assert fake_backend.body("/auth/forgot-password") == {"email": "user@jobhub.io"}

        flow = PasswordResetFlow(backend, storage)
        assert flow.step is ResetStep.OTP
        assert flow.email == "user@jobhub.io"
        result = await flow.verify_code("123456")
        assert result.ok and result.step == "password"
        assert fake_backend.body("/auth/verify-otp") == {"email": "user@jobhub.io", "otp": "123456"}

        flow = PasswordResetFlow(backend, storage)
        assert flow.step is ResetStep.PASSWORD
        result = await flow.submit_password("N3w-Secret")
        assert result.ok
        assert result.redirect == "/login"
        assert flow.completed
        assert storage.get_item(RESET_KEY) is None
        assert fake_backend.body("/auth/reset-password") == {"email": "user@jobhub.io", "newPassword": "N3w-Secret"}

    async def test_unverified_code_rewinds_to_email(self, storage, backend, fake_backend):
        storage.set_item(RESET_KEY, json.dumps({"email": "user@jobhub.io", "step": "password"}))
        fake_backend.fail("/auth/reset-password", 400, "OTP_NOT_VERIFIED", "OTP not verified")
        flow = PasswordResetFlow(backend, storage)

        result = await flow.submit_password("N3w-Secret")

        assert not result.ok
        assert result.step == "email"
        assert result.notice.title == "Verification required"
        assert _persisted(storage) == {"email": "user@jobhub.io", "step": "email"}
        assert flow.form_email == "user@jobhub.io"

    async def test_wrong_code_is_a_field_error(self, storage, backend, fake_backend):
        storage.set_item(RESET_KEY, json.dumps({"email": "user@jobhub.io", "step": "otp"}))
        fake_backend.fail("/auth/verify-otp", 400, "INVALID_OTP", "Invalid OTP")
        flow = PasswordResetFlow(backend, storage)

        result = await flow.verify_code("000000")

        assert not result.ok
        assert result.step == "otp"
        assert "otp" in result.field_errors
        assert result.notice is None
        assert _persisted(storage)["step"] == "otp"

    async def test_network_failure_keeps_step(self, storage, backend, fake_backend):
        fake_backend.fail("/auth/forgot-password", 500, "CLIENT_ERROR", "connection refused")
        flow = PasswordResetFlow(backend, storage)

        result = await flow.request_code("user@jobhub.io")

        assert not result.ok
        assert result.step == "email"
        assert result.notice.level is NoticeLevel.ERROR
        assert result.notice.message == NETWORK_ERROR_MESSAGE
        assert storage.get_item(RESET_KEY) is None

    async def test_steps_cannot_be_skipped(self, storage, backend, fake_backend):
        flow = PasswordResetFlow(backend, storage)
        assert not (await flow.verify_code("123456")).ok
        assert not (await flow.submit_password("N3w-Secret")).ok
        assert fake_backend.requests == []


class TestResetValidation:
    async def test_invalid_email_never_sent(self, storage, backend, fake_backend):
        flow = PasswordResetFlow(backend, storage)
        result = await flow.request_code("not-an-email")
        assert "email" in result.field_errors
        assert fake_backend.requests == []

    async def test_otp_length_enforced_when_configured(self, storage, backend, fake_backend):
        storage.set_item(RESET_KEY, json.dumps({"email": "user@jobhub.io", "step": "otp"}))
        flow = PasswordResetFlow(backend, storage, otp_length=6)
        result = await flow.verify_code("123")
        assert result.field_errors == {"otp": "The code must be 6 characters."}
        assert fake_backend.requests == []

    async def test_any_non_empty_code_when_length_unset(self, storage, backend, fake_backend):
        fake_backend.reply("/auth/verify-otp")
        storage.set_item(RESET_KEY, json.dumps({"email": "user@jobhub.io", "step": "otp"}))
        flow = PasswordResetFlow(backend, storage)
        assert (await flow.verify_code("12")).ok

    async def test_weak_password_rejected(self, storage, backend, fake_backend):
        storage.set_item(RESET_KEY, json.dumps({"email": "user@jobhub.io", "step": "password"}))
        flow = PasswordResetFlow(backend, storage)
        for weak in ("Short1!", "alllower1!", "ALLUPPER1!", "NoDigits!!", "NoSpecial12"):
            result = await flow.submit_password(weak)
            assert "new_password" in result.field_errors, weak
        assert fake_backend.requests == []


class TestResetRestore:
    def test_malformed_record_dropped(self, storage, backend):
        storage.set_item(RESET_KEY, "{oops")
        flow = PasswordResetFlow(backend, storage)
        assert flow.step is ResetStep.EMAIL
        assert storage.get_item(RESET_KEY) is None

    def test_unknown_step_dropped(self, storage, backend):
        storage.set_item(RESET_KEY, json.dumps({"email": "a@b.io", "step": "done"}))
        flow = PasswordResetFlow(backend, storage)
        assert flow.step is ResetStep.EMAIL
        assert storage.get_item(RESET_KEY) is None

    def test_later_step_without_email_dropped(self, storage, backend):
        storage.set_item(RESET_KEY, json.dumps({"email": "", "step": "password"}))
        flow = PasswordResetFlow(backend, storage)
        assert flow.step is ResetStep.EMAIL
        assert storage.get_item(RESET_KEY) is None

    def test_email_hint_only_seeds_form(self, storage, backend):
        flow = PasswordResetFlow(backend, storage, email_hint="linked@jobhub.io")
        assert flow.step is ResetStep.EMAIL
        assert flow.form_email == "linked@jobhub.io"
        assert storage.get_item(RESET_KEY) is None

    def test_email_hint_does_not_override_progress(self, storage, backend):
        storage.set_item(RESET_KEY, json.dumps({"email": "user@jobhub.io", "step": "otp"}))
        flow = PasswordResetFlow(backend, storage, email_hint="other@jobhub.io")
        assert flow.step is ResetStep.OTP
        assert flow.form_email == "user@jobhub.io"

    def test_reset_forgets_progress(self, storage, backend):
        storage.set_item(RESET_KEY, json.dumps({"email": "user@jobhub.io", "step": "otp"}))
        flow = PasswordResetFlow(backend, storage)
        flow.reset()
        assert flow.step is ResetStep.EMAIL
        assert storage.get_item(RESET_KEY) is None


class TestRegistration:
    async def test_register_then_verify(self, backend, fake_backend):
        fake_backend.reply("/auth/register").reply("/auth/verify-registration")
        flow = RegistrationFlow(backend)

        result = await flow.register("New@JobHub.io", "Str0ng!pw")
        assert result.ok
        assert result.redirect == "/verify-registration?email=new%40jobhub.io"
        assert flow.step is RegistrationStep.VERIFY

        result = await flow.verify("654321")
        assert result.ok
        assert result.redirect == "/login"
        assert flow.step is RegistrationStep.VERIFIED
        assert fake_backend.body("/auth/verify-registration") == {"email": "new@jobhub.io", "otp": "654321"}

    async def test_duplicate_email_is_field_error(self, backend, fake_backend):
        fake_backend.fail("/auth/register", 409, "RESOURCE_ALREADY_EXISTS", "Email already registered")
        flow = RegistrationFlow(backend)
        result = await flow.register("taken@jobhub.io", "Str0ng!pw")
        assert not result.ok
        assert "email" in result.field_errors
        assert flow.step is RegistrationStep.REGISTER

    async def test_wrong_code_is_field_error(self, backend, fake_backend):
        fake_backend.fail("/auth/verify-registration", 400, "INVALID_OTP")
        flow = RegistrationFlow(backend, email_hint="new@jobhub.io")
        result = await flow.verify("111111")
        assert "otp" in result.field_errors
        assert flow.step is RegistrationStep.VERIFY

    async def test_verified_flow_cannot_be_reentered(self, backend, fake_backend):
        fake_backend.reply("/auth/verify-registration")
        flow = RegistrationFlow(backend, email_hint="new@jobhub.io")
        assert (await flow.verify("111111")).ok

        again = await flow.verify("111111")
        register = await flow.register("new@jobhub.io", "Str0ng!pw")

        assert not again.ok and not register.ok
        assert len(fake_backend.requests) == 1
