#!/usr/bin/env python3
"""
JobHub auth client: session, registration and password reset from a terminal.

The session and the reset progress live in the local storage database
(STORAGE_DB_URL), so consecutive invocations behave like page reloads in the
same browser profile.

Usage:
  python main.py login a@b.com
  python main.py login a@b.com --next /admin/users
  python main.py google-login <id-token>
  python main.py whoami
  python main.py whoami --check /recruiter/dashboard
  python main.py logout
  python main.py register a@b.com
  python main.py verify-registration a@b.com 123456
  python main.py reset-password request a@b.com
  python main.py reset-password verify 123456
  python main.py reset-password set
  python main.py reset-password status

Environment variables:
  BACKEND_BASE_URL   Backend API root (default http://localhost:8080/api)
  STORAGE_DB_URL     SQLAlchemy URL of the local storage database
  OTP_LENGTH         Expected verification code length (optional)
"""

import argparse
import asyncio
import getpass
import sys
from typing import Optional

from auth.errors import Notice, SessionExpired
from auth.login import LoginOutcome, sign_in, sign_in_with_google
from auth.otp import PasswordResetFlow, RegistrationFlow, StepResult
from auth.roles import evaluate_access
from auth.session import SessionManager
from auth.storage import LocalStorage
from auth.store import CredentialStore
from core.backend import BackendClient
from core.config import get_settings


def _print_notice(notice: Optional[Notice]) -> None:
    if notice is None:
        return
    marker = "[+]" if notice.level.value == "success" else "[!]"
    print(f"  {marker} {notice.title}: {notice.message}")


def _print_step(result: StepResult) -> int:
    _print_notice(result.notice)
    for name, message in result.field_errors.items():
        print(f"  [!] {name}: {message}")
    if result.redirect:
        print(f"  -> {result.redirect}")
    return 0 if result.ok else 1


def _print_login(outcome: LoginOutcome) -> int:
    _print_notice(outcome.notice)
    if outcome.ok and outcome.account is not None:
        print(f"  Signed in as {outcome.account.email} ({', '.join(outcome.account.roles) or 'no roles'})")
        print(f"  -> {outcome.redirect}")
    return 0 if outcome.ok else 1


def _read_password(args: argparse.Namespace, prompt: str = "Password: ") -> str:
    return args.password if args.password is not None else getpass.getpass(prompt)


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    storage = LocalStorage(settings.storage_db_url)
    backend = BackendClient(settings)
    session = SessionManager(CredentialStore(storage), backend).init()
    try:
        return await _dispatch(args, session, backend, storage)
    finally:
        session.teardown()
        await backend.aclose()
        storage.close()


async def _dispatch(
    args: argparse.Namespace,
    session: SessionManager,
    backend: BackendClient,
    storage: LocalStorage,
) -> int:
    if args.command == "login":
        outcome = await sign_in(session, args.email, _read_password(args), args.next)
        return _print_login(outcome)

    if args.command == "google-login":
        outcome = await sign_in_with_google(session, args.credential, args.next)
        return _print_login(outcome)

    if args.command == "logout":
        await session.logout()
        print("  Signed out.")
        return 0

    if args.command == "whoami":
        account = session.account
        if account is None:
            print("  Not signed in.")
        else:
            print(f"  {account.email}")
            print(f"  roles:  {', '.join(account.roles) or '-'}")
            if account.status:
                print(f"  status: {account.status}")
        if args.check:
            decision = evaluate_access(session.state, args.check, get_settings().login_path)
            line = f"  {args.check}: {decision.access.value}"
            if decision.redirect:
                line += f" -> {decision.redirect}"
            print(line)
        return 0 if account is not None else 1

    if args.command == "register":
        flow = RegistrationFlow(backend)
        return _print_step(await flow.register(args.email, _read_password(args)))

    if args.command == "verify-registration":
        flow = RegistrationFlow(backend, email_hint=args.email)
        return _print_step(await flow.verify(args.otp))

    if args.command == "reset-password":
        flow = PasswordResetFlow(backend, storage)
        try:
            if args.action == "request":
                return _print_step(await flow.request_code(args.email))
            if args.action == "verify":
                return _print_step(await flow.verify_code(args.otp))
            if args.action == "set":
                return _print_step(await flow.submit_password(_read_password(args, "New password: ")))
            if args.action == "cancel":
                flow.reset()
                print("  Password reset cancelled.")
                return 0
            print(f"  step:  {flow.step.value}")
            if flow.email:
                print(f"  email: {flow.email}")
            return 0
        finally:
            flow.teardown()

    return 2


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="jobhub",
        description="JobHub account session, registration and password reset.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py login a@b.com --next /job-seeker/dashboard
  python main.py whoami --check /admin/dashboard
  python main.py reset-password request a@b.com
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("login", help="Sign in with email and password")
    p.add_argument("email")
    p.add_argument("--password", help="Password (prompted when omitted)")
    p.add_argument("--next", metavar="PATH", help="Deep link to return to after login")

    p = sub.add_parser("google-login", help="Sign in with a Google ID token")
    p.add_argument("credential", metavar="ID-TOKEN")
    p.add_argument("--next", metavar="PATH", help="Deep link to return to after login")

    sub.add_parser("logout", help="Sign out and clear the stored session")

    p = sub.add_parser("whoami", help="Show the stored session")
    p.add_argument("--check", metavar="PATH", help="Also show whether PATH may be opened")

    p = sub.add_parser("register", help="Create an account")
    p.add_argument("email")
    p.add_argument("--password", help="Password (prompted when omitted)")

    p = sub.add_parser("verify-registration", help="Verify a new account with its emailed code")
    p.add_argument("email")
    p.add_argument("otp", metavar="CODE")

    p = sub.add_parser("reset-password", help="Reset a forgotten password")
    actions = p.add_subparsers(dest="action", metavar="ACTION", required=True)
    a = actions.add_parser("request", help="Send a verification code")
    a.add_argument("email")
    a = actions.add_parser("verify", help="Verify the emailed code")
    a.add_argument("otp", metavar="CODE")
    a = actions.add_parser("set", help="Choose the new password")
    a.add_argument("--password", help="New password (prompted when omitted)")
    actions.add_parser("status", help="Show the current reset step")
    actions.add_parser("cancel", help="Forget reset progress")

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return

    try:
        code = asyncio.run(_run(args))
    except SessionExpired:
        print("  [!] Your session has expired. Please log in again.")
        code = 1
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
