"""maybe-auth command line.

Thin wrapper around :func:`maybe_auth.runtime.open_runtime` for signing in
from a terminal and issuing authenticated calls.  Configuration comes from
the ``MAYBE_*`` environment variables (see :mod:`maybe_auth.config`).

Example
-------
    maybe-auth login --email a@b.com
    maybe-auth call /accounts --param page=1
    maybe-auth logout

Exit codes: 0 success, 1 authentication error, 2 configuration error.
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import sys
from typing import Any, Sequence

from maybe_auth.config import AuthConfig
from maybe_auth.core.errors import AuthError
from maybe_auth.core.models import Authenticated, MfaPending
from maybe_auth.core.passwords import validate_password
from maybe_auth.core.user_agent import LoopbackUserAgent
from maybe_auth.runtime import AuthRuntime, open_runtime
from maybe_auth.utils.logging import configure_logging

EXIT_OK = 0
EXIT_AUTH = 1
EXIT_CONFIG = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="maybe-auth", description=__doc__.split("\n")[0])
    parser.add_argument("--log-level", default="WARNING", help="logging level (default WARNING)")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="sign in with email and password")
    login.add_argument("--email", required=True)
    login.add_argument("--password", help="prompted for when omitted")
    login.add_argument("--otp", help="one-time code when two-factor auth is enabled")

    signup = sub.add_parser("signup", help="create an account")
    signup.add_argument("--email", required=True)
    signup.add_argument("--first-name", required=True)
    signup.add_argument("--last-name", required=True)
    signup.add_argument("--password", help="prompted for when omitted")

    browser = sub.add_parser("browser-login", help="sign in through the browser (PKCE)")
    browser.add_argument("--scope", action="append", help="scope to request (repeatable)")

    sub.add_parser("status", help="show the current session")
    sub.add_parser("logout", help="sign out and forget stored credentials")

    call = sub.add_parser("call", help="send an authenticated GET request")
    call.add_argument("path")
    call.add_argument("--param", action="append", default=[], help="query parameter key=value")
    return parser


def _print(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _describe(runtime: AuthRuntime) -> dict[str, Any]:
    state = runtime.session.state
    out: dict[str, Any] = {"state": state.name}
    if isinstance(state, Authenticated):
        out["expires_at"] = state.tokens.expires_at
        if state.user is not None:
            out["user"] = state.user.to_dict()
    elif isinstance(state, MfaPending):
        out["email"] = state.email
    return out


def _password(args: argparse.Namespace) -> str:
    return args.password or getpass.getpass("Password: ")


async def _run(args: argparse.Namespace, config: AuthConfig) -> int:
    user_agent = None
    if args.command == "browser-login":
        user_agent = LoopbackUserAgent(timeout=config.interactive_timeout)

    async with open_runtime(config, user_agent=user_agent) as runtime:
        session = runtime.session
        if args.command == "login":
            await session.login(args.email, _password(args), args.otp)
            if session.is_mfa_required:
                print("Two-factor code required: rerun with --otp", file=sys.stderr)
        elif args.command == "signup":
            password = _password(args)
            problems = validate_password(password)
            if problems:
                for problem in problems:
                    print(problem, file=sys.stderr)
                return EXIT_AUTH
            await session.signup(args.email, password, args.first_name, args.last_name)
        elif args.command == "browser-login":
            await session.interactive_login(args.scope)
        elif args.command == "logout":
            await session.logout()
        elif args.command == "call":
            params = dict(p.split("=", 1) for p in args.param if "=" in p)
            _print(await runtime.gate.call("GET", args.path, params=params or None))
            return EXIT_OK
        _print(_describe(runtime))
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        config = AuthConfig.from_env()
    except ValueError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    try:
        return asyncio.run(_run(args, config))
    except AuthError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_AUTH
    except ValueError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG


if __name__ == "__main__":
    sys.exit(main())
