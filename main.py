#!/usr/bin/env python3
"""
Crowdfunding client - command line driver.
Log in, inspect the session, browse projects and donations against the REST backend.
"""

import argparse
import asyncio
import getpass
import logging
import os
import sys
from typing import Any, Dict, Optional

from dateutil import parser as date_parser

# Configure logging
logging.basicConfig(
    level=os.getenv("CROWDFUND_LOG_LEVEL", "WARNING").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)

EXIT_OK = 0
EXIT_ERROR = 1


def format_timestamp_for_display(timestamp_str: Optional[str]) -> str:
    """Format ISO timestamp to compact display format (YYYY-MM-DD HH:MM)."""
    if not timestamp_str:
        return "N/A"
    try:
        dt = date_parser.isoparse(timestamp_str)
        return dt.strftime("%Y-%m-%d %H:%M")
    except (ValueError, TypeError, AttributeError):
        return str(timestamp_str)[:16]


def _print_user(user) -> None:
    print(f"{user.display_name} <{user.email or '-'}> (id={user.id}, username={user.username or '-'})")


def _print_project(p: Dict[str, Any]) -> None:
    title = p.get("title") or "(untitled)"
    current = p.get("current_amount") or 0
    goal = p.get("goal_amount") or p.get("total_target") or "?"
    ends = format_timestamp_for_display(p.get("end_time") or p.get("end_date"))
    print(f"- [{p.get('id', '?')}] {title}: {current}/{goal} (ends {ends})")


async def cmd_login(args: argparse.Namespace) -> int:
    from crowdfund.auth.controller import build_session
    from crowdfund.auth.models import Credentials

    session = build_session()
    secret = args.password if args.password is not None else getpass.getpass("Password: ")
    user = await session.login(Credentials(identifier=args.identifier, secret=secret))
    print("Logged in as ", end="")
    _print_user(user)
    return EXIT_OK


async def cmd_logout(args: argparse.Namespace) -> int:
    from crowdfund.auth.controller import build_session

    session = build_session()
    await session.logout()
    print("Logged out.")
    return EXIT_OK


async def cmd_whoami(args: argparse.Namespace) -> int:
    from crowdfund.auth.controller import build_session
    from crowdfund.auth.models import SessionStatus

    session = build_session()
    snap = await session.bootstrap()
    if snap.status == SessionStatus.AUTHENTICATED and snap.user is not None:
        _print_user(snap.user)
        return EXIT_OK
    if snap.status == SessionStatus.AUTH_ERROR:
        print(f"Could not verify session: {snap.last_error}", file=sys.stderr)
        return EXIT_ERROR
    print("Not logged in.", file=sys.stderr)
    return EXIT_ERROR


async def cmd_register(args: argparse.Namespace) -> int:
    from crowdfund.auth.controller import build_session

    session = build_session()
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    data = {
        "username": args.username,
        "email": args.email,
        "first_name": args.first_name or "",
        "last_name": args.last_name or "",
        "mobile_phone": args.mobile_phone or "",
        "password": password,
        "confirm_password": password,
    }
    result = await session.register(data)
    print(result.message)
    return EXIT_OK


async def cmd_forgot_password(args: argparse.Namespace) -> int:
    from crowdfund.auth.controller import build_session

    print(await build_session().request_password_reset(args.email))
    return EXIT_OK


async def cmd_reset_password(args: argparse.Namespace) -> int:
    from crowdfund.auth.controller import build_session

    new_password = args.password if args.password is not None else getpass.getpass("New password: ")
    print(await build_session().confirm_password_reset(args.uid, args.token, new_password))
    return EXIT_OK


async def cmd_verify_email(args: argparse.Namespace) -> int:
    from crowdfund.auth.controller import build_session

    print(await build_session().verify_email(args.uid, args.token))
    return EXIT_OK


async def cmd_projects(args: argparse.Namespace) -> int:
    from crowdfund.auth.controller import build_session
    from crowdfund.services.projects import list_projects

    session = build_session()
    params: Dict[str, Any] = {"page": args.page}
    if args.category:
        params["category"] = args.category
    page = await list_projects(session.api, params)
    if not page.results:
        print("No projects found.")
        return EXIT_OK
    for p in page.results:
        _print_project(p)
    print(f"\nPage {page.page} of {page.total_pages}")
    return EXIT_OK


async def cmd_donations(args: argparse.Namespace) -> int:
    from crowdfund.auth.controller import build_session
    from crowdfund.services.donations import list_donations

    session = build_session()
    page = await list_donations(session.api, page=args.page)
    for d in page.results:
        project = d.get("project")
        title = project.get("title") if isinstance(project, dict) else project
        when = format_timestamp_for_display(d.get("date") or d.get("created_at"))
        print(f"- {when}  {d.get('amount')}  {title}")
    print(f"\nPage {page.page} of {page.total_pages}")
    return EXIT_OK


async def cmd_guard(args: argparse.Namespace) -> int:
    from crowdfund.auth.controller import build_session
    from crowdfund.auth.guard import Access, RedirectToHome, RedirectToLogin, decide

    session = build_session()
    snap = await session.bootstrap()
    decision = decide(snap, Access(args.access), args.path, redirect_to=args.next)
    if isinstance(decision, (RedirectToLogin, RedirectToHome)):
        print(f"redirect {decision.location}")
    else:
        print(type(decision).__name__.lower())
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Crowdfunding REST client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Log in (token is stored in ~/.crowdfund/session.json)
  python main.py login demo@example.com

  # Who am I? (validates the stored token against the server)
  python main.py whoami

  # Would /profile render for the current session?
  python main.py guard /profile --access requires-authenticated
        """,
    )
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("login", help="Log in and store the session token")
    p.add_argument("identifier", help="Email (or username, see CROWDFUND_LOGIN_FIELD)")
    p.add_argument("--password", help="Password (prompted if omitted)")
    p.set_defaults(func=cmd_login)

    p = sub.add_parser("logout", help="Clear the stored session and notify the server")
    p.set_defaults(func=cmd_logout)

    p = sub.add_parser("whoami", help="Show the logged-in user")
    p.set_defaults(func=cmd_whoami)

    p = sub.add_parser("register", help="Create an account (email verification may be required)")
    p.add_argument("--username", required=True)
    p.add_argument("--email", required=True)
    p.add_argument("--first-name")
    p.add_argument("--last-name")
    p.add_argument("--mobile-phone")
    p.add_argument("--password", help="Password (prompted if omitted)")
    p.set_defaults(func=cmd_register)

    p = sub.add_parser("forgot-password", help="Request a password reset email")
    p.add_argument("email")
    p.set_defaults(func=cmd_forgot_password)

    p = sub.add_parser("reset-password", help="Set a new password from a reset link")
    p.add_argument("uid")
    p.add_argument("token")
    p.add_argument("--password", help="New password (prompted if omitted)")
    p.set_defaults(func=cmd_reset_password)

    p = sub.add_parser("verify-email", help="Activate an account from a verification link")
    p.add_argument("uid")
    p.add_argument("token")
    p.set_defaults(func=cmd_verify_email)

    p = sub.add_parser("projects", help="List projects")
    p.add_argument("--page", type=int, default=1)
    p.add_argument("--category", help="Category id or slug")
    p.set_defaults(func=cmd_projects)

    p = sub.add_parser("donations", help="List your donations")
    p.add_argument("--page", type=int, default=1)
    p.set_defaults(func=cmd_donations)

    p = sub.add_parser("guard", help="Evaluate the route guard for a path")
    p.add_argument("path")
    p.add_argument(
        "--access",
        default="public",
        choices=["public", "requires-authenticated", "requires-anonymous"],
    )
    p.add_argument("--next", help="Redirect target carried into an anonymous-only view")
    p.set_defaults(func=cmd_guard)
    return parser


def main(argv=None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return EXIT_OK

    from crowdfund.errors import CrowdfundError

    try:
        return asyncio.run(args.func(args))
    except CrowdfundError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        field_errors = getattr(e, "field_errors", None) or {}
        for field, msg in field_errors.items():
            print(f"   {field}: {msg}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
