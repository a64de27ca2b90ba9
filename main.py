#!/usr/bin/env python3
"""
FieldPass -- Time-bounded department access grants for audit fieldwork.

Usage:
  python main.py serve
  python main.py create-admin --username admin
  python main.py issue --audit A-2026-01 --auditor 7 --dept HR --ttl 120
  python main.py list --dept HR
  python main.py revoke 3f0c9a4e-...
  python main.py scan
  python main.py scan --token http://localhost:8000/verify/AbC123...

Environment variables:
  API_BASE_URL   FieldPass API root (default http://localhost:8000/api/v1)
  API_TOKEN      Bearer token for the API (from POST /api/v1/auth/login)
  SECRET_KEY     Required unless DEBUG=true (see core/config.py)
"""

import argparse
import getpass
import json
import sys
from datetime import datetime
from typing import Optional

from client.api import ApiClient
from client.workflow import ScanSession, ScanState
from core.errors import FieldPassError
from grants.models import AccessGrant, GrantFilter


def _parse_datetime(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"'{value}' is not an ISO 8601 datetime") from exc


def _grant_to_dict(grant: AccessGrant) -> dict:
    return {
        "grant_id": grant.grant_id,
        "audit_id": grant.audit_id,
        "auditor_id": grant.auditor_id,
        "dept_id": grant.dept_id,
        "token": grant.token,
        "verify_code": grant.verify_code,
        "valid_from": grant.valid_from.isoformat(),
        "valid_to": grant.valid_to.isoformat(),
        "status": grant.status.value,
    }


def _print_grant(grant: AccessGrant) -> None:
    print(f"  Grant     {grant.grant_id}  [{grant.status.value}]")
    print(f"  Audit     {grant.audit_id}")
    print(f"  Auditor   {grant.auditor_id}")
    print(f"  Dept      {grant.dept_id}")
    print(f"  Window    {grant.valid_from:%Y-%m-%d %H:%M} -> {grant.valid_to:%Y-%m-%d %H:%M} UTC")
    print(f"  Token     {grant.token}")
    if grant.verify_code:
        print(f"  Code      {grant.verify_code}")


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def cmd_create_admin(args: argparse.Namespace) -> int:
    """Create an admin directly in the local user database (first-run bootstrap)."""
    from auth.models import User
    from auth.store import UserStore
    from auth.tokens import hash_password

    password = getpass.getpass("  Password (min 8 chars): ")
    if len(password) < 8:
        print("  [!] Password must be at least 8 characters.")
        return 1
    store = UserStore()
    try:
        if store.get_by_username(args.username) is not None:
            print(f"  [!] User '{args.username}' already exists.")
            return 1
        uid = store.create_user(
            User(
                username=args.username,
                hashed_password=hash_password(password),
                role="admin",
                full_name=args.full_name,
            )
        )
    finally:
        store.close()
    print(f"  Created admin '{args.username}' (id {uid}).")
    return 0


def cmd_issue(client: ApiClient, args: argparse.Namespace) -> int:
    grant = client.issue(
        args.audit,
        args.auditor,
        args.dept,
        valid_from=args.valid_from,
        valid_to=args.valid_to,
        ttl_minutes=args.ttl,
    )
    if args.json:
        print(json.dumps(_grant_to_dict(grant), indent=2))
    else:
        print("\n  Access grant issued")
        print("  " + "─" * 38)
        _print_grant(grant)
        print()
    return 0


def cmd_list(client: ApiClient, args: argparse.Namespace) -> int:
    grants = client.list_grants(GrantFilter(audit_id=args.audit, dept_id=args.dept, auditor_id=args.auditor))
    if args.json:
        print(json.dumps([_grant_to_dict(g) for g in grants], indent=2))
        return 0
    if not grants:
        print("  No grants match.")
        return 0
    for grant in grants:
        print(
            f"  {grant.grant_id}  {grant.status.value:<8} "
            f"{grant.audit_id} / {grant.dept_id} / {grant.auditor_id}  "
            f"until {grant.valid_to:%Y-%m-%d %H:%M}"
        )
    return 0


def cmd_revoke(client: ApiClient, args: argparse.Namespace) -> int:
    grant = client.revoke(args.grant_id)
    print(f"  Grant {grant.grant_id} is {grant.status.value}.")
    return 0


def cmd_scan(client: ApiClient, args: argparse.Namespace) -> int:
    """Walk one credential through the scan workflow, prompting for a code if needed."""
    session = ScanSession(client)
    session.start_capture()
    raw: Optional[str] = args.token or input("  Token or URL: ")
    session.submit_token(raw)

    if session.state == ScanState.SCANNED:
        print(f"  [!] {session.message}")
        return 1

    display = session.display
    print(f"  Auditor   {display.auditor_name}")
    print(f"  Audit     {display.audit_title}")
    print(f"  Dept      {display.dept_name}")
    print(f"  Expires   {session.result.expires_at:%Y-%m-%d %H:%M} UTC")

    attempts = 0
    while session.state == ScanState.AWAITING_CODE:
        if attempts >= args.max_attempts:
            print("  [!] Too many incorrect codes.")
            return 1
        code = args.code if (args.code and attempts == 0) else getpass.getpass("  Verify code: ")
        session.submit_code(code)
        attempts += 1
        if session.state == ScanState.AWAITING_CODE:
            print(f"  [!] {session.message}")

    audit_id, dept_id = session.route()
    print(f"  Access confirmed for audit {audit_id}, department {dept_id}.")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fieldpass",
        description="Issue and check time-bounded department access grants.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py issue --audit A-1 --auditor 7 --dept HR --ttl 120
  python main.py issue --audit A-1 --auditor 7 --dept HR --from 2026-10-20T08:00 --to 2026-10-20T17:00
  python main.py list --auditor 7 --json
  python main.py scan --token <token-or-url>
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("serve", help="Run the API server")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.add_argument("--reload", action="store_true")

    p = sub.add_parser("create-admin", help="Create an admin account in the local database")
    p.add_argument("--username", required=True)
    p.add_argument("--full-name", default="")

    p = sub.add_parser("issue", help="Issue an access grant")
    p.add_argument("--audit", required=True, metavar="AUDIT_ID")
    p.add_argument("--auditor", required=True, metavar="USER_ID")
    p.add_argument("--dept", required=True, metavar="DEPT_ID")
    p.add_argument("--from", dest="valid_from", type=_parse_datetime, metavar="ISO")
    p.add_argument("--to", dest="valid_to", type=_parse_datetime, metavar="ISO")
    p.add_argument("--ttl", type=int, metavar="MINUTES", help="Overrides --to")
    p.add_argument("--json", action="store_true")

    p = sub.add_parser("list", help="List grants, newest first")
    p.add_argument("--audit", metavar="AUDIT_ID")
    p.add_argument("--dept", metavar="DEPT_ID")
    p.add_argument("--auditor", metavar="USER_ID")
    p.add_argument("--json", action="store_true")

    p = sub.add_parser("revoke", help="Revoke a grant (admin)")
    p.add_argument("grant_id")

    p = sub.add_parser("scan", help="Check a presented credential")
    p.add_argument("--token", help="Token or credential URL (prompted if omitted)")
    p.add_argument("--code", help="Verify code, if already known")
    p.add_argument("--max-attempts", type=int, default=3)

    return parser


_API_COMMANDS = {
    "issue": cmd_issue,
    "list": cmd_list,
    "revoke": cmd_revoke,
    "scan": cmd_scan,
}


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0
    if args.command == "serve":
        return cmd_serve(args)
    if args.command == "create-admin":
        return cmd_create_admin(args)

    client = ApiClient.from_settings()
    try:
        return _API_COMMANDS[args.command](client, args)
    except FieldPassError as exc:
        print(f"  [!] {exc}")
        return 1
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(main())
