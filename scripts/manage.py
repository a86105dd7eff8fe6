"""Administrative commands for the admin starter database.

    python scripts/manage.py init-db
    python scripts/manage.py seed
    python scripts/manage.py bootstrap-admin --email admin@example.com --first Ada --last Admin
    python scripts/manage.py grant-role --email bob@example.com --role user
    python scripts/manage.py set-status --email bob@example.com --status blocked
"""
from __future__ import annotations
import argparse
import getpass
import logging
import os
import sys
from pathlib import Path

SCRIPT_DIR = Path(__file__).parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.config import load_settings, setup_logging
from app.core.accounts import AccountStore
from app.core.bootstrap import build_runtime
from app.core.database import Database
from app.core.identity.exceptions import IdentityProviderError
from app.core.models import AccountStatus
from app.core.rbac_store import RbacStore
from app.core.seed import bootstrap_admin, seed_rbac
from app.core.validators import validate_email, validate_name, validate_password, validate_status

logger = logging.getLogger("scripts.manage")


def _fail(message: str) -> None:
    print(f"[manage] Error: {message}", file=sys.stderr)
    sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Admin starter management commands")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")

    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("init-db", help="Create missing tables")
    sub.add_parser("seed", help="Create built-in roles and permissions")

    sb = sub.add_parser("bootstrap-admin", help="Create the first administrator")
    sb.add_argument("--email", required=True)
    sb.add_argument("--first", required=True)
    sb.add_argument("--last", required=True)
    sb.add_argument("--phone", default=None)
    sb.add_argument("--password", default=os.environ.get("BOOTSTRAP_ADMIN_PASSWORD"))

    sg = sub.add_parser("grant-role", help="Assign a role to an account")
    sg.add_argument("--email", required=True)
    sg.add_argument("--role", required=True, help="Role name")

    ss = sub.add_parser("set-status", help="Change an account status")
    ss.add_argument("--email", required=True)
    ss.add_argument("--status", required=True, choices=AccountStatus.values())

    return parser


def main(argv: list[str] | None = None) -> None:
    """Command-line entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return

    cfg = load_settings()
    if args.database_url:
        cfg.database_url = args.database_url
    setup_logging(cfg.log_level, cfg.log_format)

    if args.cmd == "bootstrap-admin":
        _bootstrap_admin(args, cfg)
        return

    db = Database(cfg.database_url, echo=cfg.database_echo)
    db.create_all()

    if args.cmd == "init-db":
        print(f"[manage] Tables ready at {cfg.database_url}")
    elif args.cmd == "seed":
        with db.transaction() as session:
            roles = seed_rbac(session)
        print(f"[manage] Seeded roles: {', '.join(sorted(roles))}")
    elif args.cmd == "grant-role":
        with db.transaction() as session:
            account = AccountStore(session).get_by_email(args.email)
            if account is None:
                _fail(f"No account for {args.email}")
            rbac = RbacStore(session)
            role = rbac.get_role_by_name(args.role)
            if role is None:
                _fail(f"Unknown role {args.role}")
            rbac.assign_role(account.id, role.id)
        logger.info("Granted role %s to %s", args.role, args.email)
        print(f"[manage] {args.email} now has role {args.role}")
    elif args.cmd == "set-status":
        status = validate_status(args.status)
        with db.transaction() as session:
            accounts = AccountStore(session)
            account = accounts.get_by_email(args.email)
            if account is None:
                _fail(f"No account for {args.email}")
            accounts.set_status(account, status)
        logger.info("Set status of %s to %s", args.email, status.value)
        print(f"[manage] {args.email} is now {status.value}")
    else:
        parser.print_help()


def _bootstrap_admin(args: argparse.Namespace, cfg) -> None:
    password = args.password or getpass.getpass("Administrator password: ")
    try:
        email = validate_email(args.email)
        first_name = validate_name(args.first, "First name")
        last_name = validate_name(args.last, "Last name")
        validate_password(password)
    except ValueError as exc:
        _fail(str(exc))

    runtime = build_runtime(cfg)
    try:
        with runtime.db.transaction() as session:
            account = bootstrap_admin(
                session,
                runtime.identity_provider,
                email=email,
                password=password,
                first_name=first_name,
                last_name=last_name,
                phone=args.phone,
            )
            account_id = account.id
    except IdentityProviderError as exc:
        _fail(f"Identity provider rejected the administrator: {exc}")
    print(f"[manage] Administrator {email} ready (account {account_id})")


if __name__ == "__main__":
    main()
