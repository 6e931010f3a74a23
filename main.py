#!/usr/bin/env python3
"""
TourMarket -- management CLI.

The HTTP API is served by uvicorn (uvicorn asgi:app). This script covers the
operations that have to happen outside a request: creating the schema,
verifying it, seeding the first admin account, and applying a workflow action
by name.

Usage:
  python main.py init-db
  python main.py check-schema
  python main.py create-user --email admin@example.com --name Admin --password 'change-me-now' --role admin
  python main.py create-user --email ops@example.com --name Ops --password '...' --role supplier --role agency
  python main.py transition 12 approve --user-id 1
  python main.py transition 12 reject --user-id 1 --feedback "Missing itinerary"

Environment variables:
  DATABASE_URL  SQLAlchemy URL (default: sqlite file beside this script)
  SECRET_KEY    Required unless DEBUG=true (read by core.config)
"""

import argparse
import logging
import sys
from typing import Optional

from auth.models import Role, User
from auth.roles import primary_role
from auth.store import UserStore
from auth.tokens import MAX_PASSWORD_BYTES, hash_password
from catalog.store import ProductStore
from catalog.workflow import Action, ActorContext, ProductWorkflow
from core.config import get_settings
from core.errors import AppError
from core.schema import MAX_ROW_ID, SCHEMA_VERSION, check_schema, init_schema, make_engine

logger = logging.getLogger("tourmarket.cli")


def _cmd_init_db(engine, args: argparse.Namespace) -> int:
    init_schema(engine)
    print(f"  Schema ready at version {SCHEMA_VERSION}.")
    return 0


def _cmd_check_schema(engine, args: argparse.Namespace) -> int:
    version = check_schema(engine)
    print(f"  Schema version {version} OK.")
    return 0


def _cmd_create_user(engine, args: argparse.Namespace) -> int:
    roles = frozenset(Role(r) for r in args.role)
    active: Optional[Role] = Role(args.active_role) if args.active_role else primary_role(roles)
    if len(args.password) < 8:
        print("  [!] Password must be at least 8 characters.", file=sys.stderr)
        return 2
    if len(args.password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        print(f"  [!] Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded.", file=sys.stderr)
        return 2

    store = UserStore(engine)
    user_id = store.create_user(
        User(
            email=args.email,
            display_name=args.name,
            granted_roles=roles,
            active_role=active,
            password_hash=hash_password(args.password),
        )
    )
    print(f"  Created user {user_id} <{args.email}> roles={sorted(r.value for r in roles)} active={active.value}")
    return 0


def _cmd_transition(engine, args: argparse.Namespace) -> int:
    """Apply one named action as an existing account, using its stored active role."""
    user = UserStore(engine).get_by_id(args.user_id)
    if user is None:
        print(f"  [!] User {args.user_id} not found.", file=sys.stderr)
        return 1
    actor = ActorContext(user_id=user.id, role=user.active_role)
    product = ProductWorkflow(ProductStore(engine)).apply(args.product_id, Action(args.action), actor, args.feedback)
    print(f"  Product {product.id} is now {product.status.value}.")
    return 0


def _row_id(value: str) -> int:
    """argparse type for database ids: a positive signed 64-bit integer."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid id: {value!r}") from None
    if not 1 <= number <= MAX_ROW_ID:
        raise argparse.ArgumentTypeError(f"id out of range: {value}")
    return number


_COMMANDS = {
    "init-db": _cmd_init_db,
    "check-schema": _cmd_check_schema,
    "create-user": _cmd_create_user,
    "transition": _cmd_transition,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tourmarket",
        description="TourMarket management commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="Override DATABASE_URL for this invocation",
    )
    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    sub.add_parser("init-db", help="Create tables and stamp the schema version")
    sub.add_parser("check-schema", help="Exit 1 if the schema version does not match")

    create = sub.add_parser("create-user", help="Create an account (e.g. the first admin)")
    create.add_argument("--email", required=True)
    create.add_argument("--name", required=True)
    create.add_argument("--password", required=True)
    create.add_argument(
        "--role",
        action="append",
        required=True,
        choices=[r.value for r in Role],
        help="Granted role; repeat for multi-role accounts",
    )
    create.add_argument(
        "--active-role",
        choices=[r.value for r in Role],
        default=None,
        help="Initial active role (default: most privileged granted role)",
    )

    transition = sub.add_parser("transition", help="Apply a workflow action to a product")
    transition.add_argument("product_id", type=_row_id)
    transition.add_argument("action", choices=[a.value for a in Action])
    transition.add_argument("--user-id", type=_row_id, required=True, help="Account performing the action")
    transition.add_argument("--feedback", default=None, help="Required for reject")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    engine = make_engine(args.database_url or settings.database_url)
    try:
        if args.command not in ("init-db", "check-schema"):
            check_schema(engine)
        return _COMMANDS[args.command](engine, args)
    except AppError as exc:
        logger.debug("Command %s failed: %s", args.command, exc.code)
        print(f"  [!] {exc.message}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
