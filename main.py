#!/usr/bin/env python3
"""
ProxyVault -- management CLI.

Operates directly on the configured database (DATABASE_URL), using the same
services as the HTTP API. Mutations are audited under the "cli" actor.

Usage:
  python main.py bootstrap
  python main.py create-department "Marketing" --description "Growth team"
  python main.py create-user alice --role DepartmentManager --department "Marketing"
  python main.py list-departments
  python main.py export --output proxies.csv
  python main.py export --department "Marketing" --status Active

Environment variables:
  DATABASE_URL     SQLAlchemy URL (default: sqlite file next to the package)
  SECRET_KEY       Required unless DEBUG=true
  ADMIN_USERNAME / ADMIN_PASSWORD   Used by `bootstrap`
"""

import argparse
import getpass
import sys
from pathlib import Path
from typing import Optional

from audit.models import AuditContext
from auth.models import Role
from auth.scope import UNRESTRICTED, QueryScope
from core.config import get_settings
from core.database import create_db_engine
from core.errors import AppError
from inventory.models import Protocol, ProxyFilter, ProxyStatus
from services.bootstrap import Services, build_services, ensure_super_admin

# Audit actor for changes made from this tool. There is no user row with id 0.
CLI_CONTEXT = AuditContext(actor_id=0, actor_username="cli", user_agent="proxyvault-cli")


def _department_id(services: Services, name: Optional[str]) -> Optional[int]:
    if name is None:
        return None
    department = services.inventory.get_department_by_name(name)
    if department is None:
        raise SystemExit(f"  [!] Department '{name}' does not exist.")
    return department.id


def cmd_bootstrap(services: Services, args: argparse.Namespace) -> None:
    settings = get_settings()
    password = settings.admin_password or getpass.getpass(f"Password for {settings.admin_username}: ")
    if ensure_super_admin(services.user_store, services.inventory, settings.admin_username, password):
        print(f"  SuperAdmin '{settings.admin_username}' created.")
    else:
        print("  A SuperAdmin already exists -- nothing to do.")


def cmd_create_department(services: Services, args: argparse.Namespace) -> None:
    department = services.departments.create(args.name, args.description, CLI_CONTEXT)
    print(f"  Department '{department.name}' created (id={department.id}).")


def cmd_create_user(services: Services, args: argparse.Namespace) -> None:
    password = args.password or getpass.getpass(f"Password for {args.username}: ")
    user = services.users.create(
        args.username,
        password,
        Role(args.role),
        CLI_CONTEXT,
        department_id=_department_id(services, args.department),
        email=args.email,
    )
    print(f"  User '{user.username}' ({user.role.value}) created (id={user.id}).")


def cmd_list_departments(services: Services, args: argparse.Namespace) -> None:
    rows = services.departments.list_departments(UNRESTRICTED)
    if not rows:
        print("  No departments.")
        return
    width = max(len(d.name) for d, _ in rows)
    for department, count in rows:
        print(f"  {department.id:>4}  {department.name:<{width}}  {count} proxies")


def cmd_export(services: Services, args: argparse.Namespace) -> None:
    scope = QueryScope(department_id=_department_id(services, args.department))
    filters = ProxyFilter(
        status=ProxyStatus(args.status) if args.status else None,
        protocol=Protocol(args.protocol) if args.protocol else None,
        location=args.location,
        search=args.search,
    )
    body, count = services.proxies.export(scope, filters, CLI_CONTEXT)
    if args.output:
        Path(args.output).write_text(body, encoding="utf-8", newline="")
        print(f"  {count} proxies written to {args.output}.", file=sys.stderr)
    else:
        sys.stdout.write(body)


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="proxyvault",
        description="ProxyVault management commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ADMIN_PASSWORD=change-me python main.py bootstrap
  python main.py create-department "Marketing"
  python main.py create-user alice --role DepartmentManager --department "Marketing"
  python main.py export --output proxies.csv
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("bootstrap", help="Create the default department and SuperAdmin if none exists")
    p.set_defaults(func=cmd_bootstrap)

    p = sub.add_parser("create-department", help="Create a department")
    p.add_argument("name")
    p.add_argument("--description", default=None)
    p.set_defaults(func=cmd_create_department)

    p = sub.add_parser("create-user", help="Create a user account")
    p.add_argument("username")
    p.add_argument("--role", choices=[r.value for r in Role], default=Role.DEPARTMENT_MANAGER.value)
    p.add_argument("--department", metavar="NAME", help="Department name (required for DepartmentManager)")
    p.add_argument("--email", default=None)
    p.add_argument("--password", default=None, help="Prompted for when omitted")
    p.set_defaults(func=cmd_create_user)

    p = sub.add_parser("list-departments", help="List departments with proxy counts")
    p.set_defaults(func=cmd_list_departments)

    p = sub.add_parser("export", help="Export proxies as CSV")
    p.add_argument("--department", metavar="NAME", default=None)
    p.add_argument("--status", choices=[s.value for s in ProxyStatus], default=None)
    p.add_argument("--protocol", choices=[s.value for s in Protocol], default=None)
    p.add_argument("--location", default=None)
    p.add_argument("--search", default=None)
    p.add_argument("--output", "-o", metavar="PATH", default=None, help="Write to a file instead of stdout")
    p.set_defaults(func=cmd_export)

    args = parser.parse_args()
    if not getattr(args, "func", None):
        parser.print_help()
        return

    settings = get_settings()
    engine = create_db_engine(settings.database_url)
    services = build_services(engine, settings)
    try:
        args.func(services, args)
    except AppError as exc:
        detail = "; ".join(f"{e['field']}: {e['message']}" for e in exc.errors or [])
        raise SystemExit(f"  [!] {exc.message}" + (f" ({detail})" if detail else "")) from exc
    finally:
        services.recorder.close()
        engine.dispose()


if __name__ == "__main__":
    main()
