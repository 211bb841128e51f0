#!/usr/bin/env python3
"""
toolgate - Provider-aware tool permissions
==========================================

Main entry point for inspecting and administering tool access.

Usage:
    python main.py tools --user alice              # Tools the agent would see
    python main.py resolve --user alice get_invoices
    python main.py check --user alice xero:approve_invoice
    python main.py grant --user alice xero 2
    python main.py vacation --user alice --days 7
    python main.py connect --user alice xero
    python main.py serve --port 8000               # Internal service bus
"""

import argparse
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

# Ensure project root is in path
sys.path.insert(0, str(Path(__file__).parent))

from rich.console import Console
from rich.table import Table

from core.gateway import build_gateway, ToolGateway
from infra.config import ConfigManager
from infra.database import CredentialRecord, DatabaseManager
from infra.logging import configure_logging, RequestContext
from tools.definitions import tier_name


console = Console()


def print_tools(gateway: ToolGateway, user_id: str, show_all: bool) -> None:
    tools = gateway.catalog.list_tools() if show_all else gateway.prepare_turn(user_id)

    table = Table(title=f"{'All' if show_all else 'Visible'} tools for {user_id}")
    table.add_column("Name", style="cyan")
    table.add_column("Provider")
    table.add_column("Category")
    table.add_column("Tier", justify="right")

    for tool in tools:
        tier = "-" if tool.required_tier is None else str(int(tool.required_tier))
        table.add_row(tool.qualified_name, gateway.registry.display_name(tool.provider), tool.category, tier)

    console.print(table)


def print_permissions(gateway: ToolGateway, user_id: str) -> None:
    table = Table(title=f"Connector permissions for {user_id}")
    table.add_column("Connector", style="cyan")
    table.add_column("Tier", justify="right")
    table.add_column("Level")
    table.add_column("Source", style="dim")

    for connector, lookup in gateway.authority.get_all_connector_permissions(user_id).items():
        table.add_row(connector, str(lookup.tier), tier_name(lookup.tier, connector), lookup.source.value)

    console.print(table)
    console.print(gateway.authority.get_safety_rules_for_prompt(user_id))


def run_resolve(gateway: ToolGateway, user_id: str, name: str) -> int:
    resolution = gateway.resolve(user_id, name)
    if resolution.resolved:
        console.print(f"[green]Resolved:[/green] {resolution.tool.qualified_name}")
        return 0

    console.print(f"[yellow]{resolution.error}[/yellow]")
    return 1


def run_check(gateway: ToolGateway, user_id: str, name: str) -> int:
    decision = gateway.authorize(user_id, name)
    if decision.allowed:
        permission = decision.permission
        console.print(
            f"[green]Allowed:[/green] {decision.tool.qualified_name} "
            f"[dim](connector={permission.connector or '-'}, level={permission.current_level})[/dim]"
        )
        return 0

    console.print(f"[red]Denied:[/red] {decision.error.message}")
    return 1


def parse_vacation_until(args: argparse.Namespace) -> Optional[datetime]:
    if args.clear:
        return None
    if args.days is not None:
        return datetime.now(timezone.utc) + timedelta(days=args.days)
    return datetime.strptime(args.until, "%Y-%m-%d").replace(tzinfo=timezone.utc)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="toolgate - provider-aware tool permissions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", "-c", default="config.yaml", help="Path to configuration file")
    parser.add_argument("--db", help="Settings database path (overrides config)")
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides config)"
    )
    parser.add_argument("--log-dir", help="Directory for JSON log files (overrides config)")

    sub = parser.add_subparsers(dest="command", required=True)

    tools_cmd = sub.add_parser("tools", help="List tools visible to a user")
    tools_cmd.add_argument("--user", "-u", required=True)
    tools_cmd.add_argument("--all", action="store_true", help="List the whole catalog")

    for name, help_text in (("resolve", "Resolve a tool name"), ("check", "Resolve and permission-check a tool")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--user", "-u", required=True)
        cmd.add_argument("name")

    perms_cmd = sub.add_parser("permissions", help="Show connector permissions and safety rules")
    perms_cmd.add_argument("--user", "-u", required=True)

    grant_cmd = sub.add_parser("grant", help="Set a connector permission tier")
    grant_cmd.add_argument("--user", "-u", required=True)
    grant_cmd.add_argument("connector")
    grant_cmd.add_argument("tier", type=int, choices=[0, 1, 2, 3])

    vacation_cmd = sub.add_parser("vacation", help="Set or clear vacation mode")
    vacation_cmd.add_argument("--user", "-u", required=True)
    group = vacation_cmd.add_mutually_exclusive_group(required=True)
    group.add_argument("--until", help="End date (YYYY-MM-DD)")
    group.add_argument("--days", type=int, help="Days from now")
    group.add_argument("--clear", action="store_true")

    for name, help_text in (("connect", "Store a credential for a connector"), ("disconnect", "Remove a credential")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--user", "-u", required=True)
        cmd.add_argument("connector_key")
        if name == "connect":
            cmd.add_argument("--token", default="manual", help="Access token to store")

    serve_cmd = sub.add_parser("serve", help="Run the internal service bus")
    serve_cmd.add_argument("--host", help="Host to bind to")
    serve_cmd.add_argument("--port", type=int, help="Port to bind to")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = ConfigManager(args.config)

    level = args.log_level or str(config.get("logging.level", "INFO")).upper()
    configure_logging(
        level=getattr(logging, level, logging.INFO),
        log_dir=args.log_dir or config.get("logging.dir"),
    )
    logger = logging.getLogger("toolgate.main")

    db = DatabaseManager(args.db or config.get("database.path"))

    try:
        db.initialize()
        gateway = build_gateway(db, extra_definition_files=config.get_list("tools.extra_definitions"))

        with RequestContext():
            if args.command == "tools":
                print_tools(gateway, args.user, args.all)
            elif args.command == "resolve":
                return run_resolve(gateway, args.user, args.name)
            elif args.command == "check":
                return run_check(gateway, args.user, args.name)
            elif args.command == "permissions":
                print_permissions(gateway, args.user)
            elif args.command == "grant":
                gateway.authority.set_connector_permission(args.user, args.connector, args.tier)
                console.print(
                    f"[green]{args.connector}[/green] set to {args.tier} "
                    f"({tier_name(args.tier, args.connector)}) for {args.user}"
                )
            elif args.command == "vacation":
                settings = gateway.authority.set_vacation_mode(args.user, parse_vacation_until(args))
                until = settings.vacation_mode_until
                console.print(f"Vacation mode: {until.strftime('%d/%m/%Y') if until else 'off'}")
            elif args.command == "connect":
                db.save_credential(CredentialRecord(
                    user_id=args.user,
                    connector_key=args.connector_key,
                    access_token=args.token,
                ))
                console.print(f"[green]Connected[/green] {args.connector_key} for {args.user}")
            elif args.command == "disconnect":
                removed = db.delete_credential(args.user, args.connector_key)
                console.print(f"{'Disconnected' if removed else 'Not connected:'} {args.connector_key}")
            elif args.command == "serve":
                from infra.service_bus import create_app, run_server

                host = args.host or config.get("server.host")
                port = args.port or config.get_int("server.port", 8000)
                console.print(f"[dim]Service bus on {host}:{port}[/dim]")
                run_server(create_app(gateway), host=host, port=port)

        return 0

    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 2
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130
    except Exception as e:
        logger.exception("Fatal error")
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
