"""fleetdash CLI - watch the fleet and run lifecycle commands.

    fleetdash watch                 live table, re-printed on every push
    fleetdash list                  one-off HTTP snapshot
    fleetdash create|start-all|stop-all|restart-all|purge
    fleetdash start|stop|restart|delete|inspect ID

Exit code is 0 on success, 1 when a command fails or is refused.
"""

import argparse
import asyncio
import sys
from collections.abc import Iterable
from datetime import datetime

from fleetdash import __version__
from fleetdash.app.config import get_settings
from fleetdash.app.logging import setup_logging
from fleetdash.app.metrics import setup_metrics
from fleetdash.core.domain.instance import Action
from fleetdash.core.domain.status import sort_instances
from fleetdash.core.errors import FleetDashError
from fleetdash.core.models.instance import Instance
from fleetdash.core.retryable import with_retry
from fleetdash.session.controller import DashboardSession, OutcomeStatus

ID_WIDTH = 12

# CLI command name -> Action
FLEET_COMMANDS = {
    "create": Action.CREATE,
    "start-all": Action.START_ALL,
    "stop-all": Action.STOP_ALL,
    "restart-all": Action.RESTART_ALL,
    "purge": Action.PURGE,
}
INSTANCE_COMMANDS = {
    "start": Action.START,
    "stop": Action.STOP,
    "restart": Action.RESTART,
    "delete": Action.DELETE,
}
DESTRUCTIVE = {Action.DELETE, Action.PURGE}


def short_id(instance_id: str) -> str:
    if len(instance_id) <= ID_WIDTH:
        return instance_id
    return instance_id[: ID_WIDTH - 1] + "…"


def format_port(port: int) -> str:
    return str(port) if port else "-"


def render_table(instances: Iterable[Instance]) -> str:
    """Render instances as a fixed-width table (caller sorts)."""
    rows = list(instances)
    if not rows:
        return "No instances"

    lines = [
        f"{'ID':<{ID_WIDTH}}  {'STATUS':<16}  {'SITE':>6}  {'ADMIN':>6}  {'CONTAINERS':<14}",
        "-" * (ID_WIDTH + 50),
    ]
    for instance in rows:
        lines.append(
            f"{short_id(instance.id):<{ID_WIDTH}}  "
            f"{instance.status:<16}  "
            f"{format_port(instance.nginx_port):>6}  "
            f"{format_port(instance.adminer_port):>6}  "
            f"{instance.container_summary():<14}"
        )
    return "\n".join(lines)


# =============================================================================
# Commands
# =============================================================================


async def list_instances() -> int:
    """Print one HTTP snapshot, sorted by status."""
    session = DashboardSession.from_settings()
    try:
        instances = await with_retry(session.client.list_instances)
    except Exception as exc:
        print(f"Error: could not list instances: {exc}", file=sys.stderr)
        return 1
    finally:
        await session.client.close()
    print(render_table(sort_instances(instances)))
    return 0


async def inspect_instance(instance_id: str) -> int:
    """Ask the server to re-inspect one instance and print it."""
    session = DashboardSession.from_settings()
    try:
        instances = await session.client.inspect(instance_id)
    except Exception as exc:
        print(f"Error: could not inspect {instance_id}: {exc}", file=sys.stderr)
        return 1
    finally:
        await session.client.close()

    print(render_table(instances))
    for instance in instances:
        if instance.site_url:
            print(f"Site:     {instance.site_url}")
        if instance.database_admin_url:
            print(f"Database: {instance.database_admin_url}")
    return 0


async def watch(count: int | None = None) -> int:
    """Print the table on every applied snapshot until interrupted.

    Args:
        count: Stop after this many snapshots (None = forever).
    """
    changed = asyncio.Event()
    shown = 0
    last_version = 0

    async with DashboardSession.from_settings() as session:
        session.add_change_listener(changed.set)
        while session.channel_running or session.store.version != last_version:
            if session.store.version != last_version:
                last_version = session.store.version
                stamp = datetime.now().strftime("%H:%M:%S")
                print(f"[{stamp}] {len(session.store)} instances (channel {session.channel.state})")
                print(render_table(session.store.current()))
                print()
                shown += 1
                if count is not None and shown >= count:
                    return 0
            changed.clear()
            try:
                await asyncio.wait_for(changed.wait(), 1.0)
            except TimeoutError:
                pass

    print("Push channel closed", file=sys.stderr)
    return 1


async def run_command(action: Action, instance_id: str | None, wait: float) -> int:
    """Run one lifecycle command against a live session."""
    async with DashboardSession.from_settings() as session:
        if instance_id is not None:
            # Instance gate decisions need the instance's status
            if not await session.wait_for_snapshot(timeout=wait):
                try:
                    await session.refresh()
                except Exception as exc:
                    print(f"Error: no fleet snapshot available: {exc}", file=sys.stderr)
                    return 1
            if session.store.get(instance_id) is None:
                print(f"Error: instance '{instance_id}' not found", file=sys.stderr)
                return 1
        else:
            await session.channel.wait_open(timeout=wait)

        outcome = await session.run_action(action, instance_id)

    target = f" {instance_id}" if instance_id else ""
    if outcome.status == OutcomeStatus.REJECTED:
        print(f"Error: {action}{target} is not permitted right now", file=sys.stderr)
        return 1
    if outcome.status == OutcomeStatus.FAILED:
        message = outcome.error.message if isinstance(outcome.error, FleetDashError) else "failed"
        print(f"Error: {message}", file=sys.stderr)
        return 1
    print(f"{action}{target}: ok")
    return 0


def confirm(prompt: str) -> bool:
    answer = input(f"{prompt} [y/N]: ")
    return answer.strip().lower() == "y"


# =============================================================================
# Entry point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Live control-plane client for local WordPress instances",
        prog="fleetdash",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        help="Log level (default: LOGGING_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "text"],
        help="Log format (default: LOGGING_FORMAT or json)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # watch command
    watch_parser = subparsers.add_parser("watch", help="Show the live instance table")
    watch_parser.add_argument(
        "--count", "-n",
        type=int,
        help="Exit after this many snapshots",
    )

    # list command
    subparsers.add_parser("list", help="List instances (HTTP)")

    # fleet commands
    for name, action in FLEET_COMMANDS.items():
        fleet_parser = subparsers.add_parser(name, help=f"Run {action} on the fleet")
        fleet_parser.add_argument(
            "--wait",
            type=float,
            default=10.0,
            help="Seconds to wait for the first snapshot",
        )
        if action in DESTRUCTIVE:
            fleet_parser.add_argument(
                "--force", "-f",
                action="store_true",
                help="Skip confirmation",
            )

    # instance commands
    for name, action in INSTANCE_COMMANDS.items():
        instance_parser = subparsers.add_parser(name, help=f"{action.capitalize()} one instance")
        instance_parser.add_argument("instance_id", help="Instance ID")
        instance_parser.add_argument(
            "--wait",
            type=float,
            default=10.0,
            help="Seconds to wait for the first snapshot",
        )
        if action in DESTRUCTIVE:
            instance_parser.add_argument(
                "--force", "-f",
                action="store_true",
                help="Skip confirmation",
            )

    # inspect command
    inspect_parser = subparsers.add_parser("inspect", help="Re-inspect one instance")
    inspect_parser.add_argument("instance_id", help="Instance ID")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    json_format = None if args.log_format is None else args.log_format == "json"
    setup_logging(args.log_level, json_format=json_format)

    if args.command == "watch":
        settings = get_settings()
        if settings.metrics.enabled:
            setup_metrics(settings.metrics.port)
        try:
            code = asyncio.run(watch(args.count))
        except KeyboardInterrupt:
            code = 0

    elif args.command == "list":
        code = asyncio.run(list_instances())

    elif args.command == "inspect":
        code = asyncio.run(inspect_instance(args.instance_id))

    elif args.command in FLEET_COMMANDS or args.command in INSTANCE_COMMANDS:
        action = FLEET_COMMANDS.get(args.command) or INSTANCE_COMMANDS[args.command]
        instance_id = getattr(args, "instance_id", None)
        if action in DESTRUCTIVE and not args.force:
            target = f"instance '{instance_id}'" if instance_id else "ALL instances"
            if not confirm(f"{action.capitalize()} {target}?"):
                print("Cancelled")
                sys.exit(0)
        code = asyncio.run(run_command(action, instance_id, args.wait))

    else:
        parser.error(f"unknown command {args.command}")

    sys.exit(code)


if __name__ == "__main__":
    main()
