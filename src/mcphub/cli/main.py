"""CLI entry point for mcphub."""

from __future__ import annotations

import argparse
import json
import os
import sys
import time
from collections import deque
from typing import Any, Callable, Dict, List, Tuple

from mcphub import __version__
from mcphub.app.command_service import CommandError, CommandService
from mcphub.app.discovery.web import BindError, start_discovery_server
from mcphub.domain.preferences import AppSettings, DiscoverySettings, Theme
from mcphub.settings import SETTINGS
from mcphub.utils.logging import setup_logging
from mcphub.utils.telemetry import clear as telemetry_clear
from mcphub.utils.telemetry import iter_events as telemetry_iter
from mcphub.utils.telemetry import record_structured_event
from mcphub.utils.telemetry import summarize as telemetry_summarize

HELP_OVERVIEW = """MCP Hub keeps one registry of MCP servers and writes it into every client's config.

Typical flow:
  mcphub server add --name github --command npx --arg -y --arg @modelcontextprotocol/server-github
  mcphub instance add --name cursor --client cursor
  mcphub instance enable <instance-id> <server-id>
  mcphub sync <instance-id>
"""

# (payload for --json, text for humans)
Outcome = Tuple[Any, str]


def _build_service() -> CommandService:
    return CommandService.from_settings(SETTINGS)


def _parse_env_pairs(values: List[str] | None) -> Dict[str, str]:
    env: Dict[str, str] = {}
    for raw in values or []:
        if "=" not in raw:
            raise CommandError(f"Environment entries must be KEY=VALUE, got '{raw}'")
        key, value = raw.split("=", 1)
        key = key.strip()
        if not key:
            raise CommandError(f"Environment entry has an empty key: '{raw}'")
        env[key] = value
    return env


def _run(group: str, command: str, args: argparse.Namespace, action: Callable[[CommandService], Outcome]) -> int:
    event = f"{group}.{command}"
    event_context = {"command": command}
    record_structured_event(SETTINGS, event, status="start", component=group, payload=event_context)
    start = time.perf_counter()
    service: CommandService | None = None
    try:
        service = _build_service()
        payload, text = action(service)
    except CommandError as exc:
        duration = (time.perf_counter() - start) * 1000
        record_structured_event(
            SETTINGS,
            event,
            status="error",
            level="error",
            component=group,
            duration_ms=duration,
            payload=event_context | {"error": str(exc)},
        )
        print(f"{group} {command} failed: {exc}", file=sys.stderr)
        return 1
    finally:
        if service is not None:
            service.close()

    if getattr(args, "json", False):
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    elif text:
        print(text)
    duration = (time.perf_counter() - start) * 1000
    record_structured_event(
        SETTINGS,
        event,
        status="success",
        component=group,
        duration_ms=duration,
        payload=event_context,
    )
    return 0


# ---- server ----


def _server_cmd(args: argparse.Namespace) -> int:
    command = args.server_command

    def action(service: CommandService) -> Outcome:
        if command == "list":
            servers = service.list_servers()
            if not servers:
                return {"servers": []}, "server list: no servers registered"
            lines = ["server list:"]
            for server in servers:
                lines.append(f"  - {server.name} [{server.id}]: {server.command} {' '.join(server.args)}".rstrip())
            return {"servers": [server.to_dict() for server in servers]}, "\n".join(lines)
        if command == "show":
            server = service.get_server(args.server_id)
            return server.to_dict(), _format_server(server.to_dict())
        if command == "add":
            server = service.create_server(
                args.name,
                args.server_cmd,
                list(args.args or []),
                env=_parse_env_pairs(args.env),
                tags=list(args.tags or []),
                description=args.description,
            )
            return {"status": "ok", "server": server.to_dict()}, f"server add: registered {server.name} ({server.id})"
        if command == "update":
            changes: Dict[str, Any] = {}
            if args.name is not None:
                changes["name"] = args.name
            if args.server_cmd is not None:
                changes["command"] = args.server_cmd
            if args.description is not None:
                changes["description"] = args.description
            if args.args is not None:
                changes["args"] = list(args.args)
            if args.env is not None:
                changes["env"] = _parse_env_pairs(args.env)
            if args.tags is not None:
                changes["tags"] = list(args.tags)
            server = service.update_server(args.server_id, **changes)
            return {"status": "ok", "server": server.to_dict()}, f"server update: {server.name} updated"
        service.delete_server(args.server_id)
        return {"status": "removed", "id": args.server_id}, f"server remove: {args.server_id} removed"

    return _run("server", command, args, action)


def _format_server(payload: Dict[str, Any]) -> str:
    lines = [f"{payload['name']} [{payload['id']}]", f"  command: {payload['command']}"]
    if payload.get("args"):
        lines.append(f"  args: {' '.join(payload['args'])}")
    if payload.get("env"):
        lines.append(f"  env: {', '.join(sorted(payload['env']))}")
    if payload.get("tags"):
        lines.append(f"  tags: {', '.join(payload['tags'])}")
    if payload.get("description"):
        lines.append(f"  description: {payload['description']}")
    return "\n".join(lines)


# ---- instance ----


def _instance_cmd(args: argparse.Namespace) -> int:
    command = args.instance_command

    def action(service: CommandService) -> Outcome:
        if command == "list":
            instances = service.list_instances()
            if not instances:
                return {"instances": []}, "instance list: no instances tracked"
            lines = ["instance list:"]
            for instance in instances:
                marker = " (default)" if instance.is_default else ""
                lines.append(
                    f"  - {instance.name}{marker} [{instance.id}] {instance.client_kind.display_name}: "
                    f"{instance.config_path} ({len(instance.enabled_servers)} enabled)"
                )
            return {"instances": [instance.to_dict() for instance in instances]}, "\n".join(lines)
        if command == "show":
            instance = service.get_instance(args.instance_id)
            payload = instance.to_dict()
            text = "\n".join(f"  {key}: {value}" for key, value in payload.items())
            return payload, f"{instance.name}\n{text}"
        if command == "add":
            instance = service.create_instance(args.name, args.client, args.config_path, is_default=args.default)
            return (
                {"status": "ok", "instance": instance.to_dict()},
                f"instance add: tracking {instance.name} -> {instance.config_path} ({instance.id})",
            )
        if command == "update":
            instance = service.update_instance(
                args.instance_id,
                name=args.name,
                config_path=args.config_path,
                is_default=args.default,
            )
            return {"status": "ok", "instance": instance.to_dict()}, f"instance update: {instance.name} updated"
        if command in {"enable", "disable"}:
            enabled = command == "enable"
            service.set_server_enabled(args.instance_id, args.server_id, enabled)
            state = "enabled" if enabled else "disabled"
            payload = {"instanceId": args.instance_id, "serverId": args.server_id, "enabled": enabled}
            return payload, f"instance {command}: {args.server_id} {state} on {args.instance_id}"
        if command == "default-path":
            path = service.get_default_config_path(args.client)
            if path is None:
                raise CommandError(f"No default config location for '{args.client}' on this host")
            return {"clientType": args.client, "configPath": path}, path
        service.delete_instance(args.instance_id)
        return {"status": "removed", "id": args.instance_id}, f"instance remove: {args.instance_id} removed"

    return _run("instance", command, args, action)


# ---- sync / import / detect / backups ----


def _sync_cmd(args: argparse.Namespace) -> int:
    command = "all" if args.all or not args.instance_id else "instance"

    def action(service: CommandService) -> Outcome:
        if command == "all":
            synced = service.sync_all_instances()
            return {"synced": synced}, f"sync: {len(synced)} instance(s) written"
        result = service.sync_instance(args.instance_id)
        text = f"sync: wrote {len(result.server_keys)} server(s) to {result.config_path}"
        if result.backup_path:
            text += f"\n  backup: {result.backup_path}"
        return result.to_dict(), text

    return _run("sync", command, args, action)


def _import_cmd(args: argparse.Namespace) -> int:
    def action(service: CommandService) -> Outcome:
        servers = service.import_from_file(args.path)
        names = ", ".join(server.name for server in servers) or "none"
        return {"imported": [server.to_dict() for server in servers]}, f"import: {len(servers)} server(s) ({names})"

    return _run("import", "file", args, action)


def _detect_cmd(args: argparse.Namespace) -> int:
    def action(service: CommandService) -> Outcome:
        detected = service.detect_clients()
        lines = ["detect:"] if detected else ["detect: no clients found"]
        for item in detected:
            state = "config present" if item.has_config else "no config yet"
            lines.append(f"  - {item.client_kind.display_name}: {item.config_path} ({state})")
        return {"clients": [item.to_dict() for item in detected]}, "\n".join(lines)

    return _run("detect", "clients", args, action)


def _config_cmd(args: argparse.Namespace) -> int:
    def action(service: CommandService) -> Outcome:
        entries = service.read_config_file(args.path)
        payload = {"mcpServers": {name: entry.to_dict() for name, entry in entries.items()}}
        lines = [f"config read: {len(entries)} server(s) in {args.path}"]
        lines.extend(f"  - {name}: {entry.command} {' '.join(entry.args)}".rstrip() for name, entry in entries.items())
        return payload, "\n".join(lines)

    return _run("config", "read", args, action)


def _backups_cmd(args: argparse.Namespace) -> int:
    command = args.backups_command

    def action(service: CommandService) -> Outcome:
        if command == "restore":
            service.restore_backup(args.backup_id)
            return {"status": "restored"}, ""
        backups = service.get_backups(args.instance_id)
        lines = [f"backups: {len(backups)} for {args.instance_id}"]
        lines.extend(f"  - {item.created_at.isoformat()} {item.backup_path}" for item in backups)
        return {"backups": [item.to_dict() for item in backups]}, "\n".join(lines)

    return _run("backups", command, args, action)


def _health_cmd(args: argparse.Namespace) -> int:
    def action(service: CommandService) -> Outcome:
        health = service.check_server_health(args.server_id)
        text = f"health: {health.status.value}"
        if health.error_message:
            text += f" ({health.error_message})"
        return health.to_dict(), text

    return _run("health", "check", args, action)


# ---- settings ----


def _settings_cmd(args: argparse.Namespace) -> int:
    command = args.settings_command

    def action(service: CommandService) -> Outcome:
        current = service.get_settings()
        if command == "set":
            current = service.save_settings(_apply_settings_args(current, args))
        payload = current.to_dict()
        return payload, json.dumps(payload, ensure_ascii=False, indent=2)

    return _run("settings", command, args, action)


def _apply_settings_args(current: AppSettings, args: argparse.Namespace) -> AppSettings:
    data = current.to_dict()
    if args.theme is not None:
        data["theme"] = Theme(args.theme).value
    if args.auto_start is not None:
        data["autoStart"] = args.auto_start
    if args.backups is not None:
        data["createBackups"] = args.backups
    if args.retention_days is not None:
        if args.retention_days < 0:
            raise CommandError("Retention days must not be negative")
        data["backupRetentionDays"] = args.retention_days
    return AppSettings.from_dict(data)


# ---- discovery ----


def _discovery_cmd(args: argparse.Namespace) -> int:
    command = args.discovery_command
    if command == "serve":
        return _discovery_serve(args)

    def action(service: CommandService) -> Outcome:
        if command in {"enable", "disable"}:
            status = service.update_discovery_settings(_discovery_settings_from_args(service, args))
        elif command == "refresh":
            status = service.refresh_discovery()
        elif command == "port-check":
            available = service.check_port_available(args.port)
            state = "available" if available else "in use"
            return {"port": args.port, "available": available}, f"discovery port-check: {args.port} {state}"
        else:
            status = service.discovery_status()
        return status.to_dict(), _format_discovery(status.to_dict())

    return _run("discovery", command, args, action)


def _discovery_settings_from_args(service: CommandService, args: argparse.Namespace) -> DiscoverySettings:
    current = service.get_discovery_settings()
    enabled = args.discovery_command == "enable"
    both = not args.mirror and not args.http
    mirror = enabled if (args.mirror or both) else current.mcp_directory_enabled
    http = enabled if (args.http or both) else current.http_server_enabled
    port = getattr(args, "port", None)
    try:
        return DiscoverySettings(
            mcp_directory_enabled=mirror,
            http_server_enabled=http,
            http_server_port=port if port is not None else current.http_server_port,
        )
    except ValueError as exc:
        raise CommandError(str(exc)) from exc


def _format_discovery(payload: Dict[str, Any]) -> str:
    lines = [
        "discovery:",
        f"  mirror: {'on' if payload['mcpDirectoryEnabled'] else 'off'} ({payload['mcpDirectory']})",
        f"  http: {'on' if payload['httpServerEnabled'] else 'off'}"
        f" ({'running' if payload['httpServerRunning'] else 'stopped'}, port {payload['httpServerPort']})",
    ]
    if payload.get("url"):
        lines.append(f"  url: {payload['url']}")
    if payload.get("lastError"):
        lines.append(f"  last error: {payload['lastError']}")
    return "\n".join(lines)


def _discovery_serve(args: argparse.Namespace) -> int:
    """Run the endpoint in the foreground until interrupted."""

    event = "discovery.serve"
    record_structured_event(SETTINGS, event, status="start", component="discovery", payload={})
    start = time.perf_counter()
    try:
        service = _build_service()
    except CommandError as exc:
        print(f"discovery serve failed: {exc}", file=sys.stderr)
        return 1
    try:
        settings = service.get_discovery_settings()
        port = args.port if args.port is not None else settings.http_server_port
        if settings.mcp_directory_enabled:
            service.refresh_discovery()
        handle = start_discovery_server(port, service.list_servers())
    except (CommandError, BindError) as exc:
        service.close()
        duration = (time.perf_counter() - start) * 1000
        record_structured_event(
            SETTINGS,
            event,
            status="error",
            level="error",
            component="discovery",
            duration_ms=duration,
            payload={"error": str(exc)},
        )
        print(f"discovery serve failed: {exc}", file=sys.stderr)
        return 1
    print(f"discovery serve: listening on {handle.url} (Ctrl+C to stop)")
    try:
        while handle.running:
            time.sleep(max(args.interval, 0.5))
            handle.update_servers(service.list_servers())
    except KeyboardInterrupt:
        print("discovery serve: stopping")
    finally:
        handle.shutdown()
        service.close()
    duration = (time.perf_counter() - start) * 1000
    record_structured_event(SETTINGS, event, status="success", component="discovery", duration_ms=duration, payload={})
    return 0


# ---- telemetry ----


def _telemetry_cmd(args: argparse.Namespace) -> int:
    if args.telemetry_command == "report":
        recent = getattr(args, "recent", 0)
        events = list(telemetry_iter(SETTINGS))
        if recent and recent > 0:
            events = events[-recent:]
        print(json.dumps(telemetry_summarize(events), indent=2, ensure_ascii=False))
        return 0
    if args.telemetry_command == "clear":
        telemetry_clear(SETTINGS)
        print("Telemetry log cleared")
        return 0
    if args.telemetry_command == "tail":
        window: deque = deque(maxlen=args.limit)
        for evt in telemetry_iter(SETTINGS):
            window.append(evt)
        for evt in window:
            print(json.dumps(evt, ensure_ascii=False))
        return 0
    print("Unsupported telemetry command", file=sys.stderr)
    return 2


# ---- parser ----


def _add_json(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")


def _add_server_fields(parser: argparse.ArgumentParser, *, required: bool) -> None:
    parser.add_argument("--name", required=required)
    parser.add_argument("--command", dest="server_cmd", required=required, help="Executable that starts the server")
    parser.add_argument("--arg", dest="args", action="append", help="Command argument (repeatable, ordered)")
    parser.add_argument("--env", action="append", help="Environment variable as KEY=VALUE (repeatable)")
    parser.add_argument("--tag", dest="tags", action="append", help="Tag (repeatable)")
    parser.add_argument("--description", help="Description (pass an empty string to clear it on update)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcphub",
        description=HELP_OVERVIEW,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"mcphub {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    server_cmd = sub.add_parser("server", help="Manage registered MCP servers")
    server_sub = server_cmd.add_subparsers(dest="server_command", required=True)
    server_list = server_sub.add_parser("list", help="List registered servers")
    _add_json(server_list)
    server_show = server_sub.add_parser("show", help="Show one server")
    server_show.add_argument("server_id")
    _add_json(server_show)
    server_add = server_sub.add_parser("add", help="Register a new server")
    _add_server_fields(server_add, required=True)
    _add_json(server_add)
    server_update = server_sub.add_parser("update", help="Edit a registered server")
    server_update.add_argument("server_id")
    _add_server_fields(server_update, required=False)
    _add_json(server_update)
    server_remove = server_sub.add_parser("remove", help="Remove a server from the registry")
    server_remove.add_argument("server_id")
    _add_json(server_remove)
    server_cmd.set_defaults(func=_server_cmd)

    instance_cmd = sub.add_parser("instance", help="Manage tracked client instances")
    instance_sub = instance_cmd.add_subparsers(dest="instance_command", required=True)
    instance_list = instance_sub.add_parser("list", help="List tracked instances")
    _add_json(instance_list)
    instance_show = instance_sub.add_parser("show", help="Show one instance")
    instance_show.add_argument("instance_id")
    _add_json(instance_show)
    instance_add = instance_sub.add_parser("add", help="Track a client config file")
    instance_add.add_argument("--name", required=True)
    instance_add.add_argument("--client", required=True, help="Client type, e.g. cursor or claude-code")
    instance_add.add_argument("--path", dest="config_path", help="Config path (default: the client's usual location)")
    instance_add.add_argument("--default", action="store_true", help="Mark as the default instance")
    _add_json(instance_add)
    instance_update = instance_sub.add_parser("update", help="Edit a tracked instance")
    instance_update.add_argument("instance_id")
    instance_update.add_argument("--name")
    instance_update.add_argument("--path", dest="config_path")
    instance_update.add_argument("--default", action=argparse.BooleanOptionalAction, default=None)
    _add_json(instance_update)
    instance_remove = instance_sub.add_parser("remove", help="Stop tracking an instance")
    instance_remove.add_argument("instance_id")
    _add_json(instance_remove)
    for name, help_text in (("enable", "Enable a server on an instance"), ("disable", "Disable a server on an instance")):
        toggle = instance_sub.add_parser(name, help=help_text)
        toggle.add_argument("instance_id")
        toggle.add_argument("server_id")
        _add_json(toggle)
    instance_default = instance_sub.add_parser("default-path", help="Print a client's usual config location")
    instance_default.add_argument("client")
    _add_json(instance_default)
    instance_cmd.set_defaults(func=_instance_cmd)

    sync_cmd = sub.add_parser("sync", help="Write enabled servers into client config files")
    sync_cmd.add_argument("instance_id", nargs="?", help="Instance to sync (default: all)")
    sync_cmd.add_argument("--all", action="store_true", help="Sync every tracked instance")
    _add_json(sync_cmd)
    sync_cmd.set_defaults(func=_sync_cmd)

    import_cmd = sub.add_parser("import", help="Import servers from a client config file")
    import_cmd.add_argument("path")
    _add_json(import_cmd)
    import_cmd.set_defaults(func=_import_cmd)

    detect_cmd = sub.add_parser("detect", help="Detect installed MCP clients")
    _add_json(detect_cmd)
    detect_cmd.set_defaults(func=_detect_cmd)

    config_cmd = sub.add_parser("config", help="Inspect a client config file")
    config_sub = config_cmd.add_subparsers(dest="config_command", required=True)
    config_read = config_sub.add_parser("read", help="List the servers declared in a config file")
    config_read.add_argument("path")
    _add_json(config_read)
    config_cmd.set_defaults(func=_config_cmd)

    backups_cmd = sub.add_parser("backups", help="Inspect config backups")
    backups_sub = backups_cmd.add_subparsers(dest="backups_command", required=True)
    backups_list = backups_sub.add_parser("list", help="List backups for an instance")
    backups_list.add_argument("instance_id")
    _add_json(backups_list)
    backups_restore = backups_sub.add_parser("restore", help="Restore a backup")
    backups_restore.add_argument("backup_id")
    _add_json(backups_restore)
    backups_cmd.set_defaults(func=_backups_cmd)

    health_cmd = sub.add_parser("health", help="Check that a server's command runs")
    health_cmd.add_argument("server_id")
    _add_json(health_cmd)
    health_cmd.set_defaults(func=_health_cmd)

    settings_cmd = sub.add_parser("settings", help="Show or change preferences")
    settings_sub = settings_cmd.add_subparsers(dest="settings_command", required=True)
    settings_show = settings_sub.add_parser("show", help="Show preferences")
    _add_json(settings_show)
    settings_set = settings_sub.add_parser("set", help="Change preferences")
    settings_set.add_argument("--theme", choices=[theme.value for theme in Theme])
    settings_set.add_argument("--auto-start", action=argparse.BooleanOptionalAction, default=None)
    settings_set.add_argument("--backups", action=argparse.BooleanOptionalAction, default=None)
    settings_set.add_argument("--retention-days", type=int)
    _add_json(settings_set)
    settings_cmd.set_defaults(func=_settings_cmd)

    discovery_cmd = sub.add_parser("discovery", help="Manage local discovery surfaces")
    discovery_sub = discovery_cmd.add_subparsers(dest="discovery_command", required=True)
    discovery_status = discovery_sub.add_parser("status", help="Show discovery state")
    _add_json(discovery_status)
    discovery_enable = discovery_sub.add_parser("enable", help="Enable the mirror and/or HTTP endpoint")
    discovery_disable = discovery_sub.add_parser("disable", help="Disable the mirror and/or HTTP endpoint")
    for toggle in (discovery_enable, discovery_disable):
        toggle.add_argument("--mirror", action="store_true", help="Only the ~/.mcp mirror")
        toggle.add_argument("--http", action="store_true", help="Only the HTTP endpoint")
        _add_json(toggle)
    discovery_enable.add_argument("--port", type=int, help="HTTP endpoint port")
    discovery_refresh = discovery_sub.add_parser("refresh", help="Republish the current registry")
    _add_json(discovery_refresh)
    discovery_port = discovery_sub.add_parser("port-check", help="Check whether a port can be bound")
    discovery_port.add_argument("port", type=int)
    _add_json(discovery_port)
    discovery_serve = discovery_sub.add_parser("serve", help="Run the HTTP endpoint in the foreground")
    discovery_serve.add_argument("--port", type=int, help="Port (default: stored setting)")
    discovery_serve.add_argument("--interval", type=float, default=2.0, help="Registry poll interval in seconds")
    discovery_cmd.set_defaults(func=_discovery_cmd)

    telemetry_cmd = sub.add_parser("telemetry", help="Inspect local telemetry events")
    telemetry_sub = telemetry_cmd.add_subparsers(dest="telemetry_command", required=True)
    telemetry_report = telemetry_sub.add_parser("report", help="Summarise recorded events")
    telemetry_report.add_argument("--recent", type=int, default=0)
    telemetry_sub.add_parser("clear", help="Delete the telemetry log")
    telemetry_tail = telemetry_sub.add_parser("tail", help="Print the latest events")
    telemetry_tail.add_argument("--limit", type=int, default=20)
    telemetry_cmd.set_defaults(func=_telemetry_cmd)

    return parser


def main(argv: list[str] | None = None) -> int:
    setup_logging(os.environ.get("MCPHUB_LOG_LEVEL", "WARNING"))
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
