"""Typer CLI entrypoints for claudian-storage."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import typer

from claudian_storage.config import load_settings
from claudian_storage.runtime import StorageRuntime
from claudian_storage.storage.errors import StorageConfigError, StorageError
from claudian_storage.storage.mcp import split_counts
from claudian_storage.ui.render import (
    render_doctor_text,
    render_migration_text,
    render_notice,
    render_rows,
)

app = typer.Typer(
    no_args_is_help=True,
    help="Claudian 存储迁移工具 (Storage and migration tool)",
)

commands_app = typer.Typer(help="命令管理 (Slash commands)")
sessions_app = typer.Typer(help="会话管理 (Conversation sessions)")
mcp_app = typer.Typer(help="MCP 服务器 (MCP servers)")
permissions_app = typer.Typer(help="权限规则 (Permission rules)")
app.add_typer(commands_app, name="commands")
app.add_typer(sessions_app, name="sessions")
app.add_typer(mcp_app, name="mcp")
app.add_typer(permissions_app, name="permissions")

VAULT_HELP = "Vault 根目录 (Vault root directory)"
PLUGIN_DIR_HELP = "插件数据目录 (Plugin data directory)"


def _normalize_format(output_format: str) -> str:
    normalized = output_format.strip().lower()
    if normalized not in {"json", "text"}:
        typer.echo(
            render_notice(
                "error",
                "不支持的格式：{0}".format(output_format),
                "Unsupported format: {0}".format(output_format),
            ),
            err=True,
        )
        raise typer.Exit(code=2)
    return normalized


def _open_runtime(vault: Path, plugin_dir: Optional[Path]) -> StorageRuntime:
    try:
        return StorageRuntime(load_settings(vault, plugin_dir=plugin_dir))
    except StorageConfigError as exc:
        typer.echo(render_notice("error", str(exc)), err=True)
        raise typer.Exit(code=2) from exc


def _fail_storage(exc: StorageError) -> None:
    typer.echo(render_notice("error", str(exc)), err=True)
    raise typer.Exit(code=1) from exc


@app.command("migrate")
def migrate_cmd(
    vault: Path = typer.Option(Path("."), "--vault", help=VAULT_HELP),
    plugin_dir: Optional[Path] = typer.Option(None, "--plugin-dir", help=PLUGIN_DIR_HELP),
    output_format: str = typer.Option("text", "--format", help="输出格式：json|text (Output format)"),
) -> None:
    normalized_format = _normalize_format(output_format)
    runtime = _open_runtime(vault, plugin_dir)
    try:
        runtime.initialize()
    except StorageError as exc:
        _fail_storage(exc)

    summary = runtime.coordinator.last_summary
    payload = summary.to_dict() if summary is not None else {}
    if normalized_format == "json":
        typer.echo(json.dumps(payload, ensure_ascii=True, indent=2))
        return
    typer.echo(render_migration_text(payload))


@app.command("doctor")
def doctor_cmd(
    vault: Path = typer.Option(Path("."), "--vault", help=VAULT_HELP),
    plugin_dir: Optional[Path] = typer.Option(None, "--plugin-dir", help=PLUGIN_DIR_HELP),
    output_format: str = typer.Option("json", "--format", help="输出格式：json|text (Output format)"),
) -> None:
    normalized_format = _normalize_format(output_format)
    runtime = _open_runtime(vault, plugin_dir)
    report = runtime.doctor_report()
    if normalized_format == "json":
        typer.echo(json.dumps(report, ensure_ascii=True, indent=2))
        return
    typer.echo(render_doctor_text(report))


@commands_app.command("list")
def commands_list_cmd(
    vault: Path = typer.Option(Path("."), "--vault", help=VAULT_HELP),
    plugin_dir: Optional[Path] = typer.Option(None, "--plugin-dir", help=PLUGIN_DIR_HELP),
) -> None:
    runtime = _open_runtime(vault, plugin_dir)
    report = runtime.coordinator.commands.load_all()
    if not report.items and not report.skipped:
        typer.echo(render_notice("info", "未找到命令。", "No commands found."))
        return
    render_rows(
        "Commands",
        ("name", "id", "description"),
        [(item.name, item.id, item.description or "") for item in report.items],
        sys.stdout,
    )
    for path, reason in sorted(report.skipped.items()):
        typer.echo(render_notice("warn", "已跳过 {0}".format(path), reason), err=True)


@sessions_app.command("list")
def sessions_list_cmd(
    vault: Path = typer.Option(Path("."), "--vault", help=VAULT_HELP),
    plugin_dir: Optional[Path] = typer.Option(None, "--plugin-dir", help=PLUGIN_DIR_HELP),
) -> None:
    runtime = _open_runtime(vault, plugin_dir)
    rows = runtime.coordinator.sessions.list_metadata()
    if not rows:
        typer.echo(render_notice("info", "未找到会话。", "No sessions found."))
        return
    render_rows(
        "Sessions",
        ("id", "title", "messages", "updated_at", "preview"),
        [(row.id, row.title, str(row.message_count), str(row.updated_at), row.preview) for row in rows],
        sys.stdout,
    )


@mcp_app.command("list")
def mcp_list_cmd(
    vault: Path = typer.Option(Path("."), "--vault", help=VAULT_HELP),
    plugin_dir: Optional[Path] = typer.Option(None, "--plugin-dir", help=PLUGIN_DIR_HELP),
) -> None:
    runtime = _open_runtime(vault, plugin_dir)
    report = runtime.coordinator.mcp.load_all()
    for path, reason in sorted(report.skipped.items()):
        typer.echo(render_notice("warn", "已跳过 {0}".format(path), reason), err=True)
    if not report.items:
        typer.echo(render_notice("info", "未配置 MCP 服务器。", "No MCP servers configured."))
        return
    render_rows(
        "MCP Servers",
        ("name", "transport", "enabled", "context_saving"),
        [
            (entry.name, entry.transport, str(entry.enabled).lower(), str(entry.context_saving).lower())
            for entry in report.items
        ],
        sys.stdout,
    )
    enabled, context_saving = split_counts(report.items)
    typer.echo("enabled={0} context_saving={1}".format(enabled, context_saving))


@permissions_app.command("list")
def permissions_list_cmd(
    vault: Path = typer.Option(Path("."), "--vault", help=VAULT_HELP),
    plugin_dir: Optional[Path] = typer.Option(None, "--plugin-dir", help=PLUGIN_DIR_HELP),
) -> None:
    runtime = _open_runtime(vault, plugin_dir)
    try:
        permissions = runtime.coordinator.agent_settings.get_permissions()
    except StorageError as exc:
        _fail_storage(exc)
    rows = permissions.all_rules()
    if not rows:
        typer.echo(render_notice("info", "未配置权限规则。", "No permission rules configured."))
        return
    render_rows("Permissions", ("bucket", "rule"), rows, sys.stdout)


def _change_rule(vault: Path, plugin_dir: Optional[Path], bucket: str, rule: str) -> None:
    runtime = _open_runtime(vault, plugin_dir)
    store = runtime.coordinator.agent_settings
    try:
        if bucket == "allow":
            store.add_allow_rule(rule)
        elif bucket == "deny":
            store.add_deny_rule(rule)
        else:
            store.add_ask_rule(rule)
    except ValueError as exc:
        typer.echo(render_notice("error", str(exc)), err=True)
        raise typer.Exit(code=2) from exc
    except StorageError as exc:
        _fail_storage(exc)
    typer.echo(render_notice("success", "已添加规则 {0}={1}".format(bucket, rule), "Rule added"))


@permissions_app.command("allow")
def permissions_allow_cmd(
    rule: str = typer.Argument(..., help="规则，例如 Bash(git status) (Rule string)"),
    vault: Path = typer.Option(Path("."), "--vault", help=VAULT_HELP),
    plugin_dir: Optional[Path] = typer.Option(None, "--plugin-dir", help=PLUGIN_DIR_HELP),
) -> None:
    _change_rule(vault, plugin_dir, "allow", rule)


@permissions_app.command("deny")
def permissions_deny_cmd(
    rule: str = typer.Argument(..., help="规则，例如 Bash(rm *) (Rule string)"),
    vault: Path = typer.Option(Path("."), "--vault", help=VAULT_HELP),
    plugin_dir: Optional[Path] = typer.Option(None, "--plugin-dir", help=PLUGIN_DIR_HELP),
) -> None:
    _change_rule(vault, plugin_dir, "deny", rule)


@permissions_app.command("ask")
def permissions_ask_cmd(
    rule: str = typer.Argument(..., help="规则 (Rule string)"),
    vault: Path = typer.Option(Path("."), "--vault", help=VAULT_HELP),
    plugin_dir: Optional[Path] = typer.Option(None, "--plugin-dir", help=PLUGIN_DIR_HELP),
) -> None:
    _change_rule(vault, plugin_dir, "ask", rule)


@permissions_app.command("remove")
def permissions_remove_cmd(
    rule: str = typer.Argument(..., help="规则 (Rule string)"),
    vault: Path = typer.Option(Path("."), "--vault", help=VAULT_HELP),
    plugin_dir: Optional[Path] = typer.Option(None, "--plugin-dir", help=PLUGIN_DIR_HELP),
) -> None:
    runtime = _open_runtime(vault, plugin_dir)
    try:
        removed = runtime.coordinator.agent_settings.remove_rule(rule)
    except ValueError as exc:
        typer.echo(render_notice("error", str(exc)), err=True)
        raise typer.Exit(code=2) from exc
    except StorageError as exc:
        _fail_storage(exc)
    if not removed:
        typer.echo(render_notice("warn", "未找到规则：{0}".format(rule), "Rule not found"))
        return
    typer.echo(render_notice("success", "已删除规则：{0}".format(rule), "Rule removed"))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
