"""Presentation helpers for storage CLI output."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, TextIO

from rich import box
from rich.console import Console
from rich.table import Table


def bilingual_text(zh: str, en: Optional[str] = None) -> str:
    if not en:
        return zh
    return "{0} ({1})".format(zh, en)


def render_notice(level: str, zh: str, en: Optional[str] = None) -> str:
    prefix_map = {
        "info": bilingual_text("提示", "Info"),
        "warn": bilingual_text("警告", "Warning"),
        "error": bilingual_text("错误", "Error"),
        "success": bilingual_text("成功", "Success"),
    }
    prefix = prefix_map.get(level, bilingual_text("提示", "Info"))
    return "{0}: {1}".format(prefix, bilingual_text(zh, en))


def _is_tty(stream: TextIO, forced: Optional[bool]) -> bool:
    if forced is not None:
        return forced
    isatty = getattr(stream, "isatty", None)
    if callable(isatty):
        try:
            return bool(isatty())
        except ValueError:
            return False
    return False


def render_rows(
    title: str,
    columns: Sequence[str],
    rows: Sequence[Sequence[str]],
    stream: TextIO,
    is_tty: Optional[bool] = None,
) -> None:
    """Print a table on a terminal, ``key=value`` lines otherwise."""

    if _is_tty(stream, is_tty):
        table = Table(title=title, box=box.SIMPLE_HEAVY, show_lines=False)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*[str(cell) for cell in row])
        Console(file=stream, highlight=False, soft_wrap=True).print(table)
        return

    for row in rows:
        stream.write(" ".join("{0}={1}".format(column, cell) for column, cell in zip(columns, row)) + "\n")


def render_migration_text(summary: Dict[str, Any]) -> str:
    content = summary.get("content")
    lines = [
        bilingual_text("存储迁移", "Storage Migration"),
        "split_migrated={0}".format(bool(summary.get("split_migrated"))),
        "state_merged={0}".format(bool(summary.get("state_merged"))),
        "legacy_cleared={0}".format(bool(summary.get("legacy_cleared"))),
        "cli_path_migrated={0}".format(bool(summary.get("cli_path_migrated"))),
    ]
    if isinstance(content, dict):
        failed = content.get("failed") or []
        lines.append(
            "content_migrated={0} content_skipped_existing={1} content_failed={2}".format(
                int(content.get("migrated") or 0),
                int(content.get("skipped_existing") or 0),
                len(failed),
            )
        )
        for row in failed:
            lines.append("failed path={0} reason={1}".format(row.get("path", ""), row.get("reason", "")))
    else:
        lines.append("content_migrated=0")
    return "\n".join(lines)


def render_doctor_text(report: Dict[str, Any]) -> str:
    files = report.get("files")
    if not isinstance(files, dict):
        files = {}
    file_lines: List[str] = []
    for label in sorted(files):
        row = files[label] if isinstance(files[label], dict) else {}
        file_lines.append(
            "{0}={1} path={2}".format(label, "ok" if row.get("exists") else "missing", row.get("path", ""))
        )

    skipped = report.get("skipped")
    skipped_lines = []
    if isinstance(skipped, dict):
        skipped_lines = ["skipped {0}: {1}".format(path, reason) for path, reason in sorted(skipped.items())]

    lines = [
        bilingual_text("存储诊断", "Doctor Report"),
        "vault_root={0}".format(report.get("vault_root", "")),
        "plugin_dir={0}".format(report.get("plugin_dir", "")),
        "hostname={0}".format(report.get("hostname", "")),
        "",
        bilingual_text("文件状态", "Files"),
        *file_lines,
        "split_pending={0} legacy_state_present={1}".format(
            bool(report.get("split_pending")),
            bool(report.get("legacy_state_present")),
        ),
        "",
        bilingual_text("实体数量", "Entities"),
        "commands_loaded={0} sessions_loaded={1} mcp_servers_loaded={2}".format(
            int(report.get("commands_loaded") or 0),
            int(report.get("sessions_loaded") or 0),
            int(report.get("mcp_servers_loaded") or 0),
        ),
        "skipped_files={0}".format(len(skipped_lines)),
        *skipped_lines,
        "",
        bilingual_text("调试日志", "Debug Logs"),
        "logs_enabled={0}".format(bool(report.get("logs_enabled"))),
        "logs_active_file={0}".format(report.get("logs_active_file", "")),
        "logs_active_size_bytes={0}".format(int(report.get("logs_active_size_bytes") or 0)),
        "logs_max_file_bytes={0} logs_max_files={1}".format(
            int(report.get("logs_max_file_bytes") or 0),
            int(report.get("logs_max_files") or 0),
        ),
        "logs_write_errors={0}".format(int(report.get("logs_write_errors") or 0)),
    ]
    return "\n".join(lines)
