"""
Output module for repokeeper.

Provides consistent output formatting across all commands:
- JSONL (default): Newline-delimited JSON, one object per line, so a git
  hook or a script can parse it
- Pretty: Human-readable tables using Rich

Usage:
    from repokeeper.output import emit, emit_plan, emit_report

    emit(results, pretty=pretty)
    emit_report(report, pretty=pretty)
    emit_plan(plan, pretty=pretty)
"""

import json
import sys
from typing import Any, Dict, Iterable, List, Optional

from rich.console import Console
from rich.table import Table

from .domain.plan import Plan, ReconcileReport


def emit(
    items: Iterable[Any],
    pretty: bool = False,
    columns: Optional[List[str]] = None,
    title: Optional[str] = None,
    err: bool = False,
) -> None:
    """
    Emit items as JSONL or pretty table.

    Args:
        items: Items to emit (should have to_dict() method or be dicts)
        pretty: If True, render as table. If False, output JSONL
        columns: Column names for table (auto-detected if None)
        title: Table title
        err: If True, output to stderr instead of stdout
    """
    stream = sys.stderr if err else sys.stdout

    if pretty:
        _emit_table(items, columns, title, stream)
    else:
        _emit_jsonl(items, stream)


def _as_dict(item: Any) -> Dict[str, Any]:
    if hasattr(item, 'to_dict'):
        return item.to_dict()
    if isinstance(item, dict):
        return item
    return {'value': str(item)}


def _emit_jsonl(items: Iterable[Any], stream=None) -> None:
    for item in items:
        print(json.dumps(_as_dict(item), ensure_ascii=False), file=stream, flush=True)


def _emit_table(
    items: Iterable[Any],
    columns: Optional[List[str]] = None,
    title: Optional[str] = None,
    stream=None,
) -> None:
    rows = [_as_dict(item) for item in items]
    console = Console(file=stream)

    if not rows:
        console.print("No results found")
        return

    if not columns:
        columns = _auto_columns(rows)

    table = Table(title=title, show_header=True, header_style="bold")
    for col in columns:
        table.add_column(col)
    for row in rows:
        table.add_row(*[_format_value(row.get(col, '')) for col in columns])

    console.print(table)


def _auto_columns(rows: List[Dict]) -> List[str]:
    """Auto-detect columns from rows."""
    preferred = ['id', 'action', 'notice', 'repo', 'alias', 'path', 'target', 'tags', 'url', 'message']

    all_keys = set()
    for row in rows:
        all_keys.update(row.keys())

    columns = [col for col in preferred if col in all_keys]
    for key in sorted(all_keys):
        if key not in columns:
            columns.append(key)

    return columns[:8]


def _format_value(value: Any, max_len: int = 60) -> str:
    """Format a value for table display."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'Yes' if value else 'No'
    if isinstance(value, list):
        s = ', '.join(str(v) for v in value[:3])
        if len(value) > 3:
            s += f' (+{len(value) - 3} more)'
        return s
    if isinstance(value, dict):
        return '{...}'

    s = str(value)
    if len(s) > max_len:
        return s[:max_len-3] + '...'
    return s


def report_records(report: ReconcileReport) -> List[Dict[str, Any]]:
    """Flatten a report into the JSONL records `switch` prints."""
    records: List[Dict[str, Any]] = []
    for action in report.applied:
        records.append({'type': 'action', 'status': 'planned' if report.dry_run else 'applied',
                        **action.to_dict()})
    for action in report.skipped:
        records.append({'type': 'action', 'status': 'skipped', **action.to_dict()})
    for notice in report.notices:
        records.append({'type': 'notice', **notice.to_dict()})
    for repo_id, messages in report.failures.items():
        for message in messages:
            records.append({'type': 'failure', 'repo': repo_id, 'error': message})
    records.append(report.summary())
    return records


def emit_report(report: ReconcileReport, pretty: bool = False) -> None:
    """Emit a reconcile report as JSONL records or Rich tables."""
    if not pretty:
        _emit_jsonl(report_records(report))
        return

    console = Console()
    mode = "[bold yellow]DRY RUN[/bold yellow] " if report.dry_run else ""

    if report.applied or report.skipped:
        table = Table(title=f"{mode}Actions", show_header=True, header_style="bold")
        table.add_column("Status")
        table.add_column("Repository", style="cyan")
        table.add_column("Action")
        for action in report.applied:
            table.add_row("planned" if report.dry_run else "[green]applied[/green]",
                          action.repo_id, action.describe())
        for action in report.skipped:
            table.add_row("[yellow]skipped[/yellow]", action.repo_id, action.describe())
        console.print(table)

    for notice in report.notices:
        console.print(f"[dim]{notice.kind.value}:[/dim] {notice.message}")

    summary = report.summary()
    table = Table(title=f"{mode}Switch Summary", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    for key in ('changes', 'repos_created', 'hooks_written', 'hooks_removed',
                'links_created', 'links_rebound', 'links_removed', 'alias_changes'):
        table.add_row(key.replace('_', ' ').capitalize(), str(summary[key]))
    table.add_row("Orphans", ', '.join(summary['orphans']) or '-')
    console.print(table)

    if report.failures:
        console.print(f"\n[red]Failed repositories ({len(report.failures)}):[/red]")
        for repo_id, messages in report.failures.items():
            for message in messages:
                console.print(f"  [red]•[/red] {repo_id}: {message}")
    elif not report.dry_run:
        console.print("\n[bold green]✓[/bold green] Server matches the fleet config")


def emit_plan(plan: Plan, pretty: bool = False) -> None:
    """Emit pending actions, notices and planning errors without applying them."""
    records: List[Dict[str, Any]] = [{'type': 'pending', **a.to_dict()} for a in plan.ordered()]
    records.extend({'type': 'notice', **n.to_dict()} for n in plan.notices)
    for repo_id, messages in plan.errors.items():
        records.extend({'type': 'error', 'repo': repo_id, 'error': m} for m in messages)

    if not pretty:
        _emit_jsonl(records)
        _emit_jsonl([{'type': 'summary', 'in_sync': plan.empty and not plan.errors,
                      'pending': len(plan.actions), 'errors': len(plan.errors)}])
        return

    console = Console()
    if plan.empty and not plan.errors:
        console.print("[bold green]✓[/bold green] In sync: nothing to do")
    else:
        table = Table(title="Drift", show_header=True, header_style="bold")
        table.add_column("Repository", style="cyan")
        table.add_column("Pending")
        for action in plan.ordered():
            table.add_row(action.repo_id, action.describe())
        for repo_id, messages in plan.errors.items():
            for message in messages:
                table.add_row(repo_id, f"[red]{message}[/red]")
        console.print(table)
    for notice in plan.notices:
        console.print(f"[dim]{notice.kind.value}:[/dim] {notice.message}")
