from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from rich import box
from rich.console import Console
from rich.table import Table


def _fmt_us(value: Optional[float]) -> str:
    if value is None:
        return "-"
    if value >= 1_000_000:
        return f"{value / 1_000_000:.2f}s"
    if value >= 1_000:
        return f"{value / 1_000:.2f}ms"
    return f"{value:.0f}µs"


def _summary_table(result: Mapping[str, Any]) -> Table:
    profile = result.get("profile") or {}
    title = f"IoT Workload :: {result.get('phase', '?')} on {result.get('backend', '?')}"
    table = Table(title=title, box=box.ROUNDED, show_header=False)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right", style="bold green")

    table.add_row("Threads", str(result.get("threads", 0)))
    table.add_row("Operations", f"{result.get('operations', 0):,}")
    table.add_row("Failed operations", f"{result.get('failed_operations', 0):,}")
    table.add_row("Duration (s)", f"{result.get('duration_seconds', 0.0):.2f}")
    table.add_row("Throughput (ops/s)", f"{result.get('throughput_ops_per_sec', 0.0):,.2f}")
    target = result.get("target_ops_per_sec") or 0
    table.add_row("Target (ops/s)", f"{target:,.0f}" if target else "unthrottled")

    peak_rss = profile.get("peak_rss_bytes")
    table.add_row("Peak Memory (MB)", f"{peak_rss / (1024 * 1024):.2f}" if peak_rss else "N/A")
    cpu = profile.get("cpu_percent")
    table.add_row("CPU %", f"{cpu:.1f}" if cpu is not None else "N/A")
    if result.get("stopped_early"):
        table.add_row("Stopped early", "[yellow]yes[/yellow]")
    for worker, error in (result.get("worker_errors") or {}).items():
        table.add_row(f"{worker} error", f"[red]{error}[/red]")
    return table


def _latency_table(measurements: Mapping[str, Any]) -> Table:
    table = Table(title="Latency by outcome label", box=box.ROUNDED, caption="Sorted by label")
    table.add_column("Label", style="cyan", no_wrap=True)
    table.add_column("Count", justify="right", style="magenta")
    table.add_column("Mean", justify="right", style="green")
    table.add_column("p50", justify="right")
    table.add_column("p95", justify="right")
    table.add_column("p99", justify="right", style="bold")
    table.add_column("Max", justify="right", style="red")
    table.add_column("Intended p99", justify="right", style="yellow")

    intended: Dict[str, Any] = measurements.get("intended_latency") or {}
    for label, summary in sorted((measurements.get("latency") or {}).items()):
        intended_p99 = (intended.get(label) or {}).get("p99_us")
        table.add_row(
            label,
            f"{summary['count']:,}",
            _fmt_us(summary["mean_us"]),
            _fmt_us(summary["p50_us"]),
            _fmt_us(summary["p95_us"]),
            _fmt_us(summary["p99_us"]),
            _fmt_us(summary["max_us"]),
            _fmt_us(intended_p99),
        )
    return table


def _counts_table(title: str, counts: Mapping[str, Mapping[str, int]], column: str) -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Operation", style="cyan", no_wrap=True)
    table.add_column(column, style="blue")
    table.add_column("Count", justify="right", style="magenta")
    for operation, by_outcome in sorted(counts.items()):
        for outcome, count in sorted(by_outcome.items()):
            table.add_row(operation, outcome, f"{count:,}")
    return table


def print_results(result: Optional[Mapping[str, Any]], console: Optional[Console] = None) -> None:
    """
    Render a phase result as rich tables.

    Shows the run summary, per-label latency (raw and intended), outcome counts
    per operation, dual-window scan result shapes and verification counts.
    """
    console = console or Console()

    if not result:
        console.print("[yellow]No results to display.[/yellow]")
        return

    console.print(_summary_table(result))

    measurements = result.get("measurements") or {}
    if measurements.get("latency"):
        console.print(_latency_table(measurements))
    if measurements.get("statuses"):
        console.print(_counts_table("Outcomes", measurements["statuses"], "Status"))
    if measurements.get("result_counts"):
        console.print(_counts_table("Dual-window scan results", measurements["result_counts"], "Shape"))

    verification = measurements.get("verification") or {}
    if any(verification.values()):
        table = Table(title="Data integrity", box=box.ROUNDED)
        table.add_column("Outcome", style="cyan")
        table.add_column("Count", justify="right", style="magenta")
        for outcome, count in verification.items():
            style = "green" if outcome == "match" else "red"
            table.add_row(f"[{style}]{outcome}[/{style}]", f"{count:,}")
        console.print(table)


__all__ = ["print_results"]
