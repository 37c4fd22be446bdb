"""
Task Scheduler - Command-line entry point.
任务调度器 —— 命令行入口。

Loads work items from a JSON file, builds the execution plan and runs it
level by level with simulated agents, rendering each phase with a rich
console UI: DAG levels, critical path, per-level progress and the final
summary.
从 JSON 文件加载工作项，构建执行计划，并使用模拟 agent 逐层执行，
通过 Rich 控制台 UI 展示每个阶段：DAG 分层、关键路径、逐层进度与最终汇总。

Usage:
    python main.py items.json [--concurrency=N] [--plan] [--json]
                              [--fail=ID,ID] [--escalate=ID] [--time-scale=S] [-v]
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

import config
from agents.coordinator import CoordinatorAgent
from agents.registry import UnknownAgentError
from agents.simulated import build_simulated_registry
from dag.graph import CycleError, DuplicateItemError
from dag.plan import ExecutionPlan
from schema import ExecutionReport, ExecutionResult, WorkItem

console = Console()
logger = logging.getLogger(__name__)

USAGE = (
    "Usage: python main.py ITEMS.json [--concurrency=N] [--plan] [--json] "
    "[--fail=ID,ID] [--escalate=ID,ID] [--time-scale=S] [-v]"
)

# Status -> Rich style mapping
# 工作项状态 -> Rich 样式映射
_STATUS_STYLES = {
    "pending": "dim",
    "running": "bold yellow",
    "completed": "green",
    "failed": "red",
    "escalated": "magenta",
    "blocked": "dim strike",
}

_CONCURRENCY = TypeAdapter(int | None)


class UsageError(Exception):
    pass


# ======================================================================
# Input loading
# 输入加载
# ======================================================================

def load_items(path: str | Path) -> tuple[list[WorkItem], int | None]:
    """
    Read work items from JSON: either a list of items or
    {"items": [...], "concurrency": N}.
    从 JSON 读取工作项：可以是工作项数组，也可以是 {"items": [...], "concurrency": N}。
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    concurrency = None
    if isinstance(data, dict):
        concurrency = _CONCURRENCY.validate_python(data.get("concurrency"))
        data = data.get("items", [])
    if not isinstance(data, list):
        raise UsageError(f"{path}: expected a list of work items")
    return [WorkItem.model_validate(raw) for raw in data], concurrency


def parse_args(argv: list[str]) -> dict[str, Any]:
    """
    Minimal --key=value parser.
    简易 --key=value 参数解析。
    """
    opts: dict[str, Any] = {
        "path": None,
        "concurrency": None,
        "plan_only": False,
        "json": False,
        "verbose": False,
        "fail": [],
        "escalate": [],
        "time_scale": None,
    }
    for arg in argv:
        if arg in ("-v", "--verbose"):
            opts["verbose"] = True
        elif arg == "--plan":
            opts["plan_only"] = True
        elif arg == "--json":
            opts["json"] = True
        elif arg.startswith("--concurrency="):
            opts["concurrency"] = _parse_number(arg, int)
        elif arg.startswith("--time-scale="):
            opts["time_scale"] = _parse_number(arg, float)
        elif arg.startswith("--fail="):
            opts["fail"] = _split_ids(arg)
        elif arg.startswith("--escalate="):
            opts["escalate"] = _split_ids(arg)
        elif arg.startswith("-"):
            raise UsageError(f"Unknown option: {arg}")
        elif opts["path"] is None:
            opts["path"] = arg
        else:
            raise UsageError(f"Unexpected argument: {arg}")

    if opts["path"] is None:
        raise UsageError("No items file specified.")
    return opts


def _parse_number(arg: str, kind: type) -> Any:
    key, _, value = arg.partition("=")
    try:
        return kind(value)
    except ValueError:
        raise UsageError(f"{key} expects a number, got {value!r}") from None


def _split_ids(arg: str) -> list[str]:
    return [v for v in arg.partition("=")[2].split(",") if v]


# ======================================================================
# Rendering
# 渲染
# ======================================================================

def render_plan(plan: ExecutionPlan) -> None:
    """
    Show DAG levels, critical path and duration estimates.
    展示 DAG 分层、关键路径与耗时估算。
    """
    table = Table(title="Execution Plan", border_style="cyan", show_lines=True)
    table.add_column("Level", style="cyan", width=6)
    table.add_column("Items", style="white")
    table.add_column("Minutes", style="dim", justify="right")
    for idx, ids in enumerate(plan.dag.levels):
        minutes = sum(plan.dag.nodes[nid].item.estimated_minutes for nid in ids)
        labels = [
            f"[bold]{nid}[/bold]" if nid in plan.critical_path else nid
            for nid in ids
        ]
        table.add_row(str(idx), ", ".join(labels), str(minutes))
    console.print(table)

    path = " -> ".join(plan.critical_path) if plan.critical_path else "-"
    console.print(Panel(
        f"Critical path: [bold]{path}[/bold] ({plan.critical_path_minutes} min)\n"
        f"Serial total:  {plan.estimated_total_minutes} min\n"
        f"Concurrency:   {plan.concurrency}",
        title="[bold magenta]Forecast[/bold magenta]",
        border_style="magenta",
    ))
    for item_id, dep in plan.dag.dangling_dependencies:
        console.print(f"  [yellow]! {item_id} depends on unknown item {dep} (ignored)[/yellow]")


def render_report(report: ExecutionReport) -> None:
    table = Table(title=f"Session {report.session_id}", border_style="blue")
    table.add_column("Item", style="cyan")
    table.add_column("Level", justify="right")
    table.add_column("Agent")
    table.add_column("Status")
    table.add_column("ms", justify="right")
    table.add_column("Detail", style="dim")
    for r in report.tasks:
        style = _STATUS_STYLES.get(r.status.value, "white")
        table.add_row(
            r.item_id, str(r.level), r.agent_type.value,
            f"[{style}]{r.status.value}[/{style}]", str(r.duration_ms), r.error or "",
        )
    console.print(table)

    s = report.summary
    style = "green" if s.completed == s.total else "yellow"
    console.print(Panel(
        f"completed={s.completed}  failed={s.failed}  escalated={s.escalated}  blocked={s.blocked}\n"
        f"Success rate: {s.success_rate:.1f}%  |  Duration: {report.total_duration_ms}ms"
        + ("\n[yellow]Run was cancelled[/yellow]" if report.cancelled else ""),
        title="[bold]Summary[/bold]",
        border_style=style,
    ))


def on_event(event: str, data: Any) -> None:
    """
    Handle events from the coordinator/executor and display them.
    处理来自 Coordinator/LevelExecutor 的事件并在控制台展示。
    """
    if event == "level_start":
        runnable = data["runnable"]
        parallel_note = " (parallel)" if len(runnable) > 1 else ""
        console.print(
            f"\n  [bold yellow]--- Level {data['level'] + 1}/{data['total_levels']} ---[/bold yellow] "
            f"Running {len(runnable)} items{parallel_note}: [cyan]{', '.join(runnable) or '-'}[/cyan]"
        )
    elif event == "item_running":
        item: WorkItem = data["item"]
        console.print(f"    [yellow]>> {item.id}:[/yellow] {item.title} [dim]({item.assigned_agent.value})[/dim]")
    elif event in ("item_completed", "item_failed", "item_escalated", "item_blocked"):
        result: ExecutionResult = data["result"]
        style = _STATUS_STYLES.get(result.status.value, "white")
        detail = f": {result.error}" if result.error else ""
        console.print(f"    [{style}]<< {result.item_id} {result.status.value}{detail}[/{style}]")
    elif event == "run_cancelled":
        console.print("\n[yellow]Run cancelled; remaining items were not started.[/yellow]")


# ======================================================================
# Main
# 主函数
# ======================================================================

def setup_logging(verbose: bool = False) -> None:
    """
    Configure logging with rich handler.
    使用 Rich 处理器配置日志系统。
    """
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
    )


def _install_interrupt_handler(loop: asyncio.AbstractEventLoop, coordinator: CoordinatorAgent) -> bool:
    """
    Route the first SIGINT to a graceful `coordinator.cancel()`.
    第一次 SIGINT 转为优雅取消；之后恢复默认行为（KeyboardInterrupt）。
    """
    def on_interrupt() -> None:
        logger.warning("[CLI] Interrupt received: cancelling, in-flight items will finish (Ctrl-C again to abort)")
        loop.remove_signal_handler(signal.SIGINT)
        coordinator.cancel()

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
    except (NotImplementedError, RuntimeError):
        logger.debug("[CLI] SIGINT handler unavailable on this platform; Ctrl-C aborts immediately")
        return False
    return True


async def run(opts: dict[str, Any]) -> int:
    items, file_concurrency = load_items(opts["path"])
    concurrency = opts["concurrency"] if opts["concurrency"] is not None else file_concurrency

    registry = build_simulated_registry(
        time_scale=opts["time_scale"],
        fail_ids=opts["fail"],
        escalate_ids=opts["escalate"],
    )
    quiet = opts["json"]
    coordinator = CoordinatorAgent(registry, on_event=None if quiet else on_event)

    plan = coordinator.plan(items, concurrency)
    if opts["plan_only"]:
        if quiet:
            console.print_json(data=plan.to_dict())
        else:
            render_plan(plan)
        return 0

    if not quiet:
        render_plan(plan)

    # Ctrl-C：停止派发，在途工作项执行完毕；再按一次则直接中断
    loop = asyncio.get_running_loop()
    interruptible = _install_interrupt_handler(loop, coordinator)
    try:
        report = await coordinator.run_plan(plan)
    finally:
        if interruptible:
            loop.remove_signal_handler(signal.SIGINT)

    if quiet:
        console.print_json(data=report.to_dict())
    else:
        render_report(report)

    s = report.summary
    return 0 if s.completed == s.total else 2


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    try:
        opts = parse_args(argv)
    except UsageError as exc:
        console.print(f"[red]{exc}[/red]\n{USAGE}")
        return 1

    setup_logging(opts["verbose"])

    try:
        return asyncio.run(run(opts))
    except (CycleError, DuplicateItemError, UnknownAgentError) as exc:
        console.print(f"[red]Planning failed: {exc}[/red]")
        return 1
    except (OSError, json.JSONDecodeError, ValidationError, UsageError) as exc:
        console.print(f"[red]Cannot load work items: {exc}[/red]")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
