"""
Report aggregation - folds per-item results into an ExecutionReport.
报告汇总 —— 将逐项执行结果折叠为 ExecutionReport。
"""

from __future__ import annotations

import time
from typing import Iterable

import config
from schema import ExecutionReport, ExecutionResult, ExecutionSummary, ItemStatus


def new_session_id() -> str:
    """e.g. session-1700000000000 / 生成会话 ID。"""
    return f"{config.SESSION_ID_PREFIX}-{int(time.time() * 1000)}"


def summarize(results: Iterable[ExecutionResult]) -> ExecutionSummary:
    """
    Count results by terminal status and compute the success rate.
    按终态统计结果数量并计算成功率（百分比；总数为 0 时为 0）。
    """
    counts = {status: 0 for status in ItemStatus.terminal()}
    total = 0
    for r in results:
        total += 1
        if r.status in counts:
            counts[r.status] += 1

    completed = counts[ItemStatus.COMPLETED]
    return ExecutionSummary(
        total=total,
        completed=completed,
        failed=counts[ItemStatus.FAILED],
        escalated=counts[ItemStatus.ESCALATED],
        blocked=counts[ItemStatus.BLOCKED],
        success_rate=(completed / total) * 100 if total > 0 else 0.0,
    )


def aggregate_report(
    session_id: str,
    start_time: float,
    end_time: float,
    results: Iterable[ExecutionResult],
    cancelled: bool = False,
) -> ExecutionReport:
    """
    Build the session report. Pure: `results` order is kept as given.
    构建会话报告。纯函数：保持传入 `results` 的顺序不变。
    """
    results = list(results)
    return ExecutionReport(
        session_id=session_id,
        start_time=start_time,
        end_time=end_time,
        total_duration_ms=int(round((end_time - start_time) * 1000)),
        summary=summarize(results),
        tasks=results,
        cancelled=cancelled,
    )
