"""
Coordinator Agent - Entry point that plans and runs a batch of work items.
Coordinator 智能体 —— 规划并执行一批工作项的入口。

Pipeline:
    WorkItems
       |
       v
    create_execution_plan()   ── DAG levels + critical path + concurrency
       |                         （构建 DAG 分层、关键路径与并发上限）
       v
    AgentRegistry.resolve()   ── bind each item to its agent, once
       |                         （一次性为每个工作项绑定 agent）
       v
    LevelExecutor.run()       ── level-by-level bounded parallel execution
       |                         （逐层、受限并发执行）
       v
    ExecutionReport

CycleError / DuplicateItemError / UnknownAgentError are raised before any
item runs. Per-item failures only show up in the report.
CycleError / DuplicateItemError / UnknownAgentError 都在任何工作项执行前抛出；
单个工作项的失败只体现在报告中。
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from agents.registry import AgentRegistry
from dag.executor import LevelExecutor
from dag.plan import ExecutionPlan, create_execution_plan
from schema import ExecutionReport, WorkItem

logger = logging.getLogger(__name__)


class CoordinatorAgent:
    """
    Top-level coordinator for one or more scheduling sessions.
    调度会话的顶层协调者。

    Each `run()` is an independent session: a fresh plan and a fresh
    LevelExecutor, nothing shared with previous runs.
    每次 `run()` 都是独立会话：新的计划与新的 LevelExecutor，与之前的运行互不共享状态。
    """

    def __init__(
        self,
        registry: AgentRegistry,
        on_event: Callable[[str, Any], None] | None = None,
    ):
        self.registry = registry
        self._on_event = on_event
        self._executor: LevelExecutor | None = None

    def plan(self, items: Iterable[WorkItem], concurrency: int | None = None) -> ExecutionPlan:
        plan = create_execution_plan(items, concurrency)
        if self._on_event is not None:
            try:
                self._on_event("plan_created", plan)
            except Exception:
                logger.debug("[Coordinator] on_event callback failed for plan_created", exc_info=True)
        return plan

    async def run(
        self,
        items: Iterable[WorkItem],
        concurrency: int | None = None,
        session_id: str | None = None,
    ) -> ExecutionReport:
        """
        Plan, resolve agents and execute. Returns the session report.
        规划、解析 agent 并执行，返回会话报告。
        """
        return await self.run_plan(self.plan(items, concurrency), session_id=session_id)

    async def run_plan(self, plan: ExecutionPlan, session_id: str | None = None) -> ExecutionReport:
        """
        Execute a plan built earlier by `plan()`, e.g. one already shown to the user.
        执行先前由 `plan()` 构建的计划（例如已展示给用户的计划）。
        """
        execute = self.registry.resolve(plan)

        self._executor = LevelExecutor(on_event=self._on_event)
        try:
            report = await self._executor.run(plan, execute, session_id=session_id)
        finally:
            self._executor = None

        logger.info(
            "[Coordinator] Orchestration complete: success rate %.1f%%, duration %dms "
            "(completed=%d failed=%d escalated=%d blocked=%d)",
            report.summary.success_rate, report.total_duration_ms,
            report.summary.completed, report.summary.failed,
            report.summary.escalated, report.summary.blocked,
        )
        return report

    def cancel(self) -> None:
        """Cancel the session currently running, if any. / 取消当前正在运行的会话（若有）。"""
        if self._executor is not None:
            self._executor.cancel()
