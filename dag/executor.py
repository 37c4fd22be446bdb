"""
Level Executor - Runs an ExecutionPlan level by level.
分层执行器 —— 按层执行 ExecutionPlan。

Each level is one "super-step":
  1. Collect the items of level k
  2. Mark items whose prerequisites did not complete as BLOCKED
  3. Dispatch the runnable items as asyncio tasks, at most
     `plan.concurrency` in flight (counting semaphore)
  4. Join all of them (hard barrier) before level k+1 starts
  5. Fold every result into the ExecutionReport

每一层即一个「Super-step」：
  1. 取出第 k 层的工作项
  2. 前置项未成功完成的工作项直接标记为 BLOCKED（不执行）
  3. 其余工作项以 asyncio 任务并发执行，同时在途数量不超过 `plan.concurrency`（计数信号量）
  4. 等待本层全部结束（硬同步屏障）后才进入第 k+1 层
  5. 将所有结果汇总为 ExecutionReport

A single item failure never aborts the run; it only affects that item and,
through the BLOCKED rule, everything that depends on it.
单个工作项失败不会中止整个运行，只影响其自身以及（通过 BLOCKED 规则）依赖它的下游。
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Union

from dag.plan import ExecutionPlan
from dag.report import aggregate_report, new_session_id
from dag.state_machine import InvalidTransitionError, ItemStateMachine
from schema import ExecutionReport, ExecutionResult, ItemOutcome, ItemStatus, WorkItem

logger = logging.getLogger(__name__)

ExecuteFn = Callable[[WorkItem], Union[Awaitable[Any], Any]]

_OUTCOME_STATUSES = {ItemStatus.COMPLETED, ItemStatus.FAILED, ItemStatus.ESCALATED}


class ItemFailure(Exception):
    """
    Raised by an execute capability when a work item failed.
    执行能力在工作项失败时抛出。
    """

    def __init__(self, reason: str = "", output: Any = None):
        super().__init__(reason)
        self.reason = reason
        self.output = output


class ItemEscalation(ItemFailure):
    """
    A failure that needs outside (e.g. human) handling rather than a retry.
    需要外部（如人工）介入处理、而非简单重试的失败。
    """
    pass


class LevelExecutor:
    """
    Drives one scheduling session over an ExecutionPlan.
    驱动一次基于 ExecutionPlan 的调度会话。

    Usage:
        executor = LevelExecutor(on_event=print_event)
        report = await executor.run(plan, execute)

    `execute(item)` is invoked once per runnable item and may be called
    concurrently. It returns an ItemOutcome (or any value, meaning
    completed) or raises ItemFailure / ItemEscalation.
    `execute(item)` 对每个可运行工作项调用一次，可能被并发调用。
    返回 ItemOutcome（或任意值，视为完成），或抛出 ItemFailure / ItemEscalation。
    """

    def __init__(self, on_event: Callable[[str, Any], None] | None = None):
        self._on_event = on_event
        self._sm = ItemStateMachine(on_transition=self._on_item_transition)
        self._cancel_event = asyncio.Event()

    # ------------------------------------------------------------------
    # Cancellation
    # 取消
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """
        Stop dispatching. In-flight items finish; everything not yet started
        ends BLOCKED with error "cancelled".
        停止派发：在途工作项继续执行完毕，尚未开始的工作项以 "cancelled" 标记为 BLOCKED。
        """
        if not self._cancel_event.is_set():
            logger.info("[Executor] Cancellation requested")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    # ------------------------------------------------------------------
    # Main driver loop
    # 主驱动循环
    # ------------------------------------------------------------------

    async def run(
        self,
        plan: ExecutionPlan,
        execute: ExecuteFn,
        session_id: str | None = None,
    ) -> ExecutionReport:
        """
        Execute every level of the plan and return the session report.
        执行计划的所有层并返回会话报告。
        """
        stale = [item.id for item in plan.items if item.status != ItemStatus.PENDING]
        if stale:
            raise InvalidTransitionError(
                f"Plan items are not pending (was this plan already run?): {', '.join(stale)}"
            )

        session_id = session_id or new_session_id()
        start_time = time.time()
        results: list[ExecutionResult] = []
        results_lock = asyncio.Lock()  # 同层多个 worker 并发追加结果
        semaphore = asyncio.Semaphore(max(1, plan.concurrency))
        total_levels = len(plan.dag.levels)

        logger.info(
            "[Executor] Session %s starting: %d items, %d levels, concurrency=%d",
            session_id, len(plan.items), total_levels, plan.concurrency,
        )
        self._emit("run_start", {
            "session_id": session_id,
            "items": len(plan.items),
            "levels": total_levels,
            "concurrency": plan.concurrency,
        })

        for level in range(total_levels):
            items = plan.items_in_level(level)

            if self.cancelled:
                for item in items:
                    await self._block(item, level, "cancelled", results, results_lock)
                continue

            blocked, runnable = self._partition(plan, items)
            logger.info(
                "[Executor] Executing level %d/%d: %d runnable, %d blocked",
                level + 1, total_levels, len(runnable), len(blocked),
            )
            self._emit("level_start", {
                "level": level,
                "total_levels": total_levels,
                "runnable": [i.id for i in runnable],
                "blocked": [i.id for i, _ in blocked],
            })

            for item, reason in blocked:
                await self._block(item, level, reason, results, results_lock)

            # --- Super-step：本层并发执行，gather 即同步屏障 ---
            await asyncio.gather(*[
                self._run_item(item, level, execute, semaphore, results, results_lock)
                for item in runnable
            ])

            self._emit("level_done", {"level": level, "total_levels": total_levels})

        end_time = time.time()
        report = aggregate_report(session_id, start_time, end_time, results, cancelled=self.cancelled)

        if report.cancelled:
            self._emit("run_cancelled", {"session_id": session_id})
        logger.info(
            "[Executor] Session %s complete: %d/%d completed (%.1f%%) in %dms",
            session_id, report.summary.completed, report.summary.total,
            report.summary.success_rate, report.total_duration_ms,
        )
        self._emit("run_complete", {"report": report})
        return report

    # ------------------------------------------------------------------
    # Level partitioning
    # 层内划分
    # ------------------------------------------------------------------

    @staticmethod
    def _partition(
        plan: ExecutionPlan, items: list[WorkItem]
    ) -> tuple[list[tuple[WorkItem, str]], list[WorkItem]]:
        """
        Split a level into (blocked-with-reason, runnable).
        将一层划分为（被阻塞项及原因，可运行项）。

        An item is blocked when any known prerequisite did not end COMPLETED.
        Prerequisites always sit in lower levels, so they are terminal here.
        只要有任一已知前置项未以 COMPLETED 结束即阻塞；前置项必在更低层，此时已是终态。
        """
        blocked: list[tuple[WorkItem, str]] = []
        runnable: list[WorkItem] = []
        for item in items:
            upstream = [
                dep for dep in plan.dag.get_dependency_ids(item.id)
                if plan.dag.nodes[dep].item.status != ItemStatus.COMPLETED
            ]
            if upstream:
                blocked.append((item, f"upstream not completed: {', '.join(upstream)}"))
            else:
                runnable.append(item)
        return blocked, runnable

    # ------------------------------------------------------------------
    # Item execution
    # 工作项执行
    # ------------------------------------------------------------------

    async def _run_item(
        self,
        item: WorkItem,
        level: int,
        execute: ExecuteFn,
        semaphore: asyncio.Semaphore,
        results: list[ExecutionResult],
        results_lock: asyncio.Lock,
    ) -> None:
        async with semaphore:
            if self.cancelled:
                # 已取消：排队等待中的工作项不再启动
                await self._block(item, level, "cancelled", results, results_lock)
                return

            self._sm.transition(item, ItemStatus.RUNNING)
            self._emit("item_running", {"item": item, "level": level})

            started = time.perf_counter()
            status, output, error = await self._invoke(execute, item)
            duration_ms = int((time.perf_counter() - started) * 1000)

            self._sm.transition(item, status)
            result = ExecutionResult(
                item_id=item.id,
                status=status,
                agent_type=item.assigned_agent,
                duration_ms=duration_ms,
                level=level,
                output=output,
                error=error,
            )
            async with results_lock:
                results.append(result)

        self._emit(f"item_{status.value}", {"item": item, "result": result})

    @staticmethod
    async def _invoke(execute: ExecuteFn, item: WorkItem) -> tuple[ItemStatus, Any, str | None]:
        """
        Call the execute capability and classify its outcome.
        调用执行能力并对结果分类：completed / failed / escalated。
        """
        try:
            value = execute(item)
            if inspect.isawaitable(value):
                value = await value
        except ItemEscalation as exc:
            logger.warning("[Executor] %s escalated: %s", item.id, exc.reason or "no reason given")
            return ItemStatus.ESCALATED, exc.output, exc.reason or "escalated"
        except ItemFailure as exc:
            logger.warning("[Executor] %s failed: %s", item.id, exc.reason or "no reason given")
            return ItemStatus.FAILED, exc.output, exc.reason or "failed"
        except Exception as exc:
            logger.warning("[Executor] %s raised %s: %s", item.id, type(exc).__name__, exc, exc_info=True)
            return ItemStatus.FAILED, None, f"{type(exc).__name__}: {exc}"

        if isinstance(value, ItemOutcome):
            if value.status not in _OUTCOME_STATUSES:
                logger.warning("[Executor] %s returned invalid outcome status %s", item.id, value.status.value)
                return ItemStatus.FAILED, value.output, f"invalid outcome status: {value.status.value}"
            if value.status != ItemStatus.COMPLETED:
                logger.warning("[Executor] %s %s: %s", item.id, value.status.value, value.error)
            return value.status, value.output, value.error
        return ItemStatus.COMPLETED, value, None

    async def _block(
        self,
        item: WorkItem,
        level: int,
        reason: str,
        results: list[ExecutionResult],
        results_lock: asyncio.Lock,
    ) -> None:
        """Mark an item BLOCKED without executing it. / 不执行，直接标记为 BLOCKED。"""
        self._sm.transition(item, ItemStatus.BLOCKED)
        logger.info("[Executor] %s blocked (%s)", item.id, reason)
        result = ExecutionResult(
            item_id=item.id,
            status=ItemStatus.BLOCKED,
            agent_type=item.assigned_agent,
            duration_ms=0,
            level=level,
            error=reason,
        )
        async with results_lock:
            results.append(result)
        self._emit("item_blocked", {"item": item, "result": result})

    # ------------------------------------------------------------------
    # Event helpers
    # 事件辅助方法
    # ------------------------------------------------------------------

    def _emit(self, event: str, data: Any) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(event, data)
        except Exception:
            # UI 回调异常不能影响调度主流程
            logger.debug("[Executor] on_event callback failed for %s", event, exc_info=True)

    def _on_item_transition(self, item_id: str, old: ItemStatus, new: ItemStatus) -> None:
        self._emit("item_transition", {"item_id": item_id, "from": old.value, "to": new.value})
