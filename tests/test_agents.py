"""
Agent 层测试 — 验证：
  1. AgentRegistry 在计划阶段一次性解析 agent，缺失时在执行前失败
  2. SimulatedAgent 的完成 / 失败 / 升级行为
  3. CoordinatorAgent 的完整流水线（规划 → 解析 → 执行 → 报告）
"""

from __future__ import annotations

import pytest

from agents.base import BaseAgent
from agents.coordinator import CoordinatorAgent
from agents.registry import AgentRegistry, UnknownAgentError
from agents.simulated import SimulatedAgent, build_simulated_registry
from dag.executor import ItemEscalation, ItemFailure
from dag.graph import CycleError
from dag.plan import create_execution_plan
from schema import AgentType, ItemOutcome, ItemStatus, WorkItem


class RecordingAgent(BaseAgent):
    """记录被调用的工作项 ID."""

    def __init__(self, agent_type: AgentType):
        self.agent_type = agent_type
        self.seen: list[str] = []

    async def execute(self, item: WorkItem) -> ItemOutcome:
        self.seen.append(item.id)
        return ItemOutcome(output=f"{self.agent_type.value}:{item.id}")


def _item(item_id: str, deps: list[str] | None = None, agent: AgentType = AgentType.CODEGEN) -> WorkItem:
    return WorkItem(id=item_id, dependencies=deps or [], assigned_agent=agent, estimated_minutes=1)


class TestAgentRegistry:

    @pytest.mark.asyncio
    async def test_resolve_dispatches_by_agent_type(self):
        codegen = RecordingAgent(AgentType.CODEGEN)
        review = RecordingAgent(AgentType.REVIEW)
        registry = AgentRegistry([codegen, review])

        plan = create_execution_plan(
            [_item("impl"), _item("check", ["impl"], agent=AgentType.REVIEW)], concurrency=1
        )
        execute = registry.resolve(plan)

        assert await execute(plan.items[0]) == ItemOutcome(output="codegen:impl")
        assert await execute(plan.items[1]) == ItemOutcome(output="review:check")
        assert codegen.seen == ["impl"]
        assert review.seen == ["check"]

    def test_missing_agent_fails_at_plan_time(self):
        registry = AgentRegistry([RecordingAgent(AgentType.CODEGEN)])
        plan = create_execution_plan(
            [_item("a"), _item("ship", agent=AgentType.DEPLOYMENT), _item("ship2", agent=AgentType.DEPLOYMENT)],
            concurrency=2,
        )
        with pytest.raises(UnknownAgentError) as exc_info:
            registry.resolve(plan)
        assert exc_info.value.missing == {AgentType.DEPLOYMENT: ["ship", "ship2"]}

    def test_lookup(self):
        agent = RecordingAgent(AgentType.TEST)
        registry = AgentRegistry([agent])
        assert AgentType.TEST in registry
        assert AgentType.PR not in registry
        assert registry.get(AgentType.TEST) is agent
        assert registry.agent_types == [AgentType.TEST]
        with pytest.raises(UnknownAgentError):
            registry.get(AgentType.PR)

    def test_register_replaces(self):
        first, second = RecordingAgent(AgentType.PR), RecordingAgent(AgentType.PR)
        registry = AgentRegistry([first])
        registry.register(second)
        assert registry.get(AgentType.PR) is second


class TestSimulatedAgent:

    @pytest.mark.asyncio
    async def test_completes(self):
        agent = SimulatedAgent(AgentType.CODEGEN, time_scale=0)
        outcome = await agent(WorkItem(id="a", title="Write parser"))
        assert outcome.status == ItemStatus.COMPLETED
        assert outcome.output == "Write parser done"

    @pytest.mark.asyncio
    async def test_fail_and_escalate(self):
        agent = SimulatedAgent(AgentType.CODEGEN, time_scale=0, fail_ids=["f"], escalate_ids=["e"])
        with pytest.raises(ItemFailure):
            await agent(WorkItem(id="f"))
        with pytest.raises(ItemEscalation):
            await agent(WorkItem(id="e"))

    def test_registry_covers_every_agent_type(self):
        registry = build_simulated_registry(time_scale=0)
        assert set(registry.agent_types) == set(AgentType)


class TestCoordinator:

    @pytest.mark.asyncio
    async def test_full_pipeline(self):
        items = [
            WorkItem(id="A", estimated_minutes=30),
            WorkItem(id="B", dependencies=["A"], estimated_minutes=20, assigned_agent=AgentType.REVIEW),
            WorkItem(id="C", dependencies=["A"], estimated_minutes=10, assigned_agent=AgentType.TEST),
            WorkItem(id="D", dependencies=["B", "C"], estimated_minutes=15, assigned_agent=AgentType.PR),
        ]
        events: list[str] = []
        coordinator = CoordinatorAgent(
            build_simulated_registry(time_scale=0, fail_ids=["B"]),
            on_event=lambda name, data: events.append(name),
        )

        report = await coordinator.run(items, concurrency=10, session_id="session-42")

        assert report.session_id == "session-42"
        s = report.summary
        assert (s.completed, s.failed, s.blocked) == (2, 1, 1)
        assert {r.item_id: r.status for r in report.tasks}["D"] == ItemStatus.BLOCKED
        assert events[0] == "plan_created"
        assert "run_complete" in events
        assert all(i.status == ItemStatus.PENDING for i in items), "调用方的工作项不被修改"

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self):
        coordinator = CoordinatorAgent(build_simulated_registry(time_scale=0))
        items = [WorkItem(id="a"), WorkItem(id="b", dependencies=["a"])]

        first = await coordinator.run(items, concurrency=2)
        second = await coordinator.run(items, concurrency=2)
        assert first.summary.completed == second.summary.completed == 2

    @pytest.mark.asyncio
    async def test_cycle_aborts_before_execution(self):
        agent = RecordingAgent(AgentType.CODEGEN)
        coordinator = CoordinatorAgent(AgentRegistry([agent]))
        with pytest.raises(CycleError):
            await coordinator.run([_item("X", ["Y"]), _item("Y", ["X"])], concurrency=2)
        assert agent.seen == []

    @pytest.mark.asyncio
    async def test_run_plan_reuses_existing_plan(self):
        events: list[str] = []
        coordinator = CoordinatorAgent(
            build_simulated_registry(time_scale=0),
            on_event=lambda name, data: events.append(name),
        )
        plan = coordinator.plan([_item("a"), _item("b", ["a"])], concurrency=2)
        report = await coordinator.run_plan(plan, session_id="session-7")

        assert report.session_id == "session-7"
        assert report.summary.completed == 2
        assert events.count("plan_created") == 1
        assert all(i.status == ItemStatus.COMPLETED for i in plan.items)

    def test_plan_clamps_concurrency(self):
        coordinator = CoordinatorAgent(build_simulated_registry(time_scale=0))
        plan = coordinator.plan([_item("a"), _item("b"), _item("c")], concurrency=10)
        assert plan.concurrency == 3

    def test_cancel_without_active_run_is_noop(self):
        CoordinatorAgent(build_simulated_registry(time_scale=0)).cancel()
