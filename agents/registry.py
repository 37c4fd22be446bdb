"""
Agent Registry - Tagged dispatch from AgentType to agent instance.
Agent 注册表 —— 从 AgentType 到 agent 实例的标签化分派。

Dispatch is resolved once per plan: `resolve(plan)` binds every work item
to its agent up front and fails before anything runs if a tag has no agent.
The returned execute capability then only does a dict lookup per call.

分派在计划阶段一次性解析：`resolve(plan)` 预先为每个工作项绑定 agent，
若某标签没有注册 agent，则在任何工作项执行前失败。
返回的执行能力在每次调用时只做一次字典查找。
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Iterable

from agents.base import BaseAgent
from dag.plan import ExecutionPlan
from schema import AgentType, WorkItem

logger = logging.getLogger(__name__)


class UnknownAgentError(LookupError):
    """Raised when work items name an agent type with no registered agent."""

    def __init__(self, missing: dict[AgentType, list[str]]):
        self.missing = missing
        detail = "; ".join(f"{t.value}: {', '.join(ids)}" for t, ids in missing.items())
        super().__init__(f"No agent registered for: {detail}")


class AgentRegistry:
    """
    Holds one agent per AgentType.
    每种 AgentType 对应一个 agent 实例。
    """

    def __init__(self, agents: Iterable[BaseAgent] = ()):
        self._agents: dict[AgentType, BaseAgent] = {}
        for agent in agents:
            self.register(agent)

    def register(self, agent: BaseAgent) -> None:
        if agent.agent_type in self._agents:
            logger.info("[Agents] Replacing agent for %s", agent.agent_type.value)
        self._agents[agent.agent_type] = agent

    def get(self, agent_type: AgentType) -> BaseAgent:
        try:
            return self._agents[agent_type]
        except KeyError:
            raise UnknownAgentError({agent_type: []}) from None

    def __contains__(self, agent_type: object) -> bool:
        return agent_type in self._agents

    @property
    def agent_types(self) -> list[AgentType]:
        return list(self._agents)

    def resolve(self, plan: ExecutionPlan) -> Callable[[WorkItem], Awaitable[Any]]:
        """
        Bind every item of the plan to its agent and return the execute capability.
        为计划中的每个工作项绑定 agent，并返回执行能力。
        """
        bound: dict[str, BaseAgent] = {}
        missing: dict[AgentType, list[str]] = {}
        for item in plan.items:
            agent = self._agents.get(item.assigned_agent)
            if agent is None:
                missing.setdefault(item.assigned_agent, []).append(item.id)
            else:
                bound[item.id] = agent

        if missing:
            raise UnknownAgentError(missing)

        logger.debug("[Agents] Resolved %d items to %d agent types", len(bound), len({a.agent_type for a in bound.values()}))

        async def execute(item: WorkItem) -> Any:
            return await bound[item.id](item)

        return execute
