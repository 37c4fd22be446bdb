"""
Simulated Agent - Stand-in execute capability for demos and dry runs.
模拟 agent —— 用于演示和试运行的替身执行能力。

Sleeps for `estimated_minutes * time_scale` seconds, then completes, or
fails / escalates for the configured item IDs.
休眠 `estimated_minutes * time_scale` 秒后完成；对于指定 ID 则模拟失败或升级。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

import config
from agents.base import BaseAgent
from agents.registry import AgentRegistry
from dag.executor import ItemEscalation, ItemFailure
from schema import AgentType, ItemOutcome, WorkItem

logger = logging.getLogger(__name__)


class SimulatedAgent(BaseAgent):

    def __init__(
        self,
        agent_type: AgentType,
        time_scale: float | None = None,
        fail_ids: Iterable[str] = (),
        escalate_ids: Iterable[str] = (),
    ):
        self.agent_type = agent_type
        self.description = f"Simulated {agent_type.value} agent"
        self.time_scale = config.SIMULATION_TIME_SCALE if time_scale is None else time_scale
        self.fail_ids = set(fail_ids)
        self.escalate_ids = set(escalate_ids)

    async def execute(self, item: WorkItem) -> ItemOutcome:
        delay = item.estimated_minutes * self.time_scale
        if delay > 0:
            await asyncio.sleep(delay)

        if item.id in self.escalate_ids:
            raise ItemEscalation(f"{item.id} needs manual follow-up")
        if item.id in self.fail_ids:
            raise ItemFailure(f"{item.id} failed (simulated)")

        logger.debug("[%s] %s done after %.2fs", self.agent_type.value, item.id, delay)
        return ItemOutcome(output=f"{item.title or item.id} done")


def build_simulated_registry(
    time_scale: float | None = None,
    fail_ids: Iterable[str] = (),
    escalate_ids: Iterable[str] = (),
) -> AgentRegistry:
    """
    One SimulatedAgent per AgentType.
    为每种 AgentType 注册一个 SimulatedAgent。
    """
    fail_ids = set(fail_ids)
    escalate_ids = set(escalate_ids)
    return AgentRegistry(
        SimulatedAgent(t, time_scale=time_scale, fail_ids=fail_ids, escalate_ids=escalate_ids)
        for t in AgentType
    )
