"""
Base Agent - Foundation class for every execute capability.
BaseAgent —— 所有执行能力（agent）的基础类。

An agent performs the actual unit of work for a WorkItem (sending a chat
message, calling a repository, generating a CSV, ...). The scheduler only
relies on this contract:
  - `agent_type`: which AgentType tag the agent serves
  - `execute(item)`: do the work; return an ItemOutcome / any value, or
    raise ItemFailure / ItemEscalation
  - safe to call concurrently from several workers

agent 负责工作项的实际执行（发送消息、调用仓储、生成 CSV 等）。调度器只依赖以下契约：
  - `agent_type`:    该 agent 负责的 AgentType 标签
  - `execute(item)`: 执行工作；返回 ItemOutcome 或任意值，或抛出 ItemFailure / ItemEscalation
  - 可被多个 worker 并发调用
"""

from __future__ import annotations

import abc
import logging
from typing import Any

from schema import AgentType, WorkItem

logger = logging.getLogger(__name__)


class BaseAgent(abc.ABC):
    """
    Base class that all agents inherit from.
    所有 agent 继承的基类。

    An agent instance is itself a valid execute capability: calling it
    delegates to `execute()`.
    agent 实例本身即可作为执行能力使用：调用实例即委托给 `execute()`。
    """

    agent_type: AgentType
    description: str = ""

    @abc.abstractmethod
    async def execute(self, item: WorkItem) -> Any:
        """Agent-specific execution logic. / 具体 agent 的执行逻辑，子类必须实现。"""

    async def __call__(self, item: WorkItem) -> Any:
        logger.debug("[%s] Executing %s (%s)", self.agent_type.value, item.id, item.type.value)
        return await self.execute(item)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(agent_type={self.agent_type.value!r})"
