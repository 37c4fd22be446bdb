"""
Item State Machine - Validates and enforces work item lifecycle transitions.
工作项状态机 —— 校验并强制执行工作项生命周期的合法状态转移。

The transition table is the single source of truth for what state changes
are legal. Any invalid transition raises InvalidTransitionError.
转移表是合法状态变化的唯一权威来源，任何非法转移都会抛出 InvalidTransitionError。

Transition graph:
转移图：
    PENDING ──> RUNNING ──> COMPLETED   (happy path / 正常路径)
                        ──> FAILED
                        ──> ESCALATED
    PENDING ──────────────> BLOCKED     (upstream not completed / 上游未完成)
"""

from __future__ import annotations

import logging
from typing import Callable

from schema import ItemStatus, WorkItem

logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """
    Raised when an illegal state transition is attempted.
    当尝试非法状态转移时抛出此异常。
    """
    pass


VALID_TRANSITIONS: dict[ItemStatus, set[ItemStatus]] = {
    ItemStatus.PENDING:   {ItemStatus.RUNNING, ItemStatus.BLOCKED},
    ItemStatus.RUNNING:   {ItemStatus.COMPLETED, ItemStatus.FAILED, ItemStatus.ESCALATED},
    # Terminal states: no further transitions allowed
    # 终态：不允许任何进一步转移
    ItemStatus.COMPLETED: set(),
    ItemStatus.FAILED:    set(),
    ItemStatus.ESCALATED: set(),
    ItemStatus.BLOCKED:   set(),
}


class ItemStateMachine:
    """
    Validates and applies work item state transitions.
    校验并应用工作项状态转移。
    """

    def __init__(self, on_transition: Callable[[str, ItemStatus, ItemStatus], None] | None = None):
        """
        Args:
            on_transition: Optional callback(item_id, old_status, new_status).
            on_transition: 可选回调 callback(工作项 ID, 旧状态, 新状态)。
        """
        self._on_transition = on_transition

    def can_transition(self, item: WorkItem, new_status: ItemStatus) -> bool:
        return new_status in VALID_TRANSITIONS.get(item.status, set())

    def transition(self, item: WorkItem, new_status: ItemStatus) -> None:
        """
        Apply a state transition. Raises InvalidTransitionError if illegal.
        应用状态转移。若转移非法则抛出 InvalidTransitionError。
        """
        if not self.can_transition(item, new_status):
            raise InvalidTransitionError(
                f"Item '{item.id}': cannot transition from {item.status.value} to {new_status.value}. "
                f"Valid targets: {sorted(s.value for s in VALID_TRANSITIONS.get(item.status, set()))}"
            )

        old_status = item.status
        item.status = new_status

        logger.debug("[SM] %s: %s -> %s", item.id, old_status.value, new_status.value)

        if self._on_transition:
            try:
                self._on_transition(item.id, old_status, new_status)
            except Exception:
                # 回调异常不能影响调度主流程
                logger.debug("[SM] on_transition callback failed for %s", item.id, exc_info=True)
