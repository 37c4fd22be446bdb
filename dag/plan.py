"""
Execution plan construction.
执行计划构建。

An ExecutionPlan bundles everything the level executor needs for one
session: the DAG, the critical path, the effective concurrency and the
duration estimates.
ExecutionPlan 封装了分层执行器在一次会话中所需的全部信息：
DAG、关键路径、实际并发度以及耗时估算。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

import config
from dag.critical_path import critical_path_minutes, find_critical_path
from dag.graph import TaskDAG, build_dag
from schema import WorkItem

logger = logging.getLogger(__name__)


@dataclass
class ExecutionPlan:
    """
    DAG + critical path + concurrency bound for one scheduling session.
    单次调度会话的 DAG、关键路径与并发上限。

    `estimated_total_minutes` is the serial worst case (plain sum of all
    estimates); `critical_path_minutes` is the parallel forecast.
    `estimated_total_minutes` 为串行最坏情况（所有预估之和）；
    `critical_path_minutes` 为并行条件下的预测耗时。
    """
    dag: TaskDAG
    items: list[WorkItem]
    concurrency: int
    estimated_total_minutes: int
    critical_path: list[str] = field(default_factory=list)
    critical_path_minutes: int = 0

    def items_in_level(self, level: int) -> list[WorkItem]:
        """Items of one level, in level order. / 返回某一层的工作项（按层内顺序）。"""
        return [self.dag.nodes[nid].item for nid in self.dag.levels[level]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "dag": self.dag.to_dict(),
            "concurrency": self.concurrency,
            "estimated_total_minutes": self.estimated_total_minutes,
            "critical_path": list(self.critical_path),
            "critical_path_minutes": self.critical_path_minutes,
        }


def create_execution_plan(items: Iterable[WorkItem], concurrency: int | None = None) -> ExecutionPlan:
    """
    Build the DAG, compute the critical path and clamp concurrency.
    构建 DAG、计算关键路径并限制并发度。

    Raises CycleError / DuplicateItemError before anything runs.
    若存在环或重复 ID，在任何工作项执行前抛出异常。
    """
    # 深拷贝：执行器只修改计划内部副本的状态，调用方对象保持不变
    items = [item.model_copy(deep=True) for item in items]
    requested = config.DEFAULT_CONCURRENCY if concurrency is None else concurrency

    dag = build_dag(items)
    path = find_critical_path(dag)
    effective = max(1, min(requested, len(items))) if items else 0

    plan = ExecutionPlan(
        dag=dag,
        items=items,
        concurrency=effective,
        estimated_total_minutes=sum(item.estimated_minutes for item in items),
        critical_path=path,
        critical_path_minutes=critical_path_minutes(dag, path),
    )
    logger.info(
        "[Plan] %s, concurrency=%d (requested %d), critical path=%s (%d min), serial total=%d min",
        dag.summary(), plan.concurrency, requested, path,
        plan.critical_path_minutes, plan.estimated_total_minutes,
    )
    return plan
