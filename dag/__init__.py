"""
DAG module - Core engine for dependency-aware task scheduling.
DAG 模块 —— 依赖感知任务调度的核心引擎。

Components:
  - graph.py:         TaskDAG + Kahn's-algorithm builder with level assignment
  - critical_path.py: Longest-duration path for completion forecasting
  - plan.py:          ExecutionPlan (DAG + critical path + concurrency bound)
  - state_machine.py: Work item lifecycle state machine
  - executor.py:      Level executor (super-step model, bounded concurrency)
  - report.py:        ExecutionReport aggregation

模块组成：
  - graph.py:         TaskDAG 数据结构与 Kahn 分层构建（含环检测）
  - critical_path.py: 关键路径估算（用于完成时间预测）
  - plan.py:          执行计划（DAG + 关键路径 + 并发上限）
  - state_machine.py: 工作项生命周期状态机（强制合法状态转移）
  - executor.py:      分层执行器（Super-step 模型，并发受限）
  - report.py:        执行报告汇总
"""

from dag.graph import CycleError, DuplicateItemError, TaskDAG, build_dag  # 任务有向无环图
from dag.critical_path import critical_path_minutes, find_critical_path  # 关键路径
from dag.plan import ExecutionPlan, create_execution_plan               # 执行计划
from dag.state_machine import InvalidTransitionError, ItemStateMachine  # 工作项状态机
from dag.executor import ItemEscalation, ItemFailure, LevelExecutor    # 分层执行器
from dag.report import aggregate_report                                 # 报告汇总

__all__ = [
    "CycleError",
    "DuplicateItemError",
    "TaskDAG",
    "build_dag",
    "critical_path_minutes",
    "find_critical_path",
    "ExecutionPlan",
    "create_execution_plan",
    "InvalidTransitionError",
    "ItemStateMachine",
    "ItemEscalation",
    "ItemFailure",
    "LevelExecutor",
    "aggregate_report",
]
