"""
Pydantic data models for the task scheduler.
Defines the work items, graph records and execution results shared by the
DAG builder, the level executor and the agents.
任务调度器的 Pydantic 数据模型。
定义了贯穿 DAG 构建、分层执行器与 agents 各层的核心数据结构。
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ======================================================================
# Classifiers
# 分类枚举
# ======================================================================

class TaskType(str, Enum):
    """Category tag of a work item. / 工作项类别。"""
    FEATURE = "feature"
    BUG = "bug"
    REFACTOR = "refactor"
    DOCS = "docs"
    TEST = "test"
    CHORE = "chore"
    DEPLOYMENT = "deployment"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    TRIVIAL = "trivial"


class Complexity(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    XLARGE = "xlarge"


class AgentType(str, Enum):
    """
    Closed set of capability kinds. Every work item names exactly one.
    可执行能力的封闭集合，每个工作项必须指定其中之一。
    """
    COORDINATOR = "coordinator"
    CODEGEN = "codegen"
    REVIEW = "review"
    ISSUE = "issue"
    PR = "pr"
    DEPLOYMENT = "deployment"
    TEST = "test"


class ItemStatus(str, Enum):
    """
    Work item lifecycle states, managed by ItemStateMachine.
    工作项生命周期状态，由 ItemStateMachine 强制管理合法转移。

    Transition graph:
    转移图：
        PENDING -> RUNNING -> COMPLETED
                           -> FAILED
                           -> ESCALATED
        PENDING -> BLOCKED            (upstream did not complete / 上游未完成)
    """
    PENDING = "pending"       # 等待调度
    RUNNING = "running"       # 正在执行
    COMPLETED = "completed"   # 成功完成（终态）
    FAILED = "failed"         # 执行失败（终态）
    ESCALATED = "escalated"   # 需要人工介入（终态）
    BLOCKED = "blocked"       # 未执行：上游依赖未完成或运行被取消（终态）

    @classmethod
    def terminal(cls) -> frozenset[ItemStatus]:
        return frozenset({cls.COMPLETED, cls.FAILED, cls.ESCALATED, cls.BLOCKED})


# ======================================================================
# Work items
# 工作项
# ======================================================================

class WorkItem(BaseModel):
    """
    A single unit of work submitted by the caller.
    调用方提交的单个工作项。

    Only `status` changes after submission, and only the level executor
    changes it (on the plan's private copy, never on the caller's object).
    提交后只有 `status` 会变化，且只由分层执行器在计划内部的副本上修改，
    调用方传入的对象不会被改动。
    """
    id: str = Field(description="Unique identifier, e.g. 'task-123'")                  # 唯一 ID
    type: TaskType = TaskType.FEATURE                                                  # 类别
    title: str = ""                                                                    # 标题
    description: str = ""                                                              # 描述
    assigned_agent: AgentType = AgentType.CODEGEN                                      # 负责执行的 agent 类型
    severity: Severity = Severity.MEDIUM
    complexity: Complexity = Complexity.MEDIUM
    dependencies: list[str] = Field(default_factory=list, description="IDs of prerequisite items")  # 前置工作项 ID 列表
    estimated_minutes: int = Field(default=0, ge=0, description="Estimated duration in minutes")    # 预估耗时（分钟）
    status: ItemStatus = ItemStatus.PENDING


# ======================================================================
# Graph records
# 图结构
# ======================================================================

class GraphNode(BaseModel):
    """
    One node of the DAG. `level` stays -1 until the builder assigns it.
    DAG 中的单个节点。`level` 在构建器赋值之前保持为 -1。
    """
    id: str
    item: WorkItem
    level: int = -1


class GraphEdge(BaseModel):
    """
    A directed edge prerequisite -> dependent.
    有向边：前置项 -> 依赖项。
    """
    source: str = Field(description="Prerequisite item ID")  # 前置项 ID
    target: str = Field(description="Dependent item ID")     # 依赖项 ID


# ======================================================================
# Execution results
# 执行结果模型
# ======================================================================

class ItemOutcome(BaseModel):
    """
    What an execute capability reports for one item.
    执行能力（agent）对单个工作项返回的结果。
    """
    status: ItemStatus = ItemStatus.COMPLETED
    output: Any = None
    error: str | None = None


class ExecutionResult(BaseModel):
    """Per-item record in the execution report. / 执行报告中的单项记录。"""
    item_id: str
    status: ItemStatus
    agent_type: AgentType
    duration_ms: int = 0
    level: int = -1
    output: Any = None
    error: str | None = None


class ExecutionSummary(BaseModel):
    total: int = 0
    completed: int = 0
    failed: int = 0
    escalated: int = 0
    blocked: int = 0
    success_rate: float = Field(default=0.0, description="completed / total as a percentage")  # 成功率（百分比）


class ExecutionReport(BaseModel):
    """
    Session-level summary of one scheduling run.
    单次调度会话的汇总报告。

    `tasks` keeps results in the order items reached a terminal state:
    level by level, and within a level in completion order.
    `tasks` 按工作项到达终态的顺序排列：逐层排列，同层内按完成先后排列。
    """
    session_id: str
    start_time: float                    # epoch 秒
    end_time: float
    total_duration_ms: int
    summary: ExecutionSummary
    tasks: list[ExecutionResult] = Field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
