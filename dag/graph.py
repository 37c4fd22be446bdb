"""
TaskDAG - Directed Acyclic Graph of work items, built with Kahn's algorithm.
TaskDAG —— 工作项有向无环图，使用 Kahn 算法构建并分层。

The TaskDAG holds:
  - nodes:  dict of GraphNode, in submission order
  - edges:  list of GraphEdge (prerequisite -> dependent)
  - levels: waves of item IDs that can run together

TaskDAG 包含：
  - nodes:  GraphNode 字典（保持提交顺序）
  - edges:  GraphEdge 列表（前置项 -> 依赖项）
  - levels: 可并行执行的工作项 ID 分层（波次）

Key operations:
  - build_dag(): Kahn's algorithm with level assignment + cycle detection
  - get_dependency_ids() / get_dependent_ids(): direct neighbours
  - get_downstream(): everything reachable from a node

核心操作：
  - build_dag():            Kahn 算法分层 + 环检测
  - get_dependency_ids():   直接前置项
  - get_downstream():       某节点的所有下游节点（BFS）
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Iterable

from schema import GraphEdge, GraphNode, WorkItem

logger = logging.getLogger(__name__)


class CycleError(ValueError):
    """
    Raised when the dependency graph is not acyclic.
    依赖图中存在环时抛出。

    `ids` lists the items that sit on a cycle; `unresolved` lists every item
    that never reached a level (cycle members plus anything downstream of them).
    `ids` 为环上的工作项；`unresolved` 为所有未能分层的工作项（含环的下游）。
    """

    def __init__(self, ids: list[str], unresolved: list[str] | None = None):
        self.ids = list(ids)
        self.unresolved = list(unresolved if unresolved is not None else ids)
        super().__init__(f"Circular dependency detected among tasks: {', '.join(self.ids)}")


class DuplicateItemError(ValueError):
    """Raised when two submitted items share an ID. / 提交的工作项 ID 重复时抛出。"""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Duplicate work item id: {item_id}")


class TaskDAG:
    """
    Leveled DAG of work items.
    已分层的工作项有向无环图。

    Invariant: every edge goes from a strictly lower level to a strictly
    higher level, because a node only enters a level after all of its
    prerequisites already have one.
    不变量：每条边都从较低层指向较高层；节点只有在其所有前置项都已分层后才会进入某一层。
    """

    def __init__(
        self,
        nodes: dict[str, GraphNode],
        edges: list[GraphEdge],
        levels: list[list[str]],
        dangling_dependencies: list[tuple[str, str]] | None = None,
    ):
        self.nodes = nodes      # 所有节点，key 为工作项 ID
        self.edges = edges      # 所有边
        self.levels = levels    # 分层结果，levels[k] 为第 k 层的工作项 ID
        self.dangling_dependencies = list(dangling_dependencies or [])  # (item_id, 未知依赖 ID)

        self._successors: dict[str, list[str]] = {nid: [] for nid in nodes}
        self._predecessors: dict[str, list[str]] = {nid: [] for nid in nodes}
        for e in edges:
            self._successors[e.source].append(e.target)
            self._predecessors[e.target].append(e.source)

    def __len__(self) -> int:
        return len(self.nodes)

    # ------------------------------------------------------------------
    # Node queries
    # 节点查询方法
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> GraphNode:
        return self.nodes[node_id]

    def get_level(self, node_id: str) -> int:
        return self.nodes[node_id].level

    def get_dependency_ids(self, node_id: str) -> list[str]:
        """
        Return IDs of known items that `node_id` depends on.
        返回 `node_id` 所依赖的已知工作项 ID（未知依赖已在构建时丢弃）。
        """
        return list(self._predecessors.get(node_id, []))

    def get_dependent_ids(self, node_id: str) -> list[str]:
        """Return IDs of items that directly depend on `node_id`."""
        return list(self._successors.get(node_id, []))

    def get_downstream(self, node_id: str) -> list[str]:
        """
        Return all node IDs downstream of `node_id` via BFS.
        通过 BFS 返回 `node_id` 的所有下游节点 ID。
        """
        visited: set[str] = set()
        order: list[str] = []
        queue: deque[str] = deque(self._successors.get(node_id, []))

        while queue:
            nid = queue.popleft()
            if nid in visited:
                continue
            visited.add(nid)
            order.append(nid)
            queue.extend(self._successors[nid])

        return order

    # ------------------------------------------------------------------
    # Serialization / display
    # 序列化与展示
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize the DAG structure to a dict.
        将 DAG 结构序列化为 dict，用于日志或命令行 JSON 输出。
        """
        return {
            "nodes": [
                {"id": n.id, "level": n.level, "estimated_minutes": n.item.estimated_minutes}
                for n in self.nodes.values()
            ],
            "edges": [e.model_dump() for e in self.edges],
            "levels": [list(level) for level in self.levels],
            "dangling_dependencies": [list(pair) for pair in self.dangling_dependencies],
        }

    def summary(self) -> str:
        """
        One-line summary for logging, e.g. DAG[4 nodes, 4 edges, 3 levels]
        生成单行摘要，用于日志输出。
        """
        return f"DAG[{len(self.nodes)} nodes, {len(self.edges)} edges, {len(self.levels)} levels]"


# ----------------------------------------------------------------------
# Graph builder
# 图构建器
# ----------------------------------------------------------------------

def build_dag(items: Iterable[WorkItem]) -> TaskDAG:
    """
    Build a leveled DAG from work items using Kahn's algorithm.
    使用 Kahn 算法从工作项构建分层 DAG。

    1. One node per item; in-degree counts only dependencies on known items.
    2. Seed the frontier with every in-degree-0 node.
    3. Each frontier becomes one level; releasing its outgoing edges yields
       the next frontier (kept in submission order so results are reproducible).
    4. Nodes that never get a level form cycles -> CycleError.

    1. 为每个工作项建立节点；入度只统计指向已知工作项的依赖。
    2. 以所有入度为 0 的节点作为初始前沿。
    3. 每个前沿即一层；释放其出边后得到下一层前沿（按提交顺序排列，保证结果可复现）。
    4. 始终未能分层的节点构成环 -> 抛出 CycleError。

    The input items are not modified.
    不会修改传入的工作项。
    """
    items = list(items)
    nodes: dict[str, GraphNode] = {}
    order: dict[str, int] = {}  # 提交顺序，用于层内排序

    for idx, item in enumerate(items):
        if item.id in nodes:
            raise DuplicateItemError(item.id)
        nodes[item.id] = GraphNode(id=item.id, item=item)
        order[item.id] = idx

    edges: list[GraphEdge] = []
    dangling: list[tuple[str, str]] = []
    in_degree: dict[str, int] = {nid: 0 for nid in nodes}
    adjacency: dict[str, list[str]] = {nid: [] for nid in nodes}

    for item in items:
        # dict.fromkeys 去重且保留顺序：同一前置项最多一条边
        for dep in dict.fromkeys(item.dependencies):
            if dep not in nodes:
                logger.warning("[DAG] Item %s depends on unknown item %s; dependency ignored", item.id, dep)
                dangling.append((item.id, dep))
                continue
            edges.append(GraphEdge(source=dep, target=item.id))
            adjacency[dep].append(item.id)
            in_degree[item.id] += 1

    levels: list[list[str]] = []
    frontier = [nid for nid in nodes if in_degree[nid] == 0]

    while frontier:
        level = len(levels)
        levels.append(frontier)
        next_frontier: list[str] = []
        for nid in frontier:
            nodes[nid].level = level
            for target in adjacency[nid]:
                in_degree[target] -= 1
                if in_degree[target] == 0:
                    next_frontier.append(target)
        frontier = sorted(next_frontier, key=order.__getitem__)

    unresolved = [nid for nid, node in nodes.items() if node.level == -1]
    if unresolved:
        cycle_ids = _cycle_members(unresolved, adjacency)
        logger.error("[DAG] Cycle detected among %s (unresolved: %s)", cycle_ids, unresolved)
        raise CycleError(cycle_ids, unresolved)

    dag = TaskDAG(nodes=nodes, edges=edges, levels=levels, dangling_dependencies=dangling)
    logger.debug("[DAG] Built %s", dag.summary())
    return dag


def _cycle_members(unresolved: list[str], adjacency: dict[str, list[str]]) -> list[str]:
    """
    Narrow the unresolved set down to nodes that lie on a cycle.
    从未分层节点中筛出位于环上的节点。

    Runs Tarjan's strongly-connected-components search (iteratively) over the
    unresolved subgraph. A node is on a cycle when its component has more than
    one member, or when it depends on itself. Nodes that only sit downstream of
    a cycle, or between two cycles, form singleton components and are dropped.
    在未分层子图上（迭代地）执行 Tarjan 强连通分量算法：
    分量成员数大于 1，或节点自依赖，才视为在环上；
    仅位于环下游或两个环之间的节点是单点分量，会被排除。
    """
    remaining = set(unresolved)
    index: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    stack: list[str] = []
    on_stack: set[str] = set()
    members: set[str] = set()

    def visit(nid: str) -> None:
        index[nid] = lowlink[nid] = len(index)
        stack.append(nid)
        on_stack.add(nid)

    for root in unresolved:
        if root in index:
            continue
        visit(root)
        work = [(root, iter(adjacency[root]))]
        while work:
            nid, successors = work[-1]
            descended = False
            for target in successors:
                if target not in remaining:
                    continue
                if target not in index:
                    visit(target)
                    work.append((target, iter(adjacency[target])))
                    descended = True
                    break
                if target in on_stack:
                    lowlink[nid] = min(lowlink[nid], index[target])
            if descended:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[nid])
            if lowlink[nid] != index[nid]:
                continue

            # nid 是一个强连通分量的根：弹出整个分量
            component: list[str] = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.append(member)
                if member == nid:
                    break
            if len(component) > 1 or nid in adjacency[nid]:
                members.update(component)

    return [nid for nid in unresolved if nid in members]
