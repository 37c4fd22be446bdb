"""
Critical path estimation over a leveled TaskDAG.
基于分层 TaskDAG 的关键路径估算。

The critical path is the chain of items with the largest cumulative
estimated duration: the best completion time achievable with unlimited
parallelism.
关键路径是累计预估耗时最长的工作项链，即无限并行条件下理论上的最短完成时间。
"""

from __future__ import annotations

from dag.graph import TaskDAG


def find_critical_path(dag: TaskDAG) -> list[str]:
    """
    Return the longest-duration path through the DAG, start to end.
    返回 DAG 中累计耗时最长的路径（从起点到终点）。

    Levels are already a topological order, so a single relaxation pass is
    enough:
      dist[n]  = longest duration of prerequisites ending at (not including) n
      prev[n]  = predecessor on that best path
    Ties keep the first path discovered (strict `>`), walking levels and
    nodes in order.

    分层本身就是拓扑序，因此一次松弛遍历即可：
      dist[n] = 以 n 结尾（不含 n 本身）的前置链最长耗时
      prev[n] = 最优路径上的前驱
    平局时保留最先发现的路径（严格大于比较）。
    """
    if not dag.nodes:
        return []

    dist: dict[str, int] = {nid: 0 for nid in dag.nodes}
    prev: dict[str, str | None] = {nid: None for nid in dag.nodes}

    for level in dag.levels:
        for nid in level:
            finish = dist[nid] + dag.nodes[nid].item.estimated_minutes
            for target in dag.get_dependent_ids(nid):
                if finish > dist[target]:
                    dist[target] = finish
                    prev[target] = nid

    end = None
    best = -1
    for level in dag.levels:
        for nid in level:
            total = dist[nid] + dag.nodes[nid].item.estimated_minutes
            if total > best:
                best = total
                end = nid

    path: list[str] = []
    current = end
    while current is not None:
        path.append(current)
        current = prev[current]
    path.reverse()
    return path


def critical_path_minutes(dag: TaskDAG, path: list[str]) -> int:
    """Sum of estimated minutes along `path`. / 路径上预估耗时之和。"""
    return sum(dag.nodes[nid].item.estimated_minutes for nid in path)
