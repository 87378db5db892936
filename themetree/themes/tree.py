"""Forest-level helpers: lookup, statistics and hierarchy integrity checks."""

from collections import Counter
from typing import Dict, Iterator, List, Optional

import networkx as nx

from themetree.utils.diff import DiffIndex

from .node import ThemeNode, scope_keys


def iter_forest(roots: List[ThemeNode]) -> Iterator[ThemeNode]:
    for root in roots:
        yield from root.iter_nodes()


def find_node(roots: List[ThemeNode], node_id: str) -> Optional[ThemeNode]:
    for node in iter_forest(roots):
        if node.id == node_id:
            return node
    return None


def forest_stats(roots: List[ThemeNode]) -> Dict[str, int]:
    nodes = list(iter_forest(roots))
    return {
        "roots": len(roots),
        "nodes": len(nodes),
        "leaves": sum(1 for n in nodes if n.is_leaf),
        "max_level": max((n.level for n in nodes), default=0),
        "cross_references": sum(len(n.cross_references) for n in nodes),
    }


def parent_graph(roots: List[ThemeNode]) -> nx.DiGraph:
    """Directed graph with an edge parent -> child for every owned child."""
    graph = nx.DiGraph()
    for node in iter_forest(roots):
        graph.add_node(node.id)
        for child in node.children:
            graph.add_edge(node.id, child.id)
    return graph


def validate_hierarchy(roots: List[ThemeNode], index: Optional[DiffIndex] = None) -> List[str]:
    """
    Check the structural invariants of a theme forest.

    Args:
        roots: Root nodes of the forest.
        index: When given, also check that every node's scope is exactly
               the disjoint union of its leaves' scopes.

    Returns:
        List[str]: Human-readable problems; empty when the forest is valid.
    """
    problems: List[str] = []
    nodes = list(iter_forest(roots))

    counts = Counter(n.id for n in nodes)
    for node_id, count in counts.items():
        if count > 1:
            problems.append(f"node {node_id} appears {count} times")

    graph = parent_graph(roots)
    if not nx.is_branching(graph):
        problems.append("parent links do not form a forest")

    for root in roots:
        if root.parent_id is not None:
            problems.append(f"root {root.id} has parent {root.parent_id}")
        if root.level != 0:
            problems.append(f"root {root.id} has level {root.level}")

    for node in nodes:
        for child in node.children:
            if child.parent_id != node.id:
                problems.append(f"orphan {child.id}: parent_id {child.parent_id} != {node.id}")
            if child.level != node.level + 1:
                problems.append(f"level of {child.id} is {child.level}, parent {node.id} is {node.level}")
        for ref in node.cross_references:
            if ref.target_id not in counts:
                problems.append(f"cross-reference from {node.id} to unknown node {ref.target_id}")

    if index is not None:
        for node in nodes:
            if node.is_leaf:
                continue
            own = scope_keys(node.scope, index)
            seen = Counter()
            for leaf in node.leaves():
                seen.update(scope_keys(leaf.scope, index))
            duplicated = [k for k, c in seen.items() if c > 1]
            if duplicated:
                problems.append(f"{len(duplicated)} lines under {node.id} belong to more than one leaf")
            if set(seen) != own:
                problems.append(f"leaf scopes under {node.id} do not cover its scope exactly")

    return problems
