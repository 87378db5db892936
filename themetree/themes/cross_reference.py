"""Non-owning links between leaves of different subtrees that touch the same file."""

from typing import Dict, List

from .node import ThemeNode
from .tree import iter_forest


def detect_cross_references(roots: List[ThemeNode]) -> int:
    """Link leaves with different parents that share a file. Returns links added."""
    by_file: Dict[str, List[ThemeNode]] = {}
    for node in iter_forest(roots):
        if node.is_leaf:
            for path in node.affected_files:
                by_file.setdefault(path, []).append(node)

    added = 0
    for path, leaves in by_file.items():
        for i, first in enumerate(leaves):
            for second in leaves[i + 1:]:
                if first.parent_id == second.parent_id:
                    continue
                before = len(first.cross_references) + len(second.cross_references)
                first.add_cross_reference(second.id, f"shares {path} with {second.name}")
                second.add_cross_reference(first.id, f"shares {path} with {first.name}")
                added += len(first.cross_references) + len(second.cross_references) - before
    return added
