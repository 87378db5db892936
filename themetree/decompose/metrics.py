"""Size and complexity measurements of a theme, derived from its scope."""

from dataclasses import dataclass
from typing import Set

from themetree.themes.node import ThemeNode, scope_keys
from themetree.utils.diff import DiffIndex


@dataclass(frozen=True)
class NodeMetrics:
    file_count: int
    changed_lines: int
    changed_units: int
    snippet_count: int
    description_length: int
    child_count: int

    @property
    def is_single_file(self) -> bool:
        return self.file_count == 1

    @property
    def complexity_score(self) -> float:
        return (
            self.file_count * 2
            + self.snippet_count
            + self.description_length / 200
            + self.child_count
        )


def count_changed_units(node: ThemeNode, index: DiffIndex) -> int:
    """
    Functions/classes/methods touched by the scope.

    A declaration renamed in place shows up once as removed and once as added,
    so the larger of the two sets is the unit count. Changes that declare
    nothing still sit inside some unit and count as one.
    """
    added: Set[str] = set()
    removed: Set[str] = set()
    for rng in node.scope:
        plus, minus = index.changed_units(rng.file, rng.hunk, rng.start, rng.end)
        added |= plus
        removed |= minus
    units = max(len(added), len(removed))
    if units == 0 and scope_keys(node.scope, index):
        return 1
    return units


def compute_metrics(node: ThemeNode, index: DiffIndex) -> NodeMetrics:
    return NodeMetrics(
        file_count=len(node.affected_files),
        changed_lines=len(scope_keys(node.scope, index)),
        changed_units=count_changed_units(node, index),
        snippet_count=len(node.scope),
        description_length=len(node.description),
        child_count=len(node.children),
    )
