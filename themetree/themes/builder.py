"""Root themes from the inbound diff: one per top-level directory group."""

from collections import OrderedDict
from typing import Dict, List

from themetree.utils.diff import FileDiff

from .node import CodeRange, ThemeNode

TEST_GROUP = "tests"
CONFIG_GROUP = "configuration"
ROOT_GROUP = "(root)"


def group_for(file_diff: FileDiff) -> str:
    if file_diff.is_test:
        return TEST_GROUP
    if file_diff.is_config:
        return CONFIG_GROUP
    parts = file_diff.path.split("/")
    return parts[0] if len(parts) > 1 else ROOT_GROUP


def full_scope(file_diff: FileDiff) -> List[CodeRange]:
    return [
        CodeRange(file_diff.path, hunk.index, 1, len(hunk.lines))
        for hunk in file_diff.hunks
        if hunk.lines
    ]


def _describe(group: str, files: List[FileDiff]) -> str:
    added = sum(f.lines_added for f in files)
    removed = sum(f.lines_removed for f in files)
    paths = ", ".join(f.path for f in files[:5])
    more = f" and {len(files) - 5} more" if len(files) > 5 else ""
    return f"{len(files)} file(s) in {group} (+{added}/-{removed}): {paths}{more}"


def _name(group: str) -> str:
    if group == TEST_GROUP:
        return "Test changes"
    if group == CONFIG_GROUP:
        return "Configuration changes"
    if group == ROOT_GROUP:
        return "Top-level changes"
    return f"Changes in {group}"


def build_root_themes(files: List[FileDiff]) -> List[ThemeNode]:
    """Each root owns every hunk of its files; files without hunks are skipped."""
    groups: Dict[str, List[FileDiff]] = OrderedDict()
    for file_diff in files:
        if not any(h.lines for h in file_diff.hunks):
            continue
        groups.setdefault(group_for(file_diff), []).append(file_diff)

    roots = []
    for group, members in groups.items():
        scope = [rng for f in members for rng in full_scope(f)]
        roots.append(
            ThemeNode(
                name=_name(group),
                description=_describe(group, members),
                technical_context=", ".join(sorted({f.extension for f in members})),
                scope=scope,
            )
        )
    return roots
