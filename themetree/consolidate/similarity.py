"""Cheap similarity pre-filter deciding which theme pairs need the model."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Set

from themetree.themes.node import ThemeNode
from themetree.utils.diff import file_extension


class PrefilterVerdict(str, Enum):
    MERGE = "merge"
    KEEP = "keep"
    UNCERTAIN = "uncertain"


@dataclass(frozen=True)
class PrefilterResult:
    verdict: PrefilterVerdict
    name_similarity: float
    file_overlap: float
    extension_overlap: float
    reason: str


def name_tokens(name: str) -> Set[str]:
    return set(re.findall(r"[a-z0-9]+", name.lower()))


def jaccard(first: Iterable, second: Iterable) -> float:
    a, b = set(first), set(second)
    if not a and not b:
        return 0.0
    return len(a & b) / len(a | b)


def prefilter(first: ThemeNode, second: ThemeNode, name_threshold: float = 0.95) -> PrefilterResult:
    """
    Decide a pair without the model where possible.

    Near-identical names merge; no shared files and no shared file types keep
    the themes apart; everything else is uncertain and goes to the model.
    """
    names = jaccard(name_tokens(first.name), name_tokens(second.name))
    files = jaccard(first.affected_files, second.affected_files)
    extensions = jaccard(
        {file_extension(f) for f in first.affected_files},
        {file_extension(f) for f in second.affected_files},
    )
    if names >= name_threshold:
        verdict, reason = PrefilterVerdict.MERGE, f"near-identical names ({names:.2f})"
    elif files == 0.0 and extensions == 0.0:
        verdict, reason = PrefilterVerdict.KEEP, "no shared files and no shared file types"
    else:
        verdict, reason = PrefilterVerdict.UNCERTAIN, "needs semantic comparison"
    return PrefilterResult(verdict, names, files, extensions, reason)
