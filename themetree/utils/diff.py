"""
Inbound diff model.

Diff retrieval from a version-control host is outside this package; callers
hand over already-parsed files, hunks and line records. `parse_unified_diff`
is a convenience for callers that only have `git diff` text.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Optional, Set, Tuple


# (file, hunk index, 1-based position inside the hunk body)
LineKey = Tuple[str, int, int]


class LineKind(str, Enum):
    ADDED = "add"
    REMOVED = "remove"
    CONTEXT = "context"


@dataclass
class DiffLine:
    kind: LineKind
    content: str
    old_lineno: Optional[int] = None
    new_lineno: Optional[int] = None

    @property
    def is_change(self) -> bool:
        return self.kind != LineKind.CONTEXT

    def to_dict(self) -> Dict:
        return {
            "kind": self.kind.value,
            "content": self.content,
            "old_lineno": self.old_lineno,
            "new_lineno": self.new_lineno,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "DiffLine":
        return cls(
            kind=LineKind(data["kind"]),
            content=data.get("content", ""),
            old_lineno=data.get("old_lineno"),
            new_lineno=data.get("new_lineno"),
        )


@dataclass
class Hunk:
    index: int
    header: str = ""
    lines: List[DiffLine] = field(default_factory=list)
    old_start: int = 0
    new_start: int = 0

    @property
    def section(self) -> str:
        """Enclosing-scope text git prints after the second @@."""
        match = re.match(r"@@[^@]*@@\s*(.*)$", self.header)
        return match.group(1).strip() if match else ""

    def changed_positions(self, start: int = 1, end: Optional[int] = None) -> List[int]:
        end = len(self.lines) if end is None else min(end, len(self.lines))
        return [
            pos for pos in range(max(start, 1), end + 1)
            if self.lines[pos - 1].is_change
        ]

    def to_dict(self) -> Dict:
        return {
            "index": self.index,
            "header": self.header,
            "old_start": self.old_start,
            "new_start": self.new_start,
            "lines": [line.to_dict() for line in self.lines],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Hunk":
        return cls(
            index=data["index"],
            header=data.get("header", ""),
            old_start=data.get("old_start", 0),
            new_start=data.get("new_start", 0),
            lines=[DiffLine.from_dict(l) for l in data.get("lines", [])],
        )


@dataclass
class FileDiff:
    path: str
    hunks: List[Hunk] = field(default_factory=list)
    is_test: Optional[bool] = None
    is_config: Optional[bool] = None
    status: str = "modified"

    def __post_init__(self):
        test, config = classify_file(self.path)
        if self.is_test is None:
            self.is_test = test
        if self.is_config is None:
            self.is_config = config

    @property
    def extension(self) -> str:
        return file_extension(self.path)

    @property
    def lines_added(self) -> int:
        return sum(1 for h in self.hunks for l in h.lines if l.kind == LineKind.ADDED)

    @property
    def lines_removed(self) -> int:
        return sum(1 for h in self.hunks for l in h.lines if l.kind == LineKind.REMOVED)

    def to_dict(self) -> Dict:
        return {
            "path": self.path,
            "status": self.status,
            "is_test": self.is_test,
            "is_config": self.is_config,
            "hunks": [h.to_dict() for h in self.hunks],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "FileDiff":
        return cls(
            path=data["path"],
            status=data.get("status", "modified"),
            is_test=data.get("is_test"),
            is_config=data.get("is_config"),
            hunks=[Hunk.from_dict(h) for h in data.get("hunks", [])],
        )


# ---------------------------------------------------------------------------
# File classification
# ---------------------------------------------------------------------------
_TEST_PATTERNS = [
    re.compile(r"(^|/)tests?/"),
    re.compile(r"(^|/)__tests__/"),
    re.compile(r"(^|/)test_[^/]+$"),
    re.compile(r"[^/]+_test\.[a-z]+$"),
    re.compile(r"\.(test|spec)\.[a-z]+$"),
]

_CONFIG_NAMES = {
    "package.json", "package-lock.json", "pyproject.toml", "setup.cfg",
    "requirements.txt", "dockerfile", "makefile", "tsconfig.json", ".gitignore",
}
_CONFIG_EXTENSIONS = {"yml", "yaml", "toml", "ini", "cfg", "conf", "env", "lock"}


def file_extension(path: str) -> str:
    suffix = PurePosixPath(path).suffix.lower().lstrip(".")
    return suffix or "unknown"


def classify_file(path: str) -> Tuple[bool, bool]:
    """Return (is_test, is_config) for a repository-relative path."""
    lowered = path.lower()
    is_test = any(p.search(lowered) for p in _TEST_PATTERNS)
    name = PurePosixPath(lowered).name
    is_config = (
        name in _CONFIG_NAMES
        or file_extension(lowered) in _CONFIG_EXTENSIONS
        or lowered.startswith(".github/")
    )
    return is_test, is_config


# ---------------------------------------------------------------------------
# Changed-unit detection
# ---------------------------------------------------------------------------
_UNIT_PATTERNS = [
    re.compile(r"^\s*(?:async\s+)?def\s+(\w+)"),
    re.compile(r"^\s*class\s+(\w+)"),
    re.compile(r"^\s*(?:export\s+)?(?:default\s+)?(?:async\s+)?function\s*\*?\s*(\w+)"),
    re.compile(r"^\s*(?:export\s+)?(?:const|let|var)\s+(\w+)\s*=\s*(?:async\s*)?(?:\([^)]*\)|\w+)\s*=>"),
    re.compile(r"^\s*func\s+(?:\([^)]*\)\s*)?(\w+)"),
    re.compile(r"^\s*(?:pub\s+)?fn\s+(\w+)"),
    re.compile(r"^\s*(?:public|private|protected)\s+(?:static\s+)?[\w<>\[\], ]+\s+(\w+)\s*\("),
]


def unit_name(text: str) -> Optional[str]:
    """Name of the function/class/method a source line declares, if any."""
    for pattern in _UNIT_PATTERNS:
        match = pattern.match(text)
        if match:
            return match.group(1)
    return None


# ---------------------------------------------------------------------------
# DiffIndex
# ---------------------------------------------------------------------------
class DiffIndex:
    """Lookup of hunks by (file, hunk index) for scope arithmetic and metrics."""

    def __init__(self, files: Iterable[FileDiff]):
        self.files: Dict[str, FileDiff] = {}
        self._hunks: Dict[Tuple[str, int], Hunk] = {}
        for file_diff in files:
            self.files[file_diff.path] = file_diff
            for hunk in file_diff.hunks:
                self._hunks[(file_diff.path, hunk.index)] = hunk

    def hunk(self, file: str, index: int) -> Optional[Hunk]:
        return self._hunks.get((file, index))

    def hunk_length(self, file: str, index: int) -> int:
        hunk = self.hunk(file, index)
        return len(hunk.lines) if hunk else 0

    def hunks_for(self, file: str) -> List[Hunk]:
        file_diff = self.files.get(file)
        return list(file_diff.hunks) if file_diff else []

    def line_keys(self, file: str, index: int, start: int, end: int) -> Set[LineKey]:
        hunk = self.hunk(file, index)
        if hunk is None:
            return {(file, index, pos) for pos in range(start, end + 1)}
        return {(file, index, pos) for pos in hunk.changed_positions(start, end)}

    def lines(self, file: str, index: int, start: int, end: int) -> List[DiffLine]:
        hunk = self.hunk(file, index)
        if hunk is None:
            return []
        return hunk.lines[max(start, 1) - 1:min(end, len(hunk.lines))]

    def snippet(self, file: str, index: int, start: int, end: int, numbered: bool = False) -> str:
        """Diff text of a range; `numbered` prefixes each line with its hunk position."""
        hunk = self.hunk(file, index)
        if hunk is None:
            return ""
        prefix = {LineKind.ADDED: "+", LineKind.REMOVED: "-", LineKind.CONTEXT: " "}
        first = max(start, 1)
        body = "\n".join(
            (f"{first + offset:>4} " if numbered else "") + prefix[line.kind] + line.content
            for offset, line in enumerate(self.lines(file, index, start, end))
        )
        header = hunk.header or f"@@ hunk {index} @@"
        return f"{file} (hunk {index})\n{header}\n{body}"

    def changed_units(self, file: str, index: int, start: int, end: int) -> Tuple[Set[str], Set[str]]:
        """Unit names declared on added / removed lines of a range."""
        added: Set[str] = set()
        removed: Set[str] = set()
        for line in self.lines(file, index, start, end):
            name = unit_name(line.content)
            if not name:
                continue
            if line.kind == LineKind.ADDED:
                added.add(name)
            elif line.kind == LineKind.REMOVED:
                removed.add(name)
        return added, removed


# ---------------------------------------------------------------------------
# Unified diff parsing
# ---------------------------------------------------------------------------
_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@.*$")


def parse_unified_diff(text: str) -> List[FileDiff]:
    """Parse `git diff` output into FileDiff records."""
    files: List[FileDiff] = []
    current: Optional[FileDiff] = None
    hunk: Optional[Hunk] = None
    old_no = new_no = 0
    status = "modified"
    old_path: Optional[str] = None

    for raw in text.splitlines():
        if raw.startswith("diff --git "):
            current, hunk, status, old_path = None, None, "modified", None
            continue
        if raw.startswith("new file mode"):
            status = "added"
            continue
        if raw.startswith("deleted file mode"):
            status = "deleted"
            continue
        if raw.startswith("--- "):
            old_path = _strip_prefix(raw[4:])
            continue
        if raw.startswith("+++ "):
            new_path = _strip_prefix(raw[4:])
            path = new_path if new_path != "/dev/null" else (old_path or new_path)
            current = FileDiff(path=path, status=status)
            files.append(current)
            hunk = None
            continue
        if current is None:
            continue
        header = _HUNK_HEADER.match(raw)
        if header:
            old_no = int(header.group(1))
            new_no = int(header.group(3))
            hunk = Hunk(
                index=len(current.hunks),
                header=raw,
                old_start=old_no,
                new_start=new_no,
            )
            current.hunks.append(hunk)
            continue
        if hunk is None or raw.startswith("\\"):
            continue
        if raw.startswith("+"):
            hunk.lines.append(DiffLine(LineKind.ADDED, raw[1:], None, new_no))
            new_no += 1
        elif raw.startswith("-"):
            hunk.lines.append(DiffLine(LineKind.REMOVED, raw[1:], old_no, None))
            old_no += 1
        else:
            content = raw[1:] if raw.startswith(" ") else raw
            hunk.lines.append(DiffLine(LineKind.CONTEXT, content, old_no, new_no))
            old_no += 1
            new_no += 1

    return files


def _strip_prefix(path: str) -> str:
    path = path.strip().split("\t", 1)[0]
    if path.startswith(("a/", "b/")):
        return path[2:]
    return path
