"""
Prompts for theme classification

One template per request kind:
1. Expansion: should a theme be split, and into which slices of its code
2. Similarity / batch similarity: do two themes describe the same concern
3. Cross-level: how a descendant relates to one of its ancestors
4. Business patterns: which product areas a root theme belongs to

Every template ends with the exact JSON shape the extractor validates.
"""

import json
from typing import Any

from .requests import ClassificationRequest, RequestKind


PROMPT_EXPANSION = """You are a senior engineer reviewing a code change and organising it into a hierarchy of themes.

## Theme
Name: {name}
Description: {description}
Business context: {business_context}
Current depth: {depth}

## Code scope
The theme owns exactly these ranges. Each range is (file, hunk, start, end), where start/end are
1-based line positions inside the hunk body shown below.
{scope}

## Changes
{snippets}

## Task
Decide whether this theme mixes several independent concerns that deserve their own sub-themes.
- Split only when the sub-themes are genuinely different concerns, at most {max_children} of them.
- Every sub-theme must own a non-empty slice of the scope above, slices must not overlap, and
  together they must cover the whole scope. A slice with only a file takes every range of that file;
  a slice without start/end takes the whole hunk.
- If the change is small or single-purpose, mark it atomic and return no children.

## Output Specification
Return only JSON:
{{
  "should_expand": <true|false>,
  "is_atomic": <true|false>,
  "confidence": <number between 0 and 1>,
  "reasoning": "<why>",
  "business_context": "<business impact of the whole theme>",
  "technical_context": "<technical summary of the whole theme>",
  "children": [
    {{
      "name": "<sub-theme name>",
      "description": "<what it changes>",
      "business_context": "<why it matters>",
      "files": ["<path>"],
      "scope": [{{"file": "<path>", "hunk": <int>, "start": <int>, "end": <int>}}],
      "rationale": "<why it is separate>"
    }}
  ]
}}
"""

PROMPT_SIMILARITY = """Compare two themes extracted from the same code change.

## Theme A
{first}

## Theme B
{second}

Decide whether they describe the same concern and should be merged into one theme.

## Output Specification
Return only JSON:
{{
  "similarity_score": <number between 0 and 1>,
  "should_merge": <true|false>,
  "confidence": <number between 0 and 1>,
  "reasoning": "<why>"
}}
"""

PROMPT_BATCH_SIMILARITY = """Compare each pair of themes extracted from the same code change.

## Pairs
{pairs}

For every pair decide whether both themes describe the same concern and should be merged.

## Output Specification
Return only JSON with one entry per pair, echoing its pair_id:
{{
  "results": [
    {{
      "pair_id": "<pair_id>",
      "similarity_score": <number between 0 and 1>,
      "should_merge": <true|false>,
      "confidence": <number between 0 and 1>,
      "reasoning": "<why>"
    }}
  ]
}}
"""

PROMPT_CROSS_LEVEL = """A theme hierarchy may contain a descendant that repeats its ancestor.

## Ancestor (level distance {level_distance})
{parent}

## Descendant
{child}

Classify their relationship:
- duplicate: the descendant says the same thing as the ancestor
- overlap: they share a large part of their concern
- related: connected but different concerns
- distinct: unrelated

## Output Specification
Return only JSON:
{{
  "similarity_score": <number between 0 and 1>,
  "relationship": "duplicate|overlap|related|distinct",
  "action": "merge_up|merge_down|merge_sibling|keep_separate",
  "confidence": <number between 0 and 1>,
  "reasoning": "<why>"
}}
"""

PROMPT_BUSINESS_PATTERNS = """Identify the business areas a code change belongs to
(for example authentication, data processing, API, user interface, configuration,
error handling, performance, testing, documentation, deployment).

## Theme
{theme}

## Output Specification
Return only JSON:
{{
  "patterns": ["<area>"],
  "confidence": <number between 0 and 1>
}}
"""


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def render_prompt(request: ClassificationRequest) -> str:
    params = request.params
    match request.kind:
        case RequestKind.EXPANSION:
            theme = params["theme"]
            scope = "\n".join(
                f"- ({r['file']}, {r['hunk']}, {r['start']}, {r['end']})" for r in params["scope"]
            )
            return PROMPT_EXPANSION.format(
                name=theme["name"],
                description=theme["description"] or "(none)",
                business_context=theme["business_context"] or "(unknown)",
                depth=params["depth"],
                scope=scope or "(empty)",
                snippets=params["snippets"] or "(no code available)",
                max_children=params["max_children"],
            )
        case RequestKind.SIMILARITY:
            return PROMPT_SIMILARITY.format(first=_dump(params["first"]), second=_dump(params["second"]))
        case RequestKind.BATCH_SIMILARITY:
            return PROMPT_BATCH_SIMILARITY.format(pairs=_dump(params["pairs"]))
        case RequestKind.CROSS_LEVEL:
            return PROMPT_CROSS_LEVEL.format(
                parent=_dump(params["parent"]),
                child=_dump(params["child"]),
                level_distance=params["level_distance"],
            )
        case RequestKind.BUSINESS_PATTERNS:
            return PROMPT_BUSINESS_PATTERNS.format(theme=_dump(params["theme"]))
    raise ValueError(f"No prompt for request kind {request.kind}")
