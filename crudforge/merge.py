# File: crudforge/merge.py
"""
crudforge - Preservation Merge Engine
======================================
Keeps developer-written code alive across regenerations.

Generated files contain marker-delimited regions::

    # <crudforge-preserve custom-methods>
    ...default or hand-written body...
    # </crudforge-preserve custom-methods>

The file on disk owns the *body* of a region; the freshly generated
skeleton owns its *position*.  Merging copies every old body into the
region with the same id in the new text.  Regions the new template no
longer defines are orphaned: they are dropped from the output, logged,
and reported so the caller can archive them.

``//`` is accepted in place of ``#`` so the same engine can merge
C-family templates.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from crudforge.validators import ValidationResult

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.merge")

MARKER_TAG: str = "crudforge-preserve"

_BLOCK_RE: re.Pattern[str] = re.compile(
    r"^(?P<begin>[ \t]*(?:#|//)[ \t]*<" + MARKER_TAG + r"[ \t]+(?P<id>[^\s>]+)[ \t]*>[ \t]*)\r?\n"
    r"(?P<body>.*?)"
    r"^(?P<end>[ \t]*(?:#|//)[ \t]*</" + MARKER_TAG + r"[ \t]+(?P=id)[ \t]*>[ \t]*)\r?$",
    re.MULTILINE | re.DOTALL,
)
_BEGIN_LINE_RE: re.Pattern[str] = re.compile(
    r"^[ \t]*(?:#|//)[ \t]*<" + MARKER_TAG + r"[ \t]+(?P<id>[^\s>]+)[ \t]*>[ \t]*$"
)
_END_LINE_RE: re.Pattern[str] = re.compile(
    r"^[ \t]*(?:#|//)[ \t]*</" + MARKER_TAG + r"[ \t]+(?P<id>[^\s>]+)[ \t]*>[ \t]*$"
)
_LEADING_BLANK_LINE_RE: re.Pattern[str] = re.compile(r"\A[ \t]*\r?\n")


# ---------------------------------------------------------------------------
# Marker construction (used by the templates)
# ---------------------------------------------------------------------------


def begin_marker(block_id: str, prefix: str = "#") -> str:
    return f"{prefix} <{MARKER_TAG} {block_id}>"


def end_marker(block_id: str, prefix: str = "#") -> str:
    return f"{prefix} </{MARKER_TAG} {block_id}>"


def preserved_block(
    block_id: str,
    body: Sequence[str] = (),
    indent: str = "",
    prefix: str = "#",
) -> List[str]:
    """Lines of a complete region; *body* lines are emitted as given."""
    lines: List[str] = [f"{indent}{begin_marker(block_id, prefix)}"]
    lines.extend(body)
    lines.append(f"{indent}{end_marker(block_id, prefix)}")
    return lines


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def normalize_output(text: str) -> str:
    """LF line endings and exactly one trailing newline."""
    return normalize_line_endings(text).rstrip() + "\n"


def _normalize_body(body: str) -> str:
    """Drop one leading blank line; collapse trailing whitespace to one newline."""
    body = _LEADING_BLANK_LINE_RE.sub("", body, count=1).rstrip()
    return body + "\n" if body else ""


# ---------------------------------------------------------------------------
# Extraction & merge
# ---------------------------------------------------------------------------


def extract_preserved_blocks(text: str) -> Dict[str, str]:
    """
    Map every region id in *text* to its normalised body.

    The first region wins when an id appears twice.
    """
    blocks: Dict[str, str] = {}
    for match in _BLOCK_RE.finditer(normalize_line_endings(text)):
        block_id: str = match.group("id")
        if block_id in blocks:
            logger.warning(
                "Duplicate preserved block '%s'; keeping the first occurrence.",
                block_id,
            )
            continue
        blocks[block_id] = _normalize_body(match.group("body"))
    return blocks


@dataclass(slots=True)
class MergeResult:
    """Merged text plus which regions were carried over or orphaned."""

    content: str
    preserved_ids: List[str] = field(default_factory=list)
    orphaned: Dict[str, str] = field(default_factory=dict)

    @property
    def has_orphans(self) -> bool:
        return bool(self.orphaned)


def merge_with_report(generated: str, existing: Optional[str]) -> MergeResult:
    """
    Merge old region bodies into *generated* and report the outcome.

    Without *existing* the generated text is returned unchanged.
    """
    if existing is None:
        return MergeResult(content=generated)

    old_blocks: Dict[str, str] = extract_preserved_blocks(existing)
    if not old_blocks:
        return MergeResult(content=generated)

    new_ids: List[str] = []
    preserved: List[str] = []

    def substitute(match: "re.Match[str]") -> str:
        block_id: str = match.group("id")
        new_ids.append(block_id)
        old_body: Optional[str] = old_blocks.get(block_id)
        if old_body is None:
            return match.group(0)
        if block_id not in preserved:
            preserved.append(block_id)
        if _normalize_body(match.group("body")) == old_body:
            # identical after normalisation; keep generated bytes as-is
            return match.group(0)
        return f"{match.group('begin')}\n{old_body}{match.group('end')}"

    content: str = _BLOCK_RE.sub(substitute, generated)

    orphaned: Dict[str, str] = {
        block_id: body for block_id, body in old_blocks.items() if block_id not in new_ids
    }
    if orphaned:
        logger.warning(
            "Template no longer defines preserved block(s) %s; their content "
            "is dropped from the regenerated file.",
            ", ".join(sorted(orphaned)),
        )

    return MergeResult(content=content, preserved_ids=preserved, orphaned=orphaned)


def merge_preserved_sections(generated: str, existing: Optional[str]) -> str:
    """
    Return *generated* with every preserved region body taken from *existing*.

    - ``existing is None``: *generated* unchanged.
    - id in both: old body replaces the generated default.
    - id only in *generated*: default body kept.
    - id only in *existing*: discarded (see ``merge_with_report``).
    """
    return merge_with_report(generated, existing).content


# ---------------------------------------------------------------------------
# Marker validation
# ---------------------------------------------------------------------------


def validate_markers(text: str) -> ValidationResult:
    """
    Check that regions are well formed: every begin has a matching end with
    the same id, no end appears without a begin, ids are unique and regions
    do not nest.
    """
    result = ValidationResult()
    open_stack: List[tuple] = []
    seen: Dict[str, int] = {}

    for line_no, line in enumerate(normalize_line_endings(text).split("\n"), start=1):
        begin = _BEGIN_LINE_RE.match(line)
        if begin is not None:
            block_id: str = begin.group("id")
            if open_stack:
                result.add_error(
                    "MARKER_NESTED",
                    f"Block '{block_id}' opens inside block '{open_stack[-1][0]}'.",
                    {"line": line_no},
                )
            if block_id in seen:
                result.add_error(
                    "MARKER_DUPLICATE",
                    f"Block '{block_id}' already defined on line {seen[block_id]}.",
                    {"line": line_no},
                )
            else:
                seen[block_id] = line_no
            open_stack.append((block_id, line_no))
            continue

        end = _END_LINE_RE.match(line)
        if end is None:
            continue
        block_id = end.group("id")
        if not open_stack:
            result.add_error(
                "MARKER_UNOPENED",
                f"End marker for '{block_id}' has no begin marker.",
                {"line": line_no},
            )
            continue
        open_id, open_line = open_stack.pop()
        if open_id != block_id:
            result.add_error(
                "MARKER_MISMATCH",
                f"End marker '{block_id}' closes block '{open_id}' "
                f"opened on line {open_line}.",
                {"line": line_no},
            )

    for open_id, open_line in open_stack:
        result.add_error(
            "MARKER_UNCLOSED",
            f"Block '{open_id}' opened on line {open_line} is never closed.",
            {"line": open_line},
        )
    return result


# ---------------------------------------------------------------------------
# Orphan archive
# ---------------------------------------------------------------------------


def format_orphan_archive(
    source_name: str,
    orphaned: Dict[str, str],
    when: Optional[datetime] = None,
) -> str:
    """Render orphaned regions as re-pastable marker blocks."""
    stamp: str = (when or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
    lines: List[str] = [
        f"# Preserved blocks removed from {source_name} on {stamp}.",
        "",
    ]
    for block_id in sorted(orphaned):
        body: str = orphaned[block_id]
        lines.append(begin_marker(block_id))
        if body:
            lines.append(body.rstrip("\n"))
        lines.append(end_marker(block_id))
        lines.append("")
    return "\n".join(lines)


__all__: List[str] = [
    "MARKER_TAG",
    "begin_marker",
    "end_marker",
    "preserved_block",
    "normalize_line_endings",
    "normalize_output",
    "extract_preserved_blocks",
    "MergeResult",
    "merge_with_report",
    "merge_preserved_sections",
    "validate_markers",
    "format_orphan_archive",
]

logger.debug("crudforge.merge loaded.")
