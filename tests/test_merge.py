"""
tests/test_merge.py
Preserved-region extraction, merging, orphan reporting and marker checks.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from crudforge.merge import (
    begin_marker,
    end_marker,
    extract_preserved_blocks,
    format_orphan_archive,
    merge_preserved_sections,
    merge_with_report,
    normalize_output,
    preserved_block,
    validate_markers,
)


def _block(block_id: str, *body: str, indent: str = "") -> str:
    return "\n".join(preserved_block(block_id, list(body), indent=indent)) + "\n"


GENERATED: str = (
    "def f():\n"
    "    pass\n"
    "\n"
    + _block("custom-1", "# add helpers here")
)


# ---------------------------------------------------------------------------
# Markers
# ---------------------------------------------------------------------------


class TestMarkers:

    def test_marker_text(self) -> None:
        assert begin_marker("imports") == "# <crudforge-preserve imports>"
        assert end_marker("imports", prefix="//") == "// </crudforge-preserve imports>"

    def test_preserved_block_indents_markers_only(self) -> None:
        lines = preserved_block("m", ["        pass"], indent="    ")
        assert lines == [
            "    # <crudforge-preserve m>",
            "        pass",
            "    # </crudforge-preserve m>",
        ]

    def test_normalize_output(self) -> None:
        assert normalize_output("a\r\nb\rc\n\n\n") == "a\nb\nc\n"
        assert normalize_output("") == "\n"


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class TestExtraction:

    def test_extracts_bodies(self) -> None:
        text = _block("a", "x = 1", "y = 2") + "code\n" + _block("b")
        assert extract_preserved_blocks(text) == {"a": "x = 1\ny = 2\n", "b": ""}

    def test_crlf_input(self) -> None:
        text = _block("a", "x = 1").replace("\n", "\r\n")
        assert extract_preserved_blocks(text) == {"a": "x = 1\n"}

    def test_slash_prefix(self) -> None:
        text = "// <crudforge-preserve js>\nlet x = 1;\n// </crudforge-preserve js>\n"
        assert extract_preserved_blocks(text) == {"js": "let x = 1;\n"}

    def test_duplicate_keeps_first(self, caplog: pytest.LogCaptureFixture) -> None:
        text = _block("a", "first") + _block("a", "second")
        with caplog.at_level(logging.WARNING, logger="crudforge.merge"):
            assert extract_preserved_blocks(text) == {"a": "first\n"}
        assert "Duplicate preserved block 'a'" in caplog.text

    def test_unterminated_region_is_ignored(self) -> None:
        assert extract_preserved_blocks("# <crudforge-preserve a>\nx\n") == {}


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


class TestMerge:

    def test_no_existing_file(self) -> None:
        assert merge_preserved_sections(GENERATED, None) == GENERATED

    def test_self_merge_is_identity(self) -> None:
        assert merge_preserved_sections(GENERATED, GENERATED) == GENERATED

    def test_existing_without_markers(self) -> None:
        assert merge_preserved_sections(GENERATED, "handwritten file\n") == GENERATED

    def test_old_body_replaces_default(self) -> None:
        existing = "stale header\n" + _block("custom-1", "def helper():", "    return 42")
        merged = merge_preserved_sections(GENERATED, existing)
        assert merged == (
            "def f():\n"
            "    pass\n"
            "\n"
            "# <crudforge-preserve custom-1>\n"
            "def helper():\n"
            "    return 42\n"
            "# </crudforge-preserve custom-1>\n"
        )
        assert "stale header" not in merged

    def test_new_region_keeps_default(self) -> None:
        generated = GENERATED + _block("custom-2", "# default")
        existing = _block("custom-1", "kept = True")
        merged = merge_preserved_sections(generated, existing)
        assert "kept = True" in merged
        assert "# default" in merged

    def test_indented_body_survives(self) -> None:
        generated = "class R:\n" + _block("methods", indent="    ")
        existing = "class R:\n" + _block(
            "methods", "    def extra(self):", "        return 1", indent="    "
        )
        merged = merge_preserved_sections(generated, existing)
        assert "    def extra(self):\n        return 1\n    # </crudforge-preserve methods>" in merged

    def test_equivalent_body_keeps_generated_bytes(self) -> None:
        existing = (
            "# <crudforge-preserve custom-1>\n"
            "\n"
            "# add helpers here\n"
            "   \n"
            "# </crudforge-preserve custom-1>\n"
        )
        assert merge_preserved_sections(GENERATED, existing) == GENERATED

    def test_crlf_existing(self) -> None:
        existing = _block("custom-1", "value = 3").replace("\n", "\r\n")
        assert "value = 3\n# </crudforge-preserve custom-1>" in merge_preserved_sections(
            GENERATED, existing
        )

    def test_report_lists_preserved_and_orphans(self, caplog: pytest.LogCaptureFixture) -> None:
        existing = _block("custom-1", "x = 1") + _block("gone", "lost = True")
        with caplog.at_level(logging.WARNING, logger="crudforge.merge"):
            result = merge_with_report(GENERATED, existing)
        assert result.preserved_ids == ["custom-1"]
        assert result.orphaned == {"gone": "lost = True\n"}
        assert result.has_orphans
        assert "lost = True" not in result.content
        assert "gone" in caplog.text

    def test_report_without_existing(self) -> None:
        result = merge_with_report(GENERATED, None)
        assert result.content == GENERATED
        assert result.preserved_ids == []
        assert not result.has_orphans

    def test_merge_is_idempotent(self) -> None:
        existing = _block("custom-1", "a = 1")
        once = merge_preserved_sections(GENERATED, existing)
        assert merge_preserved_sections(GENERATED, once) == once


# ---------------------------------------------------------------------------
# Marker validation
# ---------------------------------------------------------------------------


class TestValidateMarkers:

    def test_well_formed(self) -> None:
        result = validate_markers(GENERATED + _block("other"))
        assert result.is_valid
        assert len(result) == 0

    def test_unclosed(self) -> None:
        result = validate_markers("x\n" + begin_marker("a") + "\n")
        assert result.codes() == ["MARKER_UNCLOSED"]
        assert result.errors[0].context == {"line": 2}

    def test_unopened(self) -> None:
        assert validate_markers(end_marker("a") + "\n").codes() == ["MARKER_UNOPENED"]

    def test_mismatch(self) -> None:
        text = begin_marker("a") + "\n" + end_marker("b") + "\n"
        assert validate_markers(text).codes() == ["MARKER_MISMATCH"]

    def test_nested(self) -> None:
        text = "\n".join(
            [begin_marker("a"), begin_marker("b"), end_marker("b"), end_marker("a")]
        )
        assert validate_markers(text).codes() == ["MARKER_NESTED"]

    def test_duplicate(self) -> None:
        assert validate_markers(_block("a") + _block("a")).codes() == ["MARKER_DUPLICATE"]


class TestOrphanArchive:

    def test_format(self) -> None:
        when = datetime(2026, 10, 16, 12, 0, 0, tzinfo=timezone.utc)
        text = format_orphan_archive("repository.py", {"zeta": "z = 1\n", "alpha": ""}, when)
        assert text.splitlines() == [
            "# Preserved blocks removed from repository.py on 2026-10-16T12:00:00Z.",
            "",
            "# <crudforge-preserve alpha>",
            "# </crudforge-preserve alpha>",
            "",
            "# <crudforge-preserve zeta>",
            "z = 1",
            "# </crudforge-preserve zeta>",
        ]
        assert extract_preserved_blocks(text) == {"alpha": "", "zeta": "z = 1\n"}
