"""Tests for marker region parsing and surgical replacement."""
from __future__ import annotations

import pytest
from trajmem_core.errors import (
    MalformedMarkersError,
    MissingLabelError,
    StaleRegionError,
)
from trajmem_optimizer.markers import (
    find_region,
    check_body,
    find_regions,
    parse_regions,
    replace_region,
    split_lines,
)
from trajmem_optimizer.types import RegionKind


# ── Parsing ───────────────────────────────────────────────────


class TestFindRegions:
    def test_regions_in_document_order(self, instructions_doc):
        regions = find_regions(instructions_doc)
        assert [r.kind for r in regions] == [
            RegionKind.OPTIMIZE,
            RegionKind.EXAMPLES,
            RegionKind.STRATEGIES,
        ]
        assert [r.label for r in regions] == ["research", "research", "briefing"]

    def test_optimize_region_bounds_and_content(self, instructions_doc):
        region = find_region(instructions_doc, "research")
        assert region is not None
        assert region.start_line == 5
        assert region.end_line == 8
        assert region.content == "1. Read sources first.\n2. Cite everything.\n"
        assert region.min_samples == 5
        assert region.path == str(instructions_doc)

    def test_examples_region_parameters(self, instructions_doc):
        region = find_region(instructions_doc, "research", RegionKind.EXAMPLES)
        assert region is not None
        assert region.content == ""
        assert region.max_examples == 2
        assert region.include_negative is False

    def test_compact_strategies_region(self, instructions_doc):
        region = find_region(instructions_doc, "briefing", RegionKind.STRATEGIES)
        assert region is not None
        assert region.start_line == 13
        assert region.end_line == 19
        assert region.content.startswith("strategies:\n")

    def test_defaults_when_parameters_unset(self):
        text = (
            '<!-- trajectory-optimize:start tag="x" -->\n'
            "body\n"
            "<!-- trajectory-optimize:end -->\n"
        )
        (region,) = parse_regions(text)
        assert region.min_samples == 10
        assert region.max_examples == 3
        assert region.include_negative is True

    def test_whitespace_in_markers_is_insignificant(self):
        text = (
            '<!--trajectory-optimize:start   tag = "x"   min_sessions=4-->\n'
            "<!--   trajectory-optimize:end   -->\n"
        )
        (region,) = parse_regions(text)
        assert region.label == "x"
        assert region.min_samples == 4

    def test_find_region_missing_label_returns_none(self, instructions_doc):
        assert find_region(instructions_doc, "nope") is None

    def test_no_markers(self):
        assert parse_regions("# Title\n\nJust prose.\n") == []

    def test_many_regions(self):
        blocks = [
            f'<!-- trajectory-optimize:start tag="t{i}" -->\n'
            f"body {i}\n"
            "<!-- trajectory-optimize:end -->\n"
            for i in range(5)
        ]
        regions = parse_regions("intro\n" + "gap\n".join(blocks))
        assert [r.label for r in regions] == [f"t{i}" for i in range(5)]
        assert [r.content for r in regions] == [f"body {i}\n" for i in range(5)]


class TestMalformedMarkers:
    def test_unmatched_start(self):
        text = '<!-- trajectory-optimize:start tag="x" -->\nbody\n'
        with pytest.raises(MalformedMarkersError):
            parse_regions(text)

    def test_unmatched_end(self):
        with pytest.raises(MalformedMarkersError):
            parse_regions("body\n<!-- trajectory-optimize:end -->\n")

    def test_nested_start(self):
        text = (
            '<!-- trajectory-optimize:start tag="outer" -->\n'
            '<!-- trajectory-optimize:start tag="inner" -->\n'
            "<!-- trajectory-optimize:end -->\n"
            "<!-- trajectory-optimize:end -->\n"
        )
        with pytest.raises(MalformedMarkersError):
            parse_regions(text)

    def test_nested_across_kinds(self):
        text = (
            '<!-- trajectory-optimize:start tag="a" -->\n'
            '<!-- trajectory-examples:start tag="a" -->\n'
            "<!-- trajectory-examples:end -->\n"
            "<!-- trajectory-optimize:end -->\n"
        )
        with pytest.raises(MalformedMarkersError):
            parse_regions(text)

    def test_end_of_wrong_kind(self):
        text = (
            '<!-- trajectory-optimize:start tag="a" -->\n'
            "<!-- trajectory-examples:end -->\n"
        )
        with pytest.raises(MalformedMarkersError):
            parse_regions(text)

    def test_compact_end_with_other_label(self):
        text = (
            "<!-- trajectory-strategies:a -->\n"
            "<!-- /trajectory-strategies:b -->\n"
        )
        with pytest.raises(MalformedMarkersError):
            parse_regions(text)

    def test_missing_tag(self):
        text = (
            "<!-- trajectory-optimize:start min_sessions=3 -->\n"
            "<!-- trajectory-optimize:end -->\n"
        )
        with pytest.raises(MissingLabelError):
            parse_regions(text)


# ── Replacement ───────────────────────────────────────────────


class TestReplaceRegion:
    def test_replaces_only_the_body(self, instructions_doc):
        original = instructions_doc.read_text()
        region = find_region(instructions_doc, "research")
        replace_region(region, "1. New guidance.\n")

        updated = instructions_doc.read_text()
        assert updated == original.replace(
            "1. Read sources first.\n2. Cite everything.\n", "1. New guidance.\n"
        )
        assert find_region(instructions_doc, "research").content == (
            "1. New guidance.\n"
        )

    def test_replace_with_original_is_byte_identical(self, instructions_doc):
        before = instructions_doc.read_bytes()
        region = find_region(instructions_doc, "research")
        replace_region(region, region.content)
        assert instructions_doc.read_bytes() == before
        assert find_region(instructions_doc, "research") == region

    def test_appends_missing_trailing_newline(self, instructions_doc):
        region = find_region(instructions_doc, "research")
        replace_region(region, "no newline")
        lines = instructions_doc.read_text().splitlines()
        assert lines[5] == "no newline"
        assert lines[6] == "<!-- trajectory-optimize:end -->"

    def test_empty_body(self, instructions_doc):
        region = find_region(instructions_doc, "research")
        replace_region(region, "")
        refreshed = find_region(instructions_doc, "research")
        assert refreshed.content == ""
        assert refreshed.end_line == refreshed.start_line + 1

    def test_fills_empty_region(self, instructions_doc):
        region = find_region(instructions_doc, "research", RegionKind.EXAMPLES)
        replace_region(region, "### Example 1\n")
        refreshed = find_region(instructions_doc, "research", RegionKind.EXAMPLES)
        assert refreshed.content == "### Example 1\n"
        # Later regions keep their bodies
        strategies = find_region(instructions_doc, "briefing", RegionKind.STRATEGIES)
        assert "inbox-first" in strategies.content

    def test_crlf_bytes_preserved(self, tmp_path):
        path = tmp_path / "doc.md"
        raw = (
            b"head\r\n"
            b'<!-- trajectory-optimize:start tag="x" -->\r\n'
            b"old\r\n"
            b"<!-- trajectory-optimize:end -->\r\n"
            b"tail\r\n"
        )
        path.write_bytes(raw)
        region = find_region(path, "x")
        assert region.content == "old\r\n"

        replace_region(region, "new")
        assert path.read_bytes() == raw.replace(b"old\r\n", b"new\r\n")

        replace_region(find_region(path, "x"), "old\r\n")
        assert path.read_bytes() == raw

    def test_stale_body_rejected(self, instructions_doc):
        region = find_region(instructions_doc, "research")
        text = instructions_doc.read_text()
        instructions_doc.write_text(text.replace("Cite everything", "Cite nothing"))
        with pytest.raises(StaleRegionError):
            replace_region(region, "x\n")

    def test_stale_line_numbers_rejected(self, instructions_doc):
        region = find_region(instructions_doc, "research")
        instructions_doc.write_text("new first line\n" + instructions_doc.read_text())
        with pytest.raises(StaleRegionError):
            replace_region(region, "x\n")

    def test_file_untouched_on_stale(self, instructions_doc):
        region = find_region(instructions_doc, "research")
        shifted = "extra\n" + instructions_doc.read_text()
        instructions_doc.write_text(shifted)
        with pytest.raises(StaleRegionError):
            replace_region(region, "x\n")
        assert instructions_doc.read_text() == shifted

    def test_no_temp_files_left_behind(self, instructions_doc):
        region = find_region(instructions_doc, "research")
        replace_region(region, "x\n")
        assert [p.name for p in instructions_doc.parent.iterdir()] == ["CLAUDE.md"]

    def test_failed_rename_leaves_document_and_no_temp_file(
        self, instructions_doc, monkeypatch
    ):
        before = instructions_doc.read_bytes()
        region = find_region(instructions_doc, "research")

        def _fail(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("trajmem_optimizer.markers.os.replace", _fail)
        with pytest.raises(OSError, match="disk full"):
            replace_region(region, "x\n")
        assert instructions_doc.read_bytes() == before
        assert [p.name for p in instructions_doc.parent.iterdir()] == ["CLAUDE.md"]

    @pytest.mark.parametrize(
        "body",
        [
            "ok\n<!-- trajectory-optimize:end -->\nmore\n",
            '<!-- trajectory-examples:start tag="other" -->\n',
            "<!-- trajectory-optimize:start -->\n",
            "<!-- /trajectory-strategies:briefing -->",
        ],
    )
    def test_marker_lines_in_new_body_rejected(self, instructions_doc, body):
        before = instructions_doc.read_bytes()
        region = find_region(instructions_doc, "research")
        with pytest.raises(MalformedMarkersError):
            replace_region(region, body)
        assert instructions_doc.read_bytes() == before

    def test_check_body_accepts_plain_text(self):
        check_body("1. Mention trajectory-optimize in prose.\n<!-- a note -->\n")


class TestSplitLines:
    def test_round_trip(self):
        for text in ["", "a", "a\n", "a\nb", "a\r\nb\r\n", "\n\n"]:
            assert "".join(split_lines(text)) == text

    def test_keeps_terminators(self):
        assert split_lines("a\nb\r\nc") == ["a\n", "b\r\n", "c"]
