"""Marker region parsing and surgical replacement for instruction documents.

Three marker families delimit rewritable regions. Two use the attributed
form, where the label is a ``tag`` attribute::

    <!-- trajectory-optimize:start tag="research" min_sessions=10 -->
    ...
    <!-- trajectory-optimize:end -->

    <!-- trajectory-examples:start tag="research" max=3 include_negative=true -->
    ...
    <!-- trajectory-examples:end -->

The strategies family uses the compact form, with the label inside the
delimiter::

    <!-- trajectory-strategies:daily-briefing -->
    ...
    <!-- /trajectory-strategies:daily-briefing -->

Regions may not nest. Replacement rewrites only the body between the
markers and swaps the file in atomically.
"""
from __future__ import annotations

import contextlib
import os
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from trajmem_core.errors import (
    MalformedMarkersError,
    MissingLabelError,
    StaleRegionError,
)
from trajmem_core.logging import get_logger

from trajmem_optimizer.types import (
    DEFAULT_INCLUDE_NEGATIVE,
    DEFAULT_MAX_EXAMPLES,
    DEFAULT_MIN_SAMPLES,
    Region,
    RegionKind,
)

logger = get_logger("optimizer.markers")

_ATTRIBUTED_START = {
    RegionKind.OPTIMIZE: re.compile(
        r"<!--\s*trajectory-optimize:start(?:\s+(?P<attrs>.*?))?\s*-->"
    ),
    RegionKind.EXAMPLES: re.compile(
        r"<!--\s*trajectory-examples:start(?:\s+(?P<attrs>.*?))?\s*-->"
    ),
}
_ATTRIBUTED_END = {
    RegionKind.OPTIMIZE: re.compile(r"<!--\s*trajectory-optimize:end\s*-->"),
    RegionKind.EXAMPLES: re.compile(r"<!--\s*trajectory-examples:end\s*-->"),
}
_COMPACT_START = re.compile(
    r"<!--\s*trajectory-strategies:(?P<label>[^\s/]\S*?)(?:\s+(?P<attrs>.*?))?\s*-->"
)
_COMPACT_END = re.compile(
    r"<!--\s*/trajectory-strategies:(?P<label>\S+?)\s*-->"
)

_ATTR_RE = re.compile(r'\b(?P<key>\w+)\s*=\s*(?:"(?P<quoted>[^"]*)"|(?P<bare>[^\s"]+))')

# marker attribute name -> Region field
_INT_ATTRS = {"min_sessions": "min_samples", "max": "max_examples"}
_BOOL_ATTRS = {"include_negative": "include_negative"}


@dataclass(frozen=True, slots=True)
class _StartMarker:
    kind: RegionKind
    label: str
    params: dict[str, Any]


@dataclass(frozen=True, slots=True)
class _EndMarker:
    kind: RegionKind
    label: str | None  # only the compact form repeats the label


# ── Public API ─────────────────────────────────────────────────


def find_regions(path: Path | str) -> list[Region]:
    """Scan a document for marker regions of every kind, in document order.

    Raises:
        MalformedMarkersError: Unmatched start, unmatched or mismatched
            end, or a start nested inside an open region.
        MissingLabelError: An attributed start marker has no ``tag``.
        FileNotFoundError: If the document does not exist.
    """
    path = Path(path)
    regions = parse_regions(_read_text(path), str(path))
    logger.debug("Found %d regions in %s", len(regions), path)
    return regions


def find_region(
    path: Path | str,
    label: str,
    kind: RegionKind = RegionKind.OPTIMIZE,
) -> Region | None:
    """Return the first region of ``kind`` carrying ``label``, if any."""
    for region in find_regions(path):
        if region.kind is kind and region.label == label:
            return region
    return None


def parse_regions(text: str, path: str = "<string>") -> list[Region]:
    """Parse marker regions out of document text.

    See :func:`find_regions` for the failure modes.
    """
    lines = split_lines(text)
    regions: list[Region] = []
    opened: _StartMarker | None = None
    opened_at = 0

    for lineno, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")

        start = _match_start(line, path, lineno)
        if start is not None:
            if opened is not None:
                msg = (
                    f"{path}:{lineno}: nested start marker inside "
                    f"{opened.kind.value} region {opened.label!r} "
                    f"opened at line {opened_at}"
                )
                raise MalformedMarkersError(msg)
            opened, opened_at = start, lineno
            continue

        end = _match_end(line)
        if end is None:
            continue
        if opened is None:
            msg = f"{path}:{lineno}: end marker without start"
            raise MalformedMarkersError(msg)
        if end.kind is not opened.kind or (
            end.label is not None and end.label != opened.label
        ):
            msg = (
                f"{path}:{lineno}: end marker does not close "
                f"{opened.kind.value} region {opened.label!r} "
                f"opened at line {opened_at}"
            )
            raise MalformedMarkersError(msg)

        regions.append(
            Region(
                path=path,
                kind=opened.kind,
                label=opened.label,
                start_line=opened_at,
                end_line=lineno,
                content="".join(lines[opened_at : lineno - 1]),
                **opened.params,
            )
        )
        opened = None

    if opened is not None:
        msg = (
            f"{path}:{opened_at}: start marker for {opened.kind.value} "
            f"region {opened.label!r} without end marker"
        )
        raise MalformedMarkersError(msg)

    return regions


def replace_region(region: Region, new_body: str) -> None:
    """Replace the body of ``region`` in its document, atomically.

    Every byte outside the body (markers included) is preserved. A
    non-empty body without a trailing newline gets one so the end marker
    keeps its own line.

    Raises:
        MalformedMarkersError: ``new_body`` contains a marker line.
        StaleRegionError: The document no longer has this region at the
            recorded lines with the recorded body.
        OSError: Reading, staging, or renaming failed; the document is
            left untouched.
    """
    check_body(new_body, region.path)
    path = Path(region.path)
    lines = split_lines(_read_text(path))
    _revalidate(region, lines)

    body = new_body
    if body and not body.endswith("\n"):
        body += _line_ending(lines[region.start_line - 1])

    updated = (
        "".join(lines[: region.start_line])
        + body
        + "".join(lines[region.end_line - 1 :])
    )
    atomic_write(path, updated)
    logger.info(
        "Replaced %s region %r in %s (lines %d-%d)",
        region.kind.value,
        region.label,
        path,
        region.start_line,
        region.end_line,
    )


def check_body(body: str, path: str = "<string>") -> None:
    """Reject a region body that would open or close a region of its own.

    Raises:
        MalformedMarkersError: A line of ``body`` is a start or end marker.
    """
    for lineno, raw in enumerate(split_lines(body), start=1):
        line = raw.rstrip("\r\n")
        try:
            is_marker = (
                _match_start(line, path, lineno) is not None
                or _match_end(line) is not None
            )
        except MissingLabelError:
            is_marker = True
        if is_marker:
            msg = (
                f"{path}: line {lineno} of the new body is a region "
                f"marker: {line.strip()!r}"
            )
            raise MalformedMarkersError(msg)


def split_lines(text: str) -> list[str]:
    """Split text into lines, keeping each line's terminator.

    Only ``\\n`` separates lines, so ``\\r\\n`` endings stay attached and
    ``"".join(split_lines(t)) == t`` always holds.
    """
    if not text:
        return []
    lines = [line + "\n" for line in text.split("\n")]
    lines[-1] = lines[-1][:-1]
    if not lines[-1]:
        lines.pop()
    return lines


def atomic_write(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` via a sibling temp file and one rename.

    The temp file inherits the original's permissions and is removed if
    anything fails before the rename.
    """
    fd, tmp_path = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        if path.exists():
            shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_path)
        raise


# ── Internal Helpers ───────────────────────────────────────────


def _read_text(path: Path) -> str:
    # newline="" keeps \r\n intact so untouched bytes round-trip
    with open(path, encoding="utf-8", newline="") as handle:
        return handle.read()


def _line_ending(line: str) -> str:
    return "\r\n" if line.endswith("\r\n") else "\n"


def _match_start(line: str, path: str, lineno: int) -> _StartMarker | None:
    for kind, pattern in _ATTRIBUTED_START.items():
        match = pattern.search(line)
        if match is None:
            continue
        attrs = _parse_attrs(match.group("attrs") or "")
        label = attrs.pop("tag", None)
        if not isinstance(label, str) or not label:
            msg = (
                f"{path}:{lineno}: {kind.value} start marker is missing "
                f"the required tag=\"...\" attribute"
            )
            raise MissingLabelError(msg)
        return _StartMarker(kind=kind, label=label, params=_region_params(attrs))

    match = _COMPACT_START.search(line)
    if match is not None:
        attrs = _parse_attrs(match.group("attrs") or "")
        attrs.pop("tag", None)
        return _StartMarker(
            kind=RegionKind.STRATEGIES,
            label=match.group("label"),
            params=_region_params(attrs),
        )
    return None


def _match_end(line: str) -> _EndMarker | None:
    for kind, pattern in _ATTRIBUTED_END.items():
        if pattern.search(line):
            return _EndMarker(kind=kind, label=None)
    match = _COMPACT_END.search(line)
    if match is not None:
        return _EndMarker(kind=RegionKind.STRATEGIES, label=match.group("label"))
    return None


def _parse_attrs(text: str) -> dict[str, str | int | bool]:
    """Parse ``key="string"``, ``key=digits`` and ``key=true|false`` pairs.

    Values of any other shape are dropped.
    """
    attrs: dict[str, str | int | bool] = {}
    for match in _ATTR_RE.finditer(text):
        key = match.group("key")
        quoted, bare = match.group("quoted"), match.group("bare")
        if quoted is not None:
            attrs[key] = quoted
        elif bare.isdigit():
            attrs[key] = int(bare)
        elif bare in ("true", "false"):
            attrs[key] = bare == "true"
    return attrs


def _region_params(attrs: dict[str, str | int | bool]) -> dict[str, Any]:
    params: dict[str, Any] = {
        "min_samples": DEFAULT_MIN_SAMPLES,
        "max_examples": DEFAULT_MAX_EXAMPLES,
        "include_negative": DEFAULT_INCLUDE_NEGATIVE,
    }
    for attr, field_name in _INT_ATTRS.items():
        value = attrs.get(attr)
        if isinstance(value, int) and not isinstance(value, bool):
            params[field_name] = value
    for attr, field_name in _BOOL_ATTRS.items():
        value = attrs.get(attr)
        if isinstance(value, bool):
            params[field_name] = value
    return params


def _revalidate(region: Region, lines: list[str]) -> None:
    """Check that ``region`` still describes the live document."""
    where = f"{region.path}:{region.start_line}-{region.end_line}"
    if not 1 <= region.start_line < region.end_line <= len(lines):
        msg = f"{where}: line range out of bounds ({len(lines)} lines)"
        raise StaleRegionError(msg)

    try:
        start = _match_start(
            lines[region.start_line - 1].rstrip("\r\n"),
            region.path,
            region.start_line,
        )
    except MissingLabelError as exc:
        msg = f"{where}: start marker changed"
        raise StaleRegionError(msg) from exc
    if start is None or start.kind is not region.kind or start.label != region.label:
        msg = f"{where}: no {region.kind.value} start marker for {region.label!r}"
        raise StaleRegionError(msg)

    end = _match_end(lines[region.end_line - 1].rstrip("\r\n"))
    if end is None or end.kind is not region.kind or (
        end.label is not None and end.label != region.label
    ):
        msg = f"{where}: no matching end marker"
        raise StaleRegionError(msg)

    if "".join(lines[region.start_line : region.end_line - 1]) != region.content:
        msg = f"{where}: region body changed since it was located"
        raise StaleRegionError(msg)
