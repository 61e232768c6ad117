"""Diff context building: raw staged records to an ordered, filtered DiffContext."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .budget import estimate_tokens
from .exceptions import CollectionError
from .ignore import IgnoreMatcher

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"
    BINARY = "binary"


_STATUS_KINDS = {
    "A": ChangeKind.ADDED,
    "C": ChangeKind.ADDED,
    "M": ChangeKind.MODIFIED,
    "T": ChangeKind.MODIFIED,
    "D": ChangeKind.DELETED,
    "R": ChangeKind.RENAMED,
}


@dataclass(frozen=True)
class RawFileDiff:
    """One staged file as handed over by the git layer."""

    path: str
    status: str = "M"
    diff: str = ""
    additions: Optional[int] = None
    deletions: Optional[int] = None
    is_binary: bool = False
    old_path: Optional[str] = None


@dataclass(frozen=True)
class Hunk:
    header: str
    lines: Tuple[str, ...] = ()

    @property
    def added(self) -> int:
        return sum(1 for line in self.lines if line.startswith("+"))

    @property
    def removed(self) -> int:
        return sum(1 for line in self.lines if line.startswith("-"))


BINARY_HUNK = Hunk(header="Binary file (content not shown)")


@dataclass(frozen=True)
class FileDiff:
    path: str
    kind: ChangeKind
    text: str
    hunks: Tuple[Hunk, ...] = ()
    additions: int = 0
    deletions: int = 0
    truncated: bool = False
    old_path: Optional[str] = None

    @property
    def size_bytes(self) -> int:
        return len(self.text.encode("utf-8"))

    @property
    def line_count(self) -> int:
        return len(self.text.splitlines())

    @property
    def token_estimate(self) -> int:
        return estimate_tokens(self.text)


@dataclass(frozen=True)
class DiffContext:
    """Ordered file diffs of one run (discovery order is kept)."""

    files: Tuple[FileDiff, ...]
    all_paths: Tuple[str, ...] = ()
    ignored_paths: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = field(default=())

    def render(self) -> str:
        return "\n".join(f.text for f in self.files)

    @property
    def total_chars(self) -> int:
        return len(self.render())

    @property
    def total_additions(self) -> int:
        return sum(f.additions for f in self.files)

    @property
    def total_deletions(self) -> int:
        return sum(f.deletions for f in self.files)

    def __len__(self) -> int:
        return len(self.files)


def parse_hunks(text: str) -> Tuple[Hunk, ...]:
    """Split unified diff text into hunks; file header lines are dropped."""
    hunks: List[Hunk] = []
    header: Optional[str] = None
    lines: List[str] = []
    for line in text.splitlines():
        if line.startswith("@@"):
            if header is not None:
                hunks.append(Hunk(header=header, lines=tuple(lines)))
            header, lines = line, []
            continue
        if header is None:
            continue
        if line.startswith("diff --git"):
            hunks.append(Hunk(header=header, lines=tuple(lines)))
            header, lines = None, []
            continue
        if line.startswith(("+", "-", " ")):
            lines.append(line)
    if header is not None:
        hunks.append(Hunk(header=header, lines=tuple(lines)))
    return tuple(hunks)


def truncate_lines(text: str, max_lines: int) -> Tuple[str, bool]:
    """Keep the first ``max_lines`` lines; report whether anything was cut."""
    if max_lines <= 0:
        return "", bool(text.strip())
    lines = text.splitlines()
    if len(lines) <= max_lines:
        return text.rstrip(), False
    return "\n".join(lines[:max_lines]).rstrip(), True


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Keep whole leading lines while their estimate fits ``max_tokens``."""
    kept: List[str] = []
    used = 0
    for line in text.splitlines():
        # The joining newline counts toward the estimate too.
        cost = estimate_tokens(line + "\n")
        if used + cost > max_tokens:
            break
        kept.append(line)
        used += cost
    return "\n".join(kept).rstrip()


def _kind_for(record: RawFileDiff) -> ChangeKind:
    if record.is_binary:
        return ChangeKind.BINARY
    status = (record.status or "").strip().upper()
    if status[:1] in _STATUS_KINDS:
        return _STATUS_KINDS[status[:1]]
    if "new file mode" in record.diff:
        return ChangeKind.ADDED
    if "deleted file mode" in record.diff:
        return ChangeKind.DELETED
    if "rename from" in record.diff:
        return ChangeKind.RENAMED
    return ChangeKind.MODIFIED


def _binary_file(record: RawFileDiff) -> FileDiff:
    status = (record.status or "M").strip().upper()[:1]
    action = _STATUS_KINDS.get(status, ChangeKind.MODIFIED).value
    return FileDiff(
        path=record.path,
        kind=ChangeKind.BINARY,
        text=f"binary file {record.path} {action} (content not shown)",
        hunks=(BINARY_HUNK,),
        old_path=record.old_path,
    )


def build_file_diff(
    record: RawFileDiff, max_file_lines: int = 2000
) -> Tuple[Optional[FileDiff], List[str]]:
    """Normalize one record. Returns ``(None, warnings)`` when nothing is diffable."""
    warnings: List[str] = []
    if record.is_binary:
        return _binary_file(record), warnings

    kind = _kind_for(record)
    hunks = parse_hunks(record.diff)
    additions = record.additions
    deletions = record.deletions
    if additions is None:
        additions = sum(h.added for h in hunks)
    if deletions is None:
        deletions = sum(h.removed for h in hunks)

    if additions + deletions > max_file_lines:
        warnings.append(
            f"diff omitted for {record.path} ({additions + deletions} lines)"
        )
        stub = (
            f"file {record.path} changed: +{additions} -{deletions} "
            "(diff omitted due to size)"
        )
        return (
            FileDiff(
                path=record.path,
                kind=kind,
                text=stub,
                additions=additions,
                deletions=deletions,
                truncated=True,
                old_path=record.old_path,
            ),
            warnings,
        )

    content, truncated = truncate_lines(record.diff, max_file_lines)
    if not content.strip():
        return None, warnings
    if truncated:
        warnings.append(f"diff truncated for {record.path}")
        hunks = parse_hunks(content)
    return (
        FileDiff(
            path=record.path,
            kind=kind,
            text=content,
            hunks=hunks,
            additions=additions,
            deletions=deletions,
            truncated=truncated,
            old_path=record.old_path,
        ),
        warnings,
    )


def build_diff_context(
    records: Sequence[RawFileDiff],
    ignore: Optional[IgnoreMatcher] = None,
    *,
    max_files: int = 40,
    max_file_lines: int = 2000,
) -> DiffContext:
    """Build the DiffContext for a run.

    Raises:
        CollectionError: when nothing is staged (``nothing_staged=True``) or
            when no diffable content remains after filtering.
    """
    if not records:
        raise CollectionError("No staged changes found.", nothing_staged=True)

    files: List[FileDiff] = []
    ignored: List[str] = []
    warnings: List[str] = []
    hit_limit = False

    for record in records:
        if ignore is not None and ignore.is_ignored(record.path):
            ignored.append(record.path)
            continue
        if len(files) >= max_files:
            hit_limit = True
            break
        file_diff, file_warnings = build_file_diff(record, max_file_lines)
        warnings.extend(file_warnings)
        if file_diff is not None:
            files.append(file_diff)

    if hit_limit:
        warnings.append(f"only first {max_files} files used for AI summary")

    if not files:
        detail = f" ({len(ignored)} ignored)" if ignored else ""
        raise CollectionError(
            f"No diffable content left after filtering {len(records)} staged "
            f"path(s){detail}."
        )

    logger.debug(
        "diff context: files=%d ignored=%d warnings=%d",
        len(files),
        len(ignored),
        len(warnings),
    )
    return DiffContext(
        files=tuple(files),
        all_paths=tuple(r.path for r in records),
        ignored_paths=tuple(ignored),
        warnings=tuple(warnings),
    )

