"""Path globs excluded from the AI prompt (never from staging)."""

from __future__ import annotations

from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

IGNORE_FILE_NAME = ".goodcommitignore"

DEFAULT_PATTERNS: tuple[str, ...] = (
    "node_modules",
    "dist",
    "build",
    ".next",
    ".turbo",
    ".vite",
    "coverage",
    "*.lock",
    "bun.lockb",
    "package-lock.json",
    "pnpm-lock.yaml",
    "Pods",
    "*.xcworkspace",
    "*.pbxproj",
    "*.xcodeproj",
    "DerivedData",
    "target",
    "*.min.js",
    "*.min.css",
    "*.map",
)


def read_ignore_file(path: Path) -> List[str]:
    """Return patterns from an ignore file, skipping blanks and ``#`` comments."""
    try:
        content = Path(path).read_text()
    except OSError:
        return []
    out: List[str] = []
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        out.append(line)
    return out


class IgnoreMatcher:
    """Match repository-relative paths against glob patterns.

    A pattern matches when it matches the whole path, or any trailing part of
    it, or any leading directory of it, so ``node_modules`` also covers
    ``web/node_modules/react/index.js`` and ``*.lock`` covers ``a/b/yarn.lock``.
    """

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        cleaned = []
        for pattern in patterns:
            pattern = pattern.strip().strip("/")
            if pattern.startswith("**/"):
                pattern = pattern[3:]
            if pattern.endswith("/**"):
                pattern = pattern[:-3]
            if pattern:
                cleaned.append(pattern)
        self.patterns: tuple[str, ...] = tuple(dict.fromkeys(cleaned))

    def is_ignored(self, path: str) -> bool:
        parts = [p for p in path.replace("\\", "/").split("/") if p]
        if not parts:
            return False
        candidates = set()
        for start in range(len(parts)):
            for end in range(start + 1, len(parts) + 1):
                candidates.add("/".join(parts[start:end]))
        for pattern in self.patterns:
            for candidate in candidates:
                if fnmatchcase(candidate, pattern):
                    return True
        return False

    def __len__(self) -> int:
        return len(self.patterns)


def build_ignore_matcher(
    config_patterns: Sequence[str] = (),
    repo_root: Optional[Path] = None,
    *,
    include_defaults: bool = True,
) -> IgnoreMatcher:
    """Combine default, repository file and configured patterns."""
    patterns: List[str] = list(DEFAULT_PATTERNS) if include_defaults else []
    if repo_root is not None:
        patterns.extend(read_ignore_file(Path(repo_root) / IGNORE_FILE_NAME))
    patterns.extend(config_patterns)
    return IgnoreMatcher(patterns)
