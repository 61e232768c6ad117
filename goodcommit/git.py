"""Git operations for goodcommit (read-only: staged changes are never modified)."""

import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from .diff import RawFileDiff
from .exceptions import GitError


def parse_name_status(output: str) -> List[Tuple[str, str, Optional[str]]]:
    """Parse ``git diff --name-status -z`` output into ``(status, path, old_path)``."""
    tokens = [t for t in output.split("\0") if t != ""]
    entries: List[Tuple[str, str, Optional[str]]] = []
    i = 0
    while i < len(tokens):
        status = tokens[i].strip()
        code = status[:1]
        if code in ("R", "C") and i + 2 < len(tokens):
            entries.append((code, tokens[i + 2], tokens[i + 1]))
            i += 3
        elif i + 1 < len(tokens):
            entries.append((code, tokens[i + 1], None))
            i += 2
        else:
            break
    return entries


class GitRepo:
    """Collects staged changes of one repository."""

    def __init__(self, repo_path: Optional[str] = None) -> None:
        self.repo_path = Path(repo_path or ".")
        if not self._is_git_repo():
            raise GitError(f"Not a Git repository: {self.repo_path}")

    def _is_git_repo(self) -> bool:
        try:
            self._run_git_command(["rev-parse", "--git-dir"])
            return True
        except GitError:
            return False

    def _run_git_command(self, args: List[str], strip: bool = True) -> str:
        """Run a Git command and return its output.

        Pass ``strip=False`` for NUL-separated output, where whitespace can be
        part of a path.
        """
        try:
            result = subprocess.run(
                ["git"] + args,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                check=True,
            )
            return result.stdout.strip() if strip else result.stdout
        except subprocess.CalledProcessError as e:
            cmd = " ".join(args)
            raise GitError(f"Git command failed: {cmd}\n{e.stderr}", stage="collect") from e
        except FileNotFoundError as exc:
            raise GitError(
                "Git command not found. Please install Git.", stage="collect"
            ) from exc

    @property
    def root(self) -> Path:
        top = self._run_git_command(["rev-parse", "--show-toplevel"])
        return Path(top) if top else self.repo_path

    def staged_records(self) -> List[RawFileDiff]:
        """Return one :class:`RawFileDiff` per staged path, in git's order."""
        output = self._run_git_command(
            ["diff", "--cached", "--name-status", "-z", "-M"], strip=False
        )
        records: List[RawFileDiff] = []
        for status, path, old_path in parse_name_status(output):
            paths = [old_path, path] if old_path else [path]
            numstat = self._run_git_command(
                ["diff", "--cached", "--numstat", "-M", "--"] + paths
            )
            additions, deletions, is_binary = self._parse_numstat(numstat)
            diff_text = "" if is_binary else self._run_git_command(
                ["diff", "--cached", "-M", "--"] + paths
            )
            records.append(
                RawFileDiff(
                    path=path,
                    status=status,
                    diff=diff_text,
                    additions=additions,
                    deletions=deletions,
                    is_binary=is_binary,
                    old_path=old_path,
                )
            )
        return records

    @staticmethod
    def _parse_numstat(output: str) -> Tuple[Optional[int], Optional[int], bool]:
        first = output.splitlines()[0] if output else ""
        parts = first.split("\t")
        if len(parts) < 2:
            return None, None, False
        if parts[0] == "-" and parts[1] == "-":
            return None, None, True
        try:
            return int(parts[0]), int(parts[1]), False
        except ValueError:
            return None, None, False
