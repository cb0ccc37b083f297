"""Sequence providers: the ordered items a run captures."""

import logging
import os
from typing import List, Optional

import yaml

from quarto_record.errors import SequenceError
from quarto_record.gitutil import is_git_repository, run_git
from quarto_record.models import RunItem

logger = logging.getLogger(__name__)

LOG_FORMAT = "%h|%s|%an|%ad"


class GitHistoryProvider:
    """One item per commit from ``start_commit`` (default: the root commit) to HEAD, oldest first."""

    def __init__(self, repo_dir: str, start_commit: Optional[str] = None):
        self.repo_dir = repo_dir
        self.start_commit = start_commit

    def items(self) -> List[RunItem]:
        if not is_git_repository(self.repo_dir):
            raise SequenceError(f"The directory '{self.repo_dir}' is not a git repository")

        start = self.start_commit or self._root_commit()
        revision_range = self._revision_range(start)

        proc = run_git(self.repo_dir, ["log", f"--format={LOG_FORMAT}", revision_range])
        if proc.returncode != 0:
            raise SequenceError(
                f"Failed to get git history from {start}: {proc.stderr.strip()}"
            )

        lines = [line for line in proc.stdout.strip().splitlines() if line]
        if not lines:
            raise SequenceError("No git history found or invalid start commit")

        commits = [self._parse_line(line) for line in lines]
        # git log lists newest first
        commits.reverse()
        return commits

    def _root_commit(self) -> str:
        proc = run_git(self.repo_dir, ["rev-list", "--max-parents=0", "HEAD"])
        if proc.returncode != 0 or not proc.stdout.strip():
            raise SequenceError("Failed to get initial commit hash")
        # A history can have several roots; take the oldest
        return proc.stdout.strip().splitlines()[-1]

    def _revision_range(self, start: str) -> str:
        parent = run_git(self.repo_dir, ["rev-parse", "--verify", "--quiet", f"{start}^"])
        if parent.returncode == 0:
            return f"{start}^..HEAD"
        # A root commit has no parent, so everything reachable from HEAD is wanted
        verify = run_git(self.repo_dir, ["rev-parse", "--verify", "--quiet", f"{start}^{{commit}}"])
        if verify.returncode != 0:
            raise SequenceError(f"Unknown start commit: {start}")
        return "HEAD"

    @staticmethod
    def _parse_line(line: str) -> RunItem:
        # Subjects may contain the separator; author and date never do
        hash_, rest = line.split("|", 1)
        message, author, date = (rest.rsplit("|", 2) + ["", ""])[:3]
        return RunItem(id=hash_, description=message, author=author or None, date=date or None)


class ProfileGroupProvider:
    """One item per profile in a ``profile.group`` entry of ``_quarto.yml``."""

    CONFIG_NAME = "_quarto.yml"

    def __init__(self, input_dir: str, group_index: int = 0):
        self.input_dir = input_dir
        self.group_index = group_index

    def profiles(self) -> List[str]:
        path = os.path.join(self.input_dir, self.CONFIG_NAME)
        try:
            with open(path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise SequenceError("_quarto.yml file not found in the input directory")
        except yaml.YAMLError as e:
            raise SequenceError(f"Failed to parse {path}: {e}") from e

        profile = config.get("profile") if isinstance(config, dict) else None
        groups = profile.get("group") if isinstance(profile, dict) else None
        if not groups:
            raise SequenceError("No profile groups found in _quarto.yml")
        if not isinstance(groups, list):
            raise SequenceError("Profile group is not an array")

        if self.group_index < 0 or self.group_index >= len(groups):
            raise SequenceError(
                f"Profile group index {self.group_index} out of range (max: {len(groups) - 1})"
            )

        group = groups[self.group_index]
        if not isinstance(group, list):
            raise SequenceError("Selected profile group is not an array")
        if not group:
            raise SequenceError("Selected profile group is empty")

        # YAML may read profile names such as 2024 as numbers
        return [str(name) for name in group]

    def items(self) -> List[RunItem]:
        return [RunItem(id=name, description=f"profile {name}") for name in self.profiles()]
