import logging

from quarto_record.errors import WorkspaceError
from quarto_record.gitutil import is_git_repository, run_git
from quarto_record.models import RunItem

logger = logging.getLogger(__name__)


class GitCheckoutWorkspace:
    """Checks out each item's commit so the preview renders that revision."""

    def __init__(self, repo_dir: str):
        self.repo_dir = repo_dir

    def prepare(self, item: RunItem) -> None:
        if not item.id:
            raise WorkspaceError("No commit hash provided for checkout")
        if not is_git_repository(self.repo_dir):
            raise WorkspaceError(f"The directory '{self.repo_dir}' is not a git repository")

        logger.info(f"Checking out commit {item.id}...")
        proc = run_git(self.repo_dir, ["checkout", item.id])
        if proc.returncode != 0:
            raise WorkspaceError(f"Failed to checkout commit {item.id}: {proc.stderr.strip()}")


class StaticWorkspace:
    """Profiles all render the same checkout; nothing to switch."""

    def prepare(self, item: RunItem) -> None:
        logger.debug(f"Workspace unchanged for {item.id}")
