import logging
import subprocess
from typing import List

logger = logging.getLogger(__name__)


def run_git(repo_dir: str, args: List[str]) -> subprocess.CompletedProcess:
    """Run a git command inside ``repo_dir`` without raising on failure."""
    logger.debug(f"git {' '.join(args)} (in {repo_dir})")
    return subprocess.run(
        ["git", *args],
        cwd=repo_dir,
        capture_output=True,
        text=True,
    )


def is_git_repository(repo_dir: str) -> bool:
    try:
        proc = run_git(repo_dir, ["rev-parse", "--is-inside-work-tree"])
    except OSError as e:
        logger.error(f"Error checking if {repo_dir} is a git repository: {e}")
        return False
    return proc.returncode == 0 and proc.stdout.strip() == "true"
