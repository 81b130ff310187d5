"""Git working tree queries."""

from pathlib import Path

from specflow.git.runner import run_git


def is_git_repo(path: Path) -> bool:
    result = run_git(["rev-parse", "--is-inside-work-tree"], path)
    return result.success and result.stdout.strip() == "true"


def get_repo_root(path: Path) -> Path | None:
    """Top level of the repository containing path, or None."""
    result = run_git(["rev-parse", "--show-toplevel"], path)
    if result.success and result.stdout.strip():
        return Path(result.stdout.strip())
    return None


def has_uncommitted_changes(worktree: Path) -> bool:
    """Check if worktree has any uncommitted changes (staged, unstaged, or untracked)."""
    result = run_git(["status", "--porcelain"], worktree)
    return result.success and bool(result.stdout.strip())
