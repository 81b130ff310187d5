"""Git branch queries."""

from pathlib import Path

from specflow.git.runner import run_git


def get_current_branch(worktree: Path) -> str | None:
    """Get the current branch name, or None if detached HEAD or not a repo."""
    result = run_git(["rev-parse", "--abbrev-ref", "HEAD"], worktree)
    if not result.success:
        return None
    name = result.stdout.strip()
    if not name or name == "HEAD":
        return None
    return name


def get_upstream(worktree: Path) -> str | None:
    """Get the upstream ref of the current branch (e.g. origin/main), if any."""
    result = run_git(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"], worktree)
    if result.success:
        return result.stdout.strip() or None
    return None


def get_divergence_count(worktree: Path, ref1: str, ref2: str) -> tuple[int, int] | None:
    """
    Get how many commits ref1 and ref2 have diverged.

    Returns:
        Tuple of (commits_in_ref1_not_in_ref2, commits_in_ref2_not_in_ref1),
        or None on error.
    """
    result = run_git(["rev-list", "--left-right", "--count", f"{ref1}...{ref2}"], worktree)
    if not result.success:
        return None
    parts = result.stdout.strip().split()
    if len(parts) != 2:
        return None
    try:
        return (int(parts[0]), int(parts[1]))
    except ValueError:
        return None


def get_ahead_behind(worktree: Path) -> tuple[int, int] | None:
    """(ahead, behind) of HEAD relative to its upstream, or None without one."""
    upstream = get_upstream(worktree)
    if not upstream:
        return None
    counts = get_divergence_count(worktree, upstream, "HEAD")
    if counts is None:
        return None
    behind, ahead = counts
    return ahead, behind
