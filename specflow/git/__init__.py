"""Read-only git queries for specflow.

specflow never commits, merges or switches branches. These helpers only
report on the working tree.

Return type conventions:
- Functions returning bool: True when the condition holds, False otherwise
  (including when git fails). Examples: is_git_repo(), has_uncommitted_changes()
- Functions returning parsed values return None on failure.
  Examples: get_current_branch(), get_ahead_behind()
"""

from specflow.git.status import (
    is_git_repo,
    get_repo_root,
    has_uncommitted_changes,
)
from specflow.git.branch import (
    get_current_branch,
    get_upstream,
    get_divergence_count,
    get_ahead_behind,
)

__all__ = [
    # status
    "is_git_repo",
    "get_repo_root",
    "has_uncommitted_changes",
    # branch
    "get_current_branch",
    "get_upstream",
    "get_divergence_count",
    "get_ahead_behind",
]
