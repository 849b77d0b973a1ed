"""Services for worktree-keeper."""
