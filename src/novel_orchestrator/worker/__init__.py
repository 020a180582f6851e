"""Worker pool, step runner and progress channel."""
