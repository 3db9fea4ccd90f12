"""Per-task progress channels and their message types."""
