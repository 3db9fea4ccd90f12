"""Input media slots."""
